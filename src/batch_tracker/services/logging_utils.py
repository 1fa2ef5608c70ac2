"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across batch, compliance and provenance
operations.

Usage:
    from batch_tracker.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    log_operation(
        logger,
        operation="complete_batch",
        outcome="non_compliant",
        level=logging.WARNING,
        batch_id=123,
        final_temperature=68.0,
    )
"""

import logging
from typing import Any


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger named with the 'batch_tracker.services' prefix.

    Example:
        >>> logger = get_service_logger(__name__)
        >>> logger.name
        'batch_tracker.services.compliance_service'
    """
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"batch_tracker.services.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The context is passed via ``extra`` for structured logging handlers.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "create_batch", "complete_batch")
        outcome: Outcome description (e.g., "success", "non_compliant", "queued")
        level: Log level (default: INFO)
        **context: Additional context fields (batch_id, batch_number, error, ...)
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)
