"""
Compliance Service - thermal-process compliance at batch completion.

Completing a batch records the measured final core temperature and decides
compliance against the product's critical limit (inclusive). A
non-compliant completion issues exactly one corrective-action request,
written in the same transaction as the completion and delivered through
the corrective-action intake; see corrective_action_service for the retry
queue.

Status model: a batch starts IN_PRODUCTION and completion moves it to
COMPLETED. Completion is only accepted from IN_PRODUCTION, so a second
completion of the same batch raises ConflictError instead of overwriting
the first decision. RELEASED, BLOCKED and QUARANTINE are set by
administrative edits (batch_service.update_batch).
"""

import logging
from contextlib import nullcontext
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import BatchStatus, DispatchOutcome, Product
from ..utils.constants import DEFAULT_REQUIRED_TEMPERATURE
from ..utils.datetime_utils import as_naive_utc, utc_now
from ..utils.validators import is_finite_number
from . import corrective_action_service
from .batch_service import check_version, flush_or_conflict, get_batch_model
from .corrective_action_service import CorrectiveActionIntake
from .database import session_scope
from .dto import CompletionResult
from .exceptions import ConflictError, ValidationError
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def required_temperature_for(product: Optional[Product]) -> float:
    """
    Critical limit for a product.

    Falls back to DEFAULT_REQUIRED_TEMPERATURE (72.0) when the product
    doesn't define one.
    """
    if product is None or product.required_temperature is None:
        return DEFAULT_REQUIRED_TEMPERATURE
    return float(product.required_temperature)


def evaluate_temperature(final_temperature: float, required_temperature: float) -> bool:
    """
    Compliance decision: the limit itself is compliant.

    Examples:
        >>> evaluate_temperature(72.0, 72.0)
        True
        >>> evaluate_temperature(71.9, 72.0)
        False
    """
    return final_temperature >= required_temperature


def _validate_temperature(value: Any) -> float:
    if not is_finite_number(value):
        raise ValidationError([f"final_temperature: must be a finite number (got {value!r})"])
    return float(value)


def complete_batch(
    batch_id: int,
    final_temperature: float,
    *,
    completed_at: Optional[datetime] = None,
    notes: Optional[str] = None,
    intake: Optional[CorrectiveActionIntake] = None,
    expected_version: Optional[int] = None,
    session: Optional[Session] = None,
) -> CompletionResult:
    """
    Complete a production batch and decide thermal compliance.

    This function atomically:
    1. Validates the temperature (before touching the database)
    2. Loads the batch and its product's critical limit
    3. Sets status COMPLETED, completion time, final temperature and
       compliance flag
    4. If non-compliant, queues a corrective-action request and attempts
       delivery through the intake

    An intake failure does not undo the completion: the request stays
    queued and the result reports DispatchOutcome.QUEUED with the error.

    Args:
        batch_id: Batch to complete
        final_temperature: Measured final core temperature (degrees C)
        completed_at: Completion timestamp (defaults to now)
        notes: Optional notes; replaces the batch notes when given
        intake: Corrective-action intake (defaults to the database intake)
        expected_version: Optional version check
        session: Optional database session

    Returns:
        CompletionResult

    Raises:
        ValidationError: If final_temperature is not a finite number
        BatchNotFoundError: If batch doesn't exist
        ConflictError: Batch is not IN_PRODUCTION, stale version, or
            concurrent modification
    """
    temperature = _validate_temperature(final_temperature)
    completed_at = as_naive_utc(completed_at or utc_now())

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        batch = get_batch_model(batch_id, session)
        check_version(batch, expected_version)
        if batch.status != BatchStatus.IN_PRODUCTION.value:
            raise ConflictError(
                batch_id,
                f"Production batch {batch.batch_number} is {batch.status}; "
                f"only batches IN_PRODUCTION can be completed",
            )

        required = required_temperature_for(batch.product)
        compliant = evaluate_temperature(temperature, required)

        batch.status = BatchStatus.COMPLETED.value
        batch.end_time = completed_at
        batch.final_temperature = temperature
        batch.temperature_compliant = compliant
        if notes:
            batch.notes = notes
        flush_or_conflict(session, batch_id)

        result = CompletionResult(
            batch=batch.to_dict(include_relationships=True),
            compliant=compliant,
            required_temperature=required,
        )

        if compliant:
            log_operation(
                logger,
                "complete_batch",
                "compliant",
                batch_id=batch_id,
                batch_number=batch.batch_number,
                final_temperature=temperature,
                required_temperature=required,
            )
            return result

        log_operation(
            logger,
            "complete_batch",
            "non_compliant",
            level=logging.WARNING,
            batch_id=batch_id,
            batch_number=batch.batch_number,
            final_temperature=temperature,
            required_temperature=required,
        )

        request = corrective_action_service.enqueue_request(batch, required, temperature, session)
        outcome, error = corrective_action_service.dispatch_request(request, intake, session)

        result.corrective_action = outcome
        result.request_id = request.id
        result.corrective_action_id = request.corrective_action_id
        result.error = error
        return result
