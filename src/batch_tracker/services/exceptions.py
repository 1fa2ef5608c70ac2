"""Service layer exception classes for batch-tracker.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    │   └── InsufficientQuantityError
    ├── NotFoundError
    │   ├── BatchNotFoundError
    │   ├── ProductNotFoundError
    │   └── SourceNotFoundError
    ├── ConflictError
    ├── SideEffectFailure
    ├── PermissionDeniedError
    ├── ProvenanceDepthError
    └── DatabaseError
"""

from decimal import Decimal
from typing import List, Optional, Union


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions should inherit from this class.
    """

    pass


class ValidationError(ServiceError):
    """Raised when input validation fails, before anything is persisted.

    Args:
        errors: List of human-readable error messages (or a single message)

    Example:
        >>> raise ValidationError(["quantity: must be greater than 0"])
        ValidationError: Validation failed: quantity: must be greater than 0
    """

    def __init__(self, errors: Union[List[str], str]):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        error_msg = "; ".join(self.errors)
        super().__init__(f"Validation failed: {error_msg}")


class InsufficientQuantityError(ValidationError):
    """Raised when a curing batch cannot cover a requested allocation.

    Args:
        batch_number: Curing batch number
        requested: Quantity requested
        available: Quantity still available
    """

    def __init__(self, batch_number: str, requested: Decimal, available: Decimal):
        self.batch_number = batch_number
        self.requested = requested
        self.available = available
        super().__init__(
            [
                f"Curing batch '{batch_number}' has insufficient quantity: "
                f"requested {requested}, available {available}"
            ]
        )


class NotFoundError(ServiceError):
    """Base for lookups that found nothing."""

    pass


class BatchNotFoundError(NotFoundError):
    """Raised when a production batch cannot be found.

    Example:
        >>> raise BatchNotFoundError(123)
        BatchNotFoundError: Production batch 123 not found
    """

    def __init__(self, identifier: Union[int, str]):
        self.identifier = identifier
        super().__init__(f"Production batch {identifier} not found")


class ProductNotFoundError(NotFoundError):
    """Raised when a product cannot be found by ID."""

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product with ID {product_id} not found")


class SourceNotFoundError(NotFoundError):
    """Raised when a consumption entry references a catalog row that doesn't exist.

    Args:
        source_kind: SourceKind value of the entry
        source_id: Referenced id
    """

    def __init__(self, source_kind: str, source_id: int):
        self.source_kind = source_kind
        self.source_id = source_id
        super().__init__(f"{source_kind} source with ID {source_id} not found")


class ConflictError(ServiceError):
    """Raised when a batch was modified concurrently.

    The caller must reload the batch and retry with fresh state.
    """

    def __init__(self, batch_id: int, message: Optional[str] = None):
        self.batch_id = batch_id
        super().__init__(
            message or f"Production batch {batch_id} was modified concurrently; reload and retry"
        )


class SideEffectFailure(ServiceError):
    """Raised by a corrective-action intake that is unreachable or rejects a request."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(message)


class PermissionDeniedError(ServiceError):
    """Raised when the caller's role does not allow an operation."""

    def __init__(self, operation: str, role: Optional[str]):
        self.operation = operation
        self.role = role
        super().__init__(f"Role '{role}' is not allowed to {operation}")


class ProvenanceDepthError(ServiceError):
    """Raised when source resolution recurses deeper than the processing chain allows.

    Only corrupt (cyclic) data can trigger it.
    """

    def __init__(self, batch_id: int, depth: int):
        self.batch_id = batch_id
        self.depth = depth
        super().__init__(
            f"Provenance of batch {batch_id} exceeds maximum resolution depth {depth}"
        )


class DatabaseError(ServiceError):
    """Raised when a database operation fails."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
