"""
Batch Service - production batch registry.

This module provides functions for:
- Creating production batches with their consumption entries
- Administrative edits, including full replacement of the entry set
- Deleting batches (elevated roles only) with cascade of entries
- Reading a batch by id or batch number, and listing batches

Batch numbers come from a persistent per-day counter: the first batch of a
production day is ``YYYYMMDD``, the next ``YYYYMMDD-2`` and so on. The
counter never goes backwards, so a number is never handed out twice.

Concurrent writes to the same batch are detected through the batch's
version counter and surface as ConflictError.
"""

from contextlib import nullcontext
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload
from sqlalchemy.orm.exc import StaleDataError

from ..models import (
    BatchNumberSequence,
    BatchStatus,
    Product,
    ProductionBatch,
)
from ..models.production_batch import COMPLETION_FIELDS
from ..utils.constants import DEFAULT_LIST_LIMIT, MAX_NOTES_LENGTH
from ..utils.datetime_utils import as_naive_utc, start_of_day, utc_now
from ..utils.validators import is_finite_number
from . import consumption_ledger
from .authorization import require_elevated
from .catalog_service import get_product_or_raise
from .database import session_scope
from .dto import BatchFilter, PaginatedResult, PaginationParams
from .exceptions import (
    BatchNotFoundError,
    ConflictError,
    DatabaseError,
    ProductNotFoundError,
    ValidationError,
)
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

# Fields an administrative edit may change
MUTABLE_FIELDS = frozenset(
    {
        "quantity",
        "unit",
        "status",
        "notes",
        "production_date",
        "expiry_date",
        "start_time",
        "end_time",
        "final_temperature",
        "temperature_compliant",
        "operator_id",
    }
)

_DATETIME_FIELDS = ("production_date", "expiry_date", "start_time", "end_time")


# =============================================================================
# Helpers
# =============================================================================


def _now() -> datetime:
    return as_naive_utc(utc_now())


def _to_datetime(value: Any, field_name: str) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_naive_utc(value)
    if isinstance(value, date):
        return start_of_day(value)
    if isinstance(value, str):
        try:
            return as_naive_utc(datetime.fromisoformat(value))
        except ValueError:
            pass
    raise ValidationError([f"{field_name}: invalid date/time {value!r}"])


def _production_day(value: Any) -> date:
    """
    Calendar day a production date falls on for the plant.

    Aware datetimes keep the offset they were given, so 00:30 at +01:00
    is still that day even though it is stored as 23:30 UTC the day before.
    None means today on the local clock.
    """
    if value is None:
        return datetime.now().date()
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        return value.date()
    return value


def _validate_quantity(quantity: Any) -> list:
    if not is_finite_number(quantity) or quantity <= 0:
        return [f"quantity: must be a number greater than 0 (got {quantity!r})"]
    return []


def flush_or_conflict(session: Session, batch_id: Optional[int]) -> None:
    """
    Flush pending changes, translating concurrency failures.

    Raises:
        ConflictError: If the batch row changed underneath us (stale version)
            or a concurrent writer took the same batch number
        DatabaseError: Any other database failure
    """
    try:
        session.flush()
    except StaleDataError as e:
        raise ConflictError(batch_id) from e
    except IntegrityError as e:
        raise ConflictError(
            batch_id, f"Concurrent write conflict on production batch: {e.orig}"
        ) from e
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to write production batch {batch_id}", e) from e


def check_version(batch: ProductionBatch, expected_version: Optional[int]) -> None:
    """Raise ConflictError when the caller edited an outdated copy of the batch."""
    if expected_version is not None and batch.version_id != expected_version:
        raise ConflictError(
            batch.id,
            f"Production batch {batch.id} is at version {batch.version_id}, "
            f"expected {expected_version}; reload and retry",
        )


def get_batch_model(batch_id: int, session: Session) -> ProductionBatch:
    """
    Load a batch ORM object with product and entries.

    Raises:
        BatchNotFoundError: If no batch has this id
    """
    batch = (
        session.query(ProductionBatch)
        .options(
            joinedload(ProductionBatch.product),
            selectinload(ProductionBatch.materials),
        )
        .filter(ProductionBatch.id == batch_id)
        .first()
    )
    if batch is None:
        raise BatchNotFoundError(batch_id)
    return batch


def format_batch_number(production_day: date, sequence: int) -> str:
    """
    Format a batch number.

    Examples:
        >>> format_batch_number(date(2024, 3, 14), 1)
        '20240314'
        >>> format_batch_number(date(2024, 3, 14), 3)
        '20240314-3'
    """
    day = production_day.strftime("%Y%m%d")
    return day if sequence == 1 else f"{day}-{sequence}"


def next_batch_number(production_day: date, session: Session) -> str:
    """
    Reserve the next batch number for a production day.

    Advances the day's counter; numbers are never reused, including after
    deletion of the batch that carried them.
    """
    period = production_day.strftime("%Y%m%d")
    sequence = (
        session.query(BatchNumberSequence)
        .filter(BatchNumberSequence.period == period)
        .with_for_update()
        .first()
    )
    if sequence is None:
        sequence = BatchNumberSequence(period=period, last_value=0)
        session.add(sequence)

    while True:
        sequence.last_value += 1
        candidate = format_batch_number(production_day, sequence.last_value)
        taken = (
            session.query(ProductionBatch.id)
            .filter(ProductionBatch.batch_number == candidate)
            .first()
        )
        if taken is None:
            return candidate


# =============================================================================
# Create
# =============================================================================


def create_batch(
    product_id: int,
    quantity: float,
    unit: str = "kg",
    *,
    production_date: Optional[datetime] = None,
    start_time: Optional[datetime] = None,
    expiry_date: Optional[datetime] = None,
    notes: Optional[str] = None,
    operator_id: Optional[int] = None,
    entries: Optional[Iterable[Any]] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Create a production batch with its consumption entries.

    This function atomically:
    1. Validates quantity and every consumption entry
    2. Validates the product exists
    3. Reserves a batch number for the production day
    4. Persists the batch (status IN_PRODUCTION) and its entries,
       allocating curing batch quantities

    Args:
        product_id: Product being produced
        quantity: Produced quantity (> 0)
        unit: Unit of measure
        production_date: Production day (defaults to now)
        start_time: Production start (defaults to now)
        expiry_date: Use-by date (defaults to production date + product shelf life)
        notes: Optional notes
        operator_id: Responsible operator
        entries: Consumption entries (dataclasses or mappings)
        session: Optional database session

    Returns:
        Created batch as dictionary, including product name and entries

    Raises:
        ValidationError: Unknown product, quantity <= 0, or invalid entry
        SourceNotFoundError: An entry references a missing catalog row
        InsufficientQuantityError: A curing batch can't cover its entry
    """
    errors = _validate_quantity(quantity)
    if notes and len(notes) > MAX_NOTES_LENGTH:
        errors.append(f"notes: must be {MAX_NOTES_LENGTH} characters or less")
    try:
        validated = consumption_ledger.validate_entries(entries)
    except ValidationError as e:
        errors.extend(e.errors)
        validated = []
    requested_date = production_date
    production_date = _to_datetime(production_date, "production_date") or _now()
    production_day = _production_day(requested_date)
    start_time = _to_datetime(start_time, "start_time") or _now()
    expiry_date = _to_datetime(expiry_date, "expiry_date")
    if errors:
        log_operation(logger, "create_batch", "validation_failed", product_id=product_id)
        raise ValidationError(errors)

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        try:
            product = get_product_or_raise(product_id, session)
        except ProductNotFoundError as e:
            raise ValidationError([str(e)]) from e

        if expiry_date is None:
            expiry_date = production_date + timedelta(days=product.shelf_life_days or 0)

        batch = ProductionBatch(
            batch_number=next_batch_number(production_day, session),
            product=product,
            quantity=float(quantity),
            unit=unit,
            status=BatchStatus.IN_PRODUCTION.value,
            production_date=production_date,
            start_time=start_time,
            expiry_date=expiry_date,
            notes=notes,
            operator_id=operator_id,
        )
        session.add(batch)
        flush_or_conflict(session, None)

        consumption_ledger.attach_entries(batch, validated, session)

        log_operation(
            logger,
            "create_batch",
            "success",
            batch_id=batch.id,
            batch_number=batch.batch_number,
            product_id=product_id,
            entry_count=len(validated),
        )
        return batch.to_dict(include_relationships=True)


# =============================================================================
# Update
# =============================================================================


def _normalize_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(fields) - MUTABLE_FIELDS)
    if unknown:
        raise ValidationError([f"Unknown or immutable field(s): {', '.join(unknown)}"])

    errors = []
    normalized = dict(fields)

    if "quantity" in normalized:
        errors.extend(_validate_quantity(normalized["quantity"]))
    if "status" in normalized:
        try:
            normalized["status"] = BatchStatus(normalized["status"]).value
        except ValueError:
            errors.append(f"status: invalid value {normalized['status']!r}")
    if normalized.get("final_temperature") is not None and not is_finite_number(
        normalized["final_temperature"]
    ):
        errors.append("final_temperature: must be a finite number")
    if "unit" in normalized and not normalized["unit"]:
        errors.append("unit: required")
    if normalized.get("notes") and len(normalized["notes"]) > MAX_NOTES_LENGTH:
        errors.append(f"notes: must be {MAX_NOTES_LENGTH} characters or less")
    for field_name in _DATETIME_FIELDS:
        if field_name in normalized:
            try:
                normalized[field_name] = _to_datetime(normalized[field_name], field_name)
            except ValidationError as e:
                errors.extend(e.errors)
    for field_name in ("production_date", "expiry_date", "start_time"):
        if field_name in normalized and normalized[field_name] is None:
            errors.append(f"{field_name}: cannot be cleared")

    if errors:
        raise ValidationError(errors)
    return normalized


def update_batch(
    batch_id: int,
    *,
    entries: Optional[Iterable[Any]] = None,
    expected_version: Optional[int] = None,
    session: Optional[Session] = None,
    **fields: Any,
) -> Dict[str, Any]:
    """
    Administrative edit of a production batch.

    Status may be reassigned freely. Setting it back to IN_PRODUCTION clears
    the completion data; any other edit must leave completion data either
    fully present or fully absent. The batch number never changes.

    Args:
        batch_id: Batch to edit
        entries: When not None, the new complete consumption set (full replace)
        expected_version: Version the caller read; mismatch raises ConflictError
        session: Optional database session
        **fields: Mutable fields (see MUTABLE_FIELDS)

    Returns:
        Updated batch as dictionary

    Raises:
        BatchNotFoundError: If batch doesn't exist
        ValidationError: Invalid field values, partial completion data, invalid entries
        ConflictError: Stale version or concurrent modification
    """
    normalized = _normalize_fields(fields)
    validated = consumption_ledger.validate_entries(entries) if entries is not None else None

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        batch = get_batch_model(batch_id, session)
        check_version(batch, expected_version)

        resulting = {name: getattr(batch, name) for name in COMPLETION_FIELDS}
        resulting.update({k: v for k, v in normalized.items() if k in COMPLETION_FIELDS})
        reverting = normalized.get("status") == BatchStatus.IN_PRODUCTION.value
        present = [name for name in COMPLETION_FIELDS if resulting[name] is not None]
        if not reverting and 0 < len(present) < len(COMPLETION_FIELDS):
            raise ValidationError(
                [
                    "Completion data must be all set or all empty "
                    f"({', '.join(COMPLETION_FIELDS)}); got only {', '.join(present)}"
                ]
            )

        for name, value in normalized.items():
            setattr(batch, name, value)
        if reverting:
            batch.clear_completion()
        # Entry-only edits still bump the version
        batch.updated_at = _now()

        if validated is not None:
            consumption_ledger.replace_entries(batch, validated, session)

        flush_or_conflict(session, batch_id)

        log_operation(
            logger,
            "update_batch",
            "success",
            batch_id=batch_id,
            fields=sorted(normalized),
            entries_replaced=validated is not None,
            reverted=reverting,
        )
        return batch.to_dict(include_relationships=True)


# =============================================================================
# Delete
# =============================================================================


def delete_batch(
    batch_id: int,
    *,
    actor_role: Optional[str],
    expected_version: Optional[int] = None,
    session: Optional[Session] = None,
) -> None:
    """
    Delete a production batch and its consumption entries.

    Irreversible. Curing batch quantities held by the entries are restored.
    The batch number is not released for reuse.

    Args:
        batch_id: Batch to delete
        actor_role: Role of the caller; must be elevated
        expected_version: Optional version check
        session: Optional database session

    Raises:
        PermissionDeniedError: If actor_role is not elevated
        BatchNotFoundError: If batch doesn't exist
        ConflictError: Stale version or concurrent modification
    """
    require_elevated(actor_role, "delete production batches")

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        batch = get_batch_model(batch_id, session)
        check_version(batch, expected_version)
        batch_number = batch.batch_number
        entry_count = len(batch.materials)

        consumption_ledger.release_entries(batch, session)
        batch.materials.clear()
        flush_or_conflict(session, batch_id)

        session.delete(batch)
        flush_or_conflict(session, batch_id)

        log_operation(
            logger,
            "delete_batch",
            "success",
            batch_id=batch_id,
            batch_number=batch_number,
            entry_count=entry_count,
        )


# =============================================================================
# Read
# =============================================================================


def get_batch(batch_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Get a batch with product name and consumption entries.

    Raises:
        BatchNotFoundError: If batch doesn't exist
    """
    if session is not None:
        return get_batch_model(batch_id, session).to_dict(include_relationships=True)
    with session_scope() as session:
        return get_batch_model(batch_id, session).to_dict(include_relationships=True)


def get_batch_by_number(batch_number: str, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Get a batch by its printed batch number.

    Raises:
        BatchNotFoundError: If no batch has this number
    """
    if session is not None:
        return _get_batch_by_number_impl(batch_number, session)
    with session_scope() as session:
        return _get_batch_by_number_impl(batch_number, session)


def _get_batch_by_number_impl(batch_number: str, session: Session) -> Dict[str, Any]:
    batch_id = (
        session.query(ProductionBatch.id)
        .filter(ProductionBatch.batch_number == batch_number)
        .scalar()
    )
    if batch_id is None:
        raise BatchNotFoundError(batch_number)
    return get_batch_model(batch_id, session).to_dict(include_relationships=True)


def list_batches(
    filters: Optional[BatchFilter] = None,
    pagination: Optional[PaginationParams] = None,
    session: Optional[Session] = None,
) -> PaginatedResult:
    """
    List batches, newest production date first.

    Args:
        filters: Optional BatchFilter (date range, status, free text, product)
        pagination: Optional page; defaults to the first DEFAULT_LIST_LIMIT rows

    Returns:
        PaginatedResult of batch dicts (with product name and entries)
    """
    if session is not None:
        return _list_batches_impl(filters, pagination, session)
    with session_scope() as session:
        return _list_batches_impl(filters, pagination, session)


def _list_batches_impl(
    filters: Optional[BatchFilter],
    pagination: Optional[PaginationParams],
    session: Session,
) -> PaginatedResult:
    filters = filters or BatchFilter()
    pagination = pagination or PaginationParams(page=1, per_page=DEFAULT_LIST_LIMIT)

    query = session.query(ProductionBatch).join(
        Product, ProductionBatch.product_id == Product.id
    )

    if filters.status:
        try:
            status = BatchStatus(filters.status).value
        except ValueError as e:
            raise ValidationError([f"status: invalid value {filters.status!r}"]) from e
        query = query.filter(ProductionBatch.status == status)
    if filters.product_id is not None:
        query = query.filter(ProductionBatch.product_id == filters.product_id)
    if filters.date_from is not None:
        query = query.filter(
            ProductionBatch.production_date >= _to_datetime(filters.date_from, "date_from")
        )
    if filters.date_to is not None:
        if isinstance(filters.date_to, datetime):
            query = query.filter(
                ProductionBatch.production_date <= _to_datetime(filters.date_to, "date_to")
            )
        else:
            # Whole day inclusive
            day = _to_datetime(filters.date_to, "date_to")
            query = query.filter(ProductionBatch.production_date < day + timedelta(days=1))
    if filters.search:
        pattern = f"%{filters.search.strip()}%"
        query = query.filter(
            or_(
                ProductionBatch.batch_number.ilike(pattern),
                Product.name.ilike(pattern),
                ProductionBatch.notes.ilike(pattern),
            )
        )

    total = query.count()
    batches = (
        query.options(
            joinedload(ProductionBatch.product),
            selectinload(ProductionBatch.materials),
        )
        .order_by(ProductionBatch.production_date.desc(), ProductionBatch.id.desc())
        .offset(pagination.offset())
        .limit(pagination.per_page)
        .all()
    )

    return PaginatedResult(
        items=[batch.to_dict(include_relationships=True) for batch in batches],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )
