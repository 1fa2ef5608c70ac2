"""Material Consumption Ledger - per-batch consumption entries.

This module validates and stores the set of upstream materials consumed by
a production batch. Every entry references exactly one source:

- a raw-material reception
- an intermediate (curing) batch
- an auxiliary-material receipt
- a manual/unregistered source described by name and lot number

Key Features:
- Entries arrive as tagged variants (see dto.py); raw mappings from
  transport layers are coerced first and rejected when they name zero or
  several sources
- All entry errors are collected and raised as one ValidationError before
  anything is written
- Curing batch allocations are atomic conditional decrements of the
  batch's available quantity, restored when entries are removed

All public functions accept an optional session parameter.
"""

from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from sqlalchemy import case, func, update
from sqlalchemy.orm import Session

from ..models import (
    BatchMaterial,
    CuringBatch,
    MaterialReceipt,
    ProductionBatch,
    RawMaterialReception,
    SourceKind,
)
from ..models.enums import ManualCategory
from ..utils.constants import DEFAULT_UNIT, QUANTITY_STEP
from ..utils.validators import parse_quantity
from .database import session_scope
from .dto import (
    ENTRY_TYPES,
    ConsumptionEntryInput,
    CuringBatchSource,
    ManualSource,
    MaterialReceiptSource,
    ReceptionSource,
)
from .exceptions import InsufficientQuantityError, SourceNotFoundError, ValidationError
from .logging_utils import get_service_logger

logger = get_service_logger(__name__)

# Accepted mapping keys per source form (snake_case and camelCase)
_SOURCE_KEYS = {
    SourceKind.RECEPTION: ("reception_id", "receptionId"),
    SourceKind.CURING_BATCH: ("curing_batch_id", "curingBatchId"),
    SourceKind.MATERIAL_RECEIPT: ("material_receipt_id", "materialReceiptId"),
    SourceKind.MANUAL: ("manual_name", "manualName"),
}


# =============================================================================
# Validation
# =============================================================================


def _first_present(data: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def coerce_entry(data: Any) -> ConsumptionEntryInput:
    """
    Build a consumption entry input from a mapping.

    Entry dataclasses are returned unchanged. Mappings must name exactly one
    source form; quantity and the rest are checked later by validate_entries.

    Args:
        data: Entry dataclass or mapping (e.g. ``{"curingBatchId": 3, "quantity": 10}``)

    Returns:
        One of ReceptionSource, CuringBatchSource, MaterialReceiptSource, ManualSource

    Raises:
        ValidationError: If the mapping names zero or several sources
    """
    if isinstance(data, ENTRY_TYPES):
        return data
    if not isinstance(data, Mapping):
        raise ValidationError([f"Unsupported consumption entry: {data!r}"])

    present = {
        kind: _first_present(data, keys)
        for kind, keys in _SOURCE_KEYS.items()
        if _first_present(data, keys) is not None
    }
    if len(present) != 1:
        names = ", ".join(kind.value for kind in present) or "none"
        raise ValidationError(
            [f"Consumption entry must reference exactly one source (got {names})"]
        )

    kind, value = next(iter(present.items()))
    quantity = data.get("quantity")
    unit = data.get("unit") or DEFAULT_UNIT

    if kind == SourceKind.RECEPTION:
        return ReceptionSource(reception_id=value, quantity=quantity, unit=unit)
    if kind == SourceKind.CURING_BATCH:
        return CuringBatchSource(curing_batch_id=value, quantity=quantity, unit=unit)
    if kind == SourceKind.MATERIAL_RECEIPT:
        return MaterialReceiptSource(material_receipt_id=value, quantity=quantity, unit=unit)

    lot_number = _first_present(data, ("manual_lot_number", "manualLotNumber", "lot_number"))
    category = data.get("manual_category") or data.get("manualCategory")
    return ManualSource(
        name=value,
        lot_number=lot_number,
        quantity=quantity,
        unit=unit,
        category=category or ManualCategory.MATERIAL,
    )


def _is_positive_number(value: Any) -> bool:
    quantity = parse_quantity(value)
    return quantity is not None and quantity > 0


def _is_reference(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _entry_errors(entry: ConsumptionEntryInput) -> List[str]:
    """Errors for one entry; a single dispatch over the source variant."""
    errors = []

    if not _is_positive_number(entry.quantity):
        errors.append(f"quantity must be a number greater than 0 (got {entry.quantity!r})")
    if not entry.unit:
        errors.append("unit is required")

    if isinstance(entry, ReceptionSource):
        if not _is_reference(entry.reception_id):
            errors.append(f"invalid reception id {entry.reception_id!r}")
    elif isinstance(entry, CuringBatchSource):
        if not _is_reference(entry.curing_batch_id):
            errors.append(f"invalid curing batch id {entry.curing_batch_id!r}")
    elif isinstance(entry, MaterialReceiptSource):
        if not _is_reference(entry.material_receipt_id):
            errors.append(f"invalid material receipt id {entry.material_receipt_id!r}")
    elif isinstance(entry, ManualSource):
        if not entry.name or not str(entry.name).strip():
            errors.append("manual source requires a material name")
        if not entry.lot_number or not str(entry.lot_number).strip():
            errors.append("manual source requires a lot number")
        if entry.category not in {c.value for c in ManualCategory}:
            errors.append(f"invalid manual source category {entry.category!r}")
    else:
        errors.append(f"unsupported source type {type(entry).__name__}")

    return errors


def validate_entries(entries: Optional[Iterable[Any]]) -> List[ConsumptionEntryInput]:
    """
    Validate a consumption entry set.

    Args:
        entries: Entry dataclasses and/or mappings (None means no entries)

    Returns:
        The coerced entries, in input order

    Raises:
        ValidationError: With one message per offending entry
    """
    validated = []
    errors = []

    for index, raw in enumerate(entries or []):
        try:
            entry = coerce_entry(raw)
        except ValidationError as e:
            errors.extend(f"entries[{index}]: {message}" for message in e.errors)
            continue
        errors.extend(f"entries[{index}]: {message}" for message in _entry_errors(entry))
        validated.append(entry)

    if errors:
        raise ValidationError(errors)
    return validated


# =============================================================================
# Curing batch allocation
# =============================================================================


# Stored values are multiples of QUANTITY_STEP; anything closer than half a
# step is binary noise from the database's float arithmetic
_QUANTITY_TOLERANCE = QUANTITY_STEP / 2


def _rounded_available(expression):
    """SQL expression for the new available quantity, rounded and never negative."""
    rounded = func.round(expression, 3)
    return case((rounded < 0, 0), else_=rounded)


def allocate_curing_quantity(
    curing_batch_id: int, quantity: Union[Decimal, float], session: Session
) -> CuringBatch:
    """
    Atomically take quantity from a curing batch.

    The decrement is a single conditional UPDATE, so concurrent allocations
    can never drive available_quantity below zero.

    Args:
        curing_batch_id: Curing batch to draw from
        quantity: Quantity to take, rounded to the stored precision
        session: Database session of the enclosing transaction

    Raises:
        ValidationError: If quantity is not a positive number
        SourceNotFoundError: If the curing batch doesn't exist
        InsufficientQuantityError: If available quantity is lower than requested
    """
    requested = quantity
    quantity = parse_quantity(quantity)
    if quantity is None or quantity <= 0:
        raise ValidationError([f"quantity must be a number greater than 0 (got {requested!r})"])

    curing_batch = session.get(CuringBatch, curing_batch_id)
    if curing_batch is None:
        raise SourceNotFoundError(SourceKind.CURING_BATCH.value, curing_batch_id)

    result = session.execute(
        update(CuringBatch)
        .where(CuringBatch.id == curing_batch_id)
        .where(CuringBatch.available_quantity >= quantity - _QUANTITY_TOLERANCE)
        .values(available_quantity=_rounded_available(CuringBatch.available_quantity - quantity))
        .execution_options(synchronize_session=False)
    )
    session.expire(curing_batch, ["available_quantity"])

    if result.rowcount == 0:
        raise InsufficientQuantityError(
            curing_batch.batch_number, quantity, curing_batch.available_quantity
        )
    return curing_batch


def release_curing_quantity(
    curing_batch_id: int, quantity: Union[Decimal, float], session: Session
) -> None:
    """Give quantity back to a curing batch (entry removed)."""
    quantity = parse_quantity(quantity)
    session.execute(
        update(CuringBatch)
        .where(CuringBatch.id == curing_batch_id)
        .values(available_quantity=_rounded_available(CuringBatch.available_quantity + quantity))
        .execution_options(synchronize_session=False)
    )
    curing_batch = session.get(CuringBatch, curing_batch_id)
    if curing_batch is not None:
        session.expire(curing_batch, ["available_quantity"])


# =============================================================================
# Persistence
# =============================================================================


def _require(model, source_id: int, kind: SourceKind, session: Session):
    record = session.get(model, source_id)
    if record is None:
        raise SourceNotFoundError(kind.value, source_id)
    return record


def _build_entry(entry: ConsumptionEntryInput, session: Session) -> BatchMaterial:
    row = BatchMaterial(
        source_kind=entry.kind.value,
        quantity=parse_quantity(entry.quantity),
        unit=entry.unit,
    )

    if isinstance(entry, ReceptionSource):
        row.reception = _require(RawMaterialReception, entry.reception_id, entry.kind, session)
    elif isinstance(entry, CuringBatchSource):
        row.curing_batch = allocate_curing_quantity(
            entry.curing_batch_id, row.quantity, session
        )
    elif isinstance(entry, MaterialReceiptSource):
        row.material_receipt = _require(
            MaterialReceipt, entry.material_receipt_id, entry.kind, session
        )
    else:
        row.manual_name = str(entry.name).strip()
        row.manual_lot_number = str(entry.lot_number).strip()
        row.manual_category = ManualCategory(entry.category).value

    return row


def attach_entries(
    batch: ProductionBatch,
    entries: Sequence[ConsumptionEntryInput],
    session: Session,
) -> List[BatchMaterial]:
    """
    Add validated entries to a batch.

    Args:
        batch: Owning batch (pending or persistent)
        entries: Entries already passed through validate_entries
        session: Database session of the enclosing transaction

    Returns:
        Created BatchMaterial rows

    Raises:
        SourceNotFoundError: If a referenced catalog row doesn't exist
        InsufficientQuantityError: If a curing batch can't cover its entry
    """
    rows = [_build_entry(entry, session) for entry in entries]
    batch.materials.extend(rows)
    session.flush()
    return rows


def release_entries(batch: ProductionBatch, session: Session) -> None:
    """Restore curing batch quantities held by the batch's current entries."""
    for row in batch.materials:
        if row.kind == SourceKind.CURING_BATCH and row.curing_batch_id is not None:
            release_curing_quantity(row.curing_batch_id, row.quantity, session)


def replace_entries(
    batch: ProductionBatch,
    entries: Sequence[ConsumptionEntryInput],
    session: Session,
) -> List[BatchMaterial]:
    """
    Replace a batch's whole consumption set in the current transaction.

    Old entries are released and deleted before the new ones are allocated,
    so an entry may be re-submitted with the same curing batch and quantity.
    """
    release_entries(batch, session)
    batch.materials.clear()
    session.flush()

    rows = attach_entries(batch, entries, session)
    logger.debug(
        f"Replaced consumption entries of batch {batch.id}",
        extra={"batch_id": batch.id, "entry_count": len(rows)},
    )
    return rows


def get_entries(batch_id: int, session: Optional[Session] = None) -> List[dict]:
    """
    List the consumption entries of a batch.

    Returns:
        Entry dicts ordered by id (empty when the batch has none or doesn't exist)
    """
    if session is not None:
        return _get_entries_impl(batch_id, session)
    with session_scope() as session:
        return _get_entries_impl(batch_id, session)


def _get_entries_impl(batch_id: int, session: Session) -> List[dict]:
    rows = (
        session.query(BatchMaterial)
        .filter(BatchMaterial.batch_id == batch_id)
        .order_by(BatchMaterial.id)
        .all()
    )
    return [row.to_dict() for row in rows]
