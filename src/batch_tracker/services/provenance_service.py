"""
Provenance Service - traceability timeline for a production batch.

Reconstructs, read-only, where a batch came from:

- PRODUCTION events for the batch start and, once completed, its completion
- one event per consumption entry, resolved by source kind:
  RECEPTION (raw-material delivery), CURING (intermediate batch, followed by
  the RECEPTION it was made from), MATERIAL (auxiliary-material delivery),
  or a synthetic event for a manual/unregistered source
- a flattened origin-materials list, one row per entry, for recall notices

Events are sorted by timestamp; equal timestamps are ordered
RECEPTION, CURING, MATERIAL, PRODUCTION.

Historical records must stay viewable after upstream catalog rows are
deleted, so a dangling reference becomes an event flagged as not
resolvable rather than an error.
"""

from contextlib import nullcontext
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload, selectinload

from ..models import (
    BatchMaterial,
    CuringBatch,
    ManualCategory,
    MaterialReceipt,
    ProductionBatch,
    RawMaterialReception,
    SourceKind,
    TimelineEventType,
)
from ..utils.constants import MAX_PROVENANCE_DEPTH, UNREGISTERED_SUPPLIER, UNRESOLVABLE_SOURCE
from ..utils.datetime_utils import as_naive_utc
from .compliance_service import required_temperature_for
from .database import session_scope
from .dto import OriginMaterialRow, ProvenanceReport, TimelineEvent
from .exceptions import BatchNotFoundError, ProvenanceDepthError
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

UNKNOWN_SUPPLIER = "unknown"

Resolution = Tuple[List[TimelineEvent], OriginMaterialRow]


# =============================================================================
# Public API
# =============================================================================


def get_provenance(batch_id: int, session: Optional[Session] = None) -> ProvenanceReport:
    """
    Build the provenance report of a production batch.

    Args:
        batch_id: Batch to trace
        session: Optional database session

    Returns:
        ProvenanceReport with the batch dict, the ordered timeline and the
        origin-materials rows

    Raises:
        BatchNotFoundError: If batch doesn't exist
        ProvenanceDepthError: Only on corrupt data (resolution deeper than
            MAX_PROVENANCE_DEPTH)
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        batch = _load_batch(batch_id, session)
        return _build_report(batch)


def get_provenance_by_number(
    batch_number: str, session: Optional[Session] = None
) -> ProvenanceReport:
    """
    Build the provenance report for a printed batch number.

    Raises:
        BatchNotFoundError: If no batch has this number
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        batch_id = (
            session.query(ProductionBatch.id)
            .filter(ProductionBatch.batch_number == batch_number)
            .scalar()
        )
        if batch_id is None:
            raise BatchNotFoundError(batch_number)
        return _build_report(_load_batch(batch_id, session))


# =============================================================================
# Loading
# =============================================================================


def _load_batch(batch_id: int, session: Session) -> ProductionBatch:
    batch = (
        session.query(ProductionBatch)
        .options(
            joinedload(ProductionBatch.product),
            selectinload(ProductionBatch.materials)
            .joinedload(BatchMaterial.reception)
            .joinedload(RawMaterialReception.supplier),
            selectinload(ProductionBatch.materials)
            .joinedload(BatchMaterial.reception)
            .joinedload(RawMaterialReception.raw_material),
            selectinload(ProductionBatch.materials)
            .joinedload(BatchMaterial.curing_batch)
            .joinedload(CuringBatch.reception),
            selectinload(ProductionBatch.materials)
            .joinedload(BatchMaterial.material_receipt)
            .joinedload(MaterialReceipt.supplier),
            selectinload(ProductionBatch.materials)
            .joinedload(BatchMaterial.material_receipt)
            .joinedload(MaterialReceipt.material),
        )
        .filter(ProductionBatch.id == batch_id)
        .first()
    )
    if batch is None:
        raise BatchNotFoundError(batch_id)
    return batch


# =============================================================================
# Report assembly
# =============================================================================


def _build_report(batch: ProductionBatch) -> ProvenanceReport:
    fallback_time = _batch_start(batch)
    timeline = _production_events(batch)
    origin_materials = []

    for entry in batch.materials:
        events, row = _resolve_entry(entry, fallback_time, depth=1, batch_id=batch.id)
        timeline.extend(events)
        origin_materials.append(row)

    timeline.sort(key=TimelineEvent.sort_key)

    log_operation(
        logger,
        "get_provenance",
        "success",
        batch_id=batch.id,
        batch_number=batch.batch_number,
        event_count=len(timeline),
        unresolvable_count=sum(1 for event in timeline if not event.resolvable),
    )
    return ProvenanceReport(
        batch=batch.to_dict(include_relationships=True),
        timeline=timeline,
        origin_materials=origin_materials,
    )


def _batch_start(batch: ProductionBatch) -> datetime:
    return as_naive_utc(batch.start_time or batch.production_date)


def _production_events(batch: ProductionBatch) -> List[TimelineEvent]:
    product_name = batch.product.name if batch.product else UNRESOLVABLE_SOURCE
    events = [
        TimelineEvent(
            event_type=TimelineEventType.PRODUCTION,
            occurred_at=_batch_start(batch),
            title=f"Production: {product_name}",
            depth=0,
            batch_number=batch.batch_number,
            details={
                "quantity": f"{batch.quantity} {batch.unit}",
                "operator_id": batch.operator_id,
                "expiry_date": batch.expiry_date,
                "status": batch.status,
            },
        )
    ]

    if batch.is_completed:
        events.append(
            TimelineEvent(
                event_type=TimelineEventType.PRODUCTION,
                occurred_at=as_naive_utc(batch.end_time),
                title=f"Production completed: {product_name}",
                depth=0,
                batch_number=batch.batch_number,
                details={
                    "final_temperature": batch.final_temperature,
                    "required_temperature": required_temperature_for(batch.product),
                    "temperature_compliant": batch.temperature_compliant,
                },
            )
        )
    return events


# =============================================================================
# Source resolution
# =============================================================================


def _resolve_entry(
    entry: BatchMaterial, fallback_time: datetime, depth: int, batch_id: int
) -> Resolution:
    """Resolve one consumption entry; a single dispatch over the source kind."""
    if depth > MAX_PROVENANCE_DEPTH:
        raise ProvenanceDepthError(batch_id, MAX_PROVENANCE_DEPTH)

    return _RESOLVERS[entry.kind](entry, fallback_time, depth, batch_id)


def _supplier_name(record) -> Optional[str]:
    supplier = getattr(record, "supplier", None)
    return supplier.name if supplier is not None else None


def _raw_material_name(reception: RawMaterialReception) -> str:
    return reception.raw_material.name if reception.raw_material else UNRESOLVABLE_SOURCE


def _unresolvable_event(
    event_type: TimelineEventType,
    entry: BatchMaterial,
    occurred_at: datetime,
    depth: int,
) -> TimelineEvent:
    return TimelineEvent(
        event_type=event_type,
        occurred_at=occurred_at,
        title=f"{event_type.value.capitalize()}: {UNRESOLVABLE_SOURCE}",
        source_kind=entry.kind,
        entry_id=entry.id,
        depth=depth,
        resolvable=False,
        details={"reason": "upstream record no longer exists"},
    )


def _unresolvable_row(entry: BatchMaterial) -> OriginMaterialRow:
    return OriginMaterialRow(
        entry_id=entry.id,
        source_kind=entry.kind,
        material_name=UNRESOLVABLE_SOURCE,
        quantity=entry.quantity,
        unit=entry.unit,
        lot_number=None,
        supplier_name=UNRESOLVABLE_SOURCE,
        resolvable=False,
    )


def _reception_event(
    reception: Optional[RawMaterialReception],
    entry: BatchMaterial,
    fallback_time: datetime,
    depth: int,
    title_prefix: str,
) -> TimelineEvent:
    if reception is None:
        return _unresolvable_event(TimelineEventType.RECEPTION, entry, fallback_time, depth)

    name = _raw_material_name(reception)
    return TimelineEvent(
        event_type=TimelineEventType.RECEPTION,
        occurred_at=as_naive_utc(reception.received_at),
        title=f"{title_prefix}: {name}",
        source_kind=entry.kind,
        entry_id=entry.id,
        depth=depth,
        batch_number=reception.batch_number,
        supplier_name=_supplier_name(reception),
        details={
            "quantity": f"{reception.quantity} {reception.unit}",
            "temperature": reception.temperature,
            "document_number": reception.document_number,
            "is_compliant": reception.is_compliant,
        },
    )


def _resolve_reception(
    entry: BatchMaterial, fallback_time: datetime, depth: int, batch_id: int
) -> Resolution:
    reception = entry.reception
    event = _reception_event(reception, entry, fallback_time, depth, "Raw material reception")
    if reception is None:
        return [event], _unresolvable_row(entry)

    row = OriginMaterialRow(
        entry_id=entry.id,
        source_kind=entry.kind,
        material_name=_raw_material_name(reception),
        quantity=entry.quantity,
        unit=entry.unit,
        lot_number=reception.batch_number,
        supplier_name=event.supplier_name or UNKNOWN_SUPPLIER,
    )
    return [event], row


def _resolve_curing_batch(
    entry: BatchMaterial, fallback_time: datetime, depth: int, batch_id: int
) -> Resolution:
    curing = entry.curing_batch
    if curing is None:
        event = _unresolvable_event(TimelineEventType.CURING, entry, fallback_time, depth)
        return [event], _unresolvable_row(entry)

    started = as_naive_utc(curing.start_date)
    name = curing.product_name or "Cured material"
    curing_event = TimelineEvent(
        event_type=TimelineEventType.CURING,
        occurred_at=started,
        ended_at=as_naive_utc(curing.actual_end_date),
        title=f"Curing: {name}",
        source_kind=entry.kind,
        entry_id=entry.id,
        depth=depth,
        batch_number=curing.batch_number,
        details={
            "quantity": f"{curing.quantity} {curing.unit}",
            "used_quantity": f"{entry.quantity} {entry.unit}",
            "curing_method": curing.curing_method,
            "status": curing.status,
        },
    )

    # One more hop: the delivery the curing batch was made from
    upstream_depth = depth + 1
    if upstream_depth > MAX_PROVENANCE_DEPTH:
        raise ProvenanceDepthError(batch_id, MAX_PROVENANCE_DEPTH)
    reception = curing.reception
    reception_event = _reception_event(
        reception, entry, started, upstream_depth, "Raw material reception for curing"
    )

    row = OriginMaterialRow(
        entry_id=entry.id,
        source_kind=entry.kind,
        material_name=name,
        quantity=entry.quantity,
        unit=entry.unit,
        lot_number=curing.batch_number,
        supplier_name=(
            reception_event.supplier_name or UNKNOWN_SUPPLIER
            if reception_event.resolvable
            else UNRESOLVABLE_SOURCE
        ),
        origin_lot_number=reception.batch_number if reception is not None else None,
        resolvable=reception_event.resolvable,
    )
    return [curing_event, reception_event], row


def _resolve_material_receipt(
    entry: BatchMaterial, fallback_time: datetime, depth: int, batch_id: int
) -> Resolution:
    receipt = entry.material_receipt
    if receipt is None:
        event = _unresolvable_event(TimelineEventType.MATERIAL, entry, fallback_time, depth)
        return [event], _unresolvable_row(entry)

    name = receipt.material.name if receipt.material else UNRESOLVABLE_SOURCE
    supplier_name = _supplier_name(receipt)
    event = TimelineEvent(
        event_type=TimelineEventType.MATERIAL,
        occurred_at=as_naive_utc(receipt.received_at),
        title=f"Material: {name}",
        source_kind=entry.kind,
        entry_id=entry.id,
        depth=depth,
        batch_number=receipt.batch_number,
        supplier_name=supplier_name,
        details={"used_quantity": f"{entry.quantity} {entry.unit}"},
    )
    row = OriginMaterialRow(
        entry_id=entry.id,
        source_kind=entry.kind,
        material_name=name,
        quantity=entry.quantity,
        unit=entry.unit,
        lot_number=receipt.batch_number,
        supplier_name=supplier_name or UNKNOWN_SUPPLIER,
    )
    return [event], row


def _resolve_manual(
    entry: BatchMaterial, fallback_time: datetime, depth: int, batch_id: int
) -> Resolution:
    event_type = (
        TimelineEventType.RECEPTION
        if entry.manual_category == ManualCategory.RAW_MATERIAL.value
        else TimelineEventType.MATERIAL
    )
    event = TimelineEvent(
        event_type=event_type,
        occurred_at=fallback_time,
        title=f"Unregistered material: {entry.manual_name}",
        source_kind=entry.kind,
        entry_id=entry.id,
        depth=depth,
        batch_number=entry.manual_lot_number,
        supplier_name=None,
        resolvable=False,
        details={
            "used_quantity": f"{entry.quantity} {entry.unit}",
            "reason": "no registered delivery; cannot be traced further upstream",
        },
    )
    row = OriginMaterialRow(
        entry_id=entry.id,
        source_kind=entry.kind,
        material_name=entry.manual_name,
        quantity=entry.quantity,
        unit=entry.unit,
        lot_number=entry.manual_lot_number,
        supplier_name=UNREGISTERED_SUPPLIER,
        resolvable=False,
    )
    return [event], row


_RESOLVERS: Dict[SourceKind, Callable[..., Resolution]] = {
    SourceKind.RECEPTION: _resolve_reception,
    SourceKind.CURING_BATCH: _resolve_curing_batch,
    SourceKind.MATERIAL_RECEIPT: _resolve_material_receipt,
    SourceKind.MANUAL: _resolve_manual,
}
