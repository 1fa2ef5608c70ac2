"""Data Transfer Objects for the service layer.

This module provides type-safe data structures passed into and returned
from the batch services:

- Consumption entry inputs: one dataclass per source kind (a tagged
  variant), so ledger validation is a single dispatch on the type
- Query inputs: BatchFilter, PaginationParams
- Results: PaginatedResult, CompletionResult, ProvenanceReport
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar, Dict, Generic, List, Optional, TypeVar, Union

from ..models.base import serialize_value
from ..models.enums import (
    DispatchOutcome,
    ManualCategory,
    SourceKind,
    TimelineEventType,
)
from ..utils.constants import DEFAULT_UNIT, MAX_LIST_LIMIT

T = TypeVar("T")


# =============================================================================
# Consumption entry inputs
# =============================================================================


@dataclass(frozen=True)
class ReceptionSource:
    """Consumption of a registered raw-material reception."""

    kind: ClassVar[SourceKind] = SourceKind.RECEPTION

    reception_id: int
    quantity: float
    unit: str = DEFAULT_UNIT


@dataclass(frozen=True)
class CuringBatchSource:
    """Consumption of an intermediate (curing) batch."""

    kind: ClassVar[SourceKind] = SourceKind.CURING_BATCH

    curing_batch_id: int
    quantity: float
    unit: str = DEFAULT_UNIT


@dataclass(frozen=True)
class MaterialReceiptSource:
    """Consumption of a registered auxiliary-material receipt."""

    kind: ClassVar[SourceKind] = SourceKind.MATERIAL_RECEIPT

    material_receipt_id: int
    quantity: float
    unit: str = DEFAULT_UNIT


@dataclass(frozen=True)
class ManualSource:
    """Consumption of material whose delivery was never registered.

    Only the free-text name and lot number identify it; it cannot be
    traced further upstream.
    """

    kind: ClassVar[SourceKind] = SourceKind.MANUAL

    name: str
    lot_number: str
    quantity: float
    unit: str = DEFAULT_UNIT
    category: ManualCategory = ManualCategory.MATERIAL


ConsumptionEntryInput = Union[
    ReceptionSource, CuringBatchSource, MaterialReceiptSource, ManualSource
]

ENTRY_TYPES = (ReceptionSource, CuringBatchSource, MaterialReceiptSource, ManualSource)


# =============================================================================
# Queries
# =============================================================================


@dataclass
class BatchFilter:
    """Filters for list_batches.

    Attributes:
        date_from: Inclusive lower bound on production date
        date_to: Inclusive upper bound on production date
        status: BatchStatus to match
        search: Case-insensitive match on batch number, product name or notes
        product_id: Restrict to one product
    """

    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    status: Optional[str] = None
    search: Optional[str] = None
    product_id: Optional[int] = None


@dataclass
class PaginationParams:
    """Pagination parameters for list operations.

    Attributes:
        page: Page number (1-indexed, default 1)
        per_page: Items per page (default 50, max 1000)

    Raises:
        ValueError: If page < 1, per_page < 1, or per_page > 1000
    """

    page: int = 1
    per_page: int = 50

    def __post_init__(self) -> None:
        """Validate pagination parameters."""
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if self.per_page < 1:
            raise ValueError("per_page must be >= 1")
        if self.per_page > MAX_LIST_LIMIT:
            raise ValueError(f"per_page must be <= {MAX_LIST_LIMIT}")

    def offset(self) -> int:
        """Calculate SQL OFFSET value.

        Examples:
            >>> PaginationParams(page=1, per_page=50).offset()
            0
            >>> PaginationParams(page=3, per_page=25).offset()
            50
        """
        return (self.page - 1) * self.per_page


@dataclass
class PaginatedResult(Generic[T]):
    """Generic paginated result container.

    Attributes:
        items: List of items for this page
        total: Total number of items across all pages
        page: Current page number (1-indexed)
        per_page: Items per page
    """

    items: List[T]
    total: int
    page: int
    per_page: int

    @property
    def pages(self) -> int:
        """Total pages (minimum 1, even for empty results)."""
        if self.total == 0:
            return 1
        return (self.total + self.per_page - 1) // self.per_page

    @property
    def has_next(self) -> bool:
        return self.page < self.pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


# =============================================================================
# Results
# =============================================================================


@dataclass
class CompletionResult:
    """Outcome of complete_batch.

    Attributes:
        batch: Completed batch as dictionary
        compliant: Thermal compliance decision
        required_temperature: Limit the measurement was checked against
        corrective_action: What happened to the corrective-action side effect
        corrective_action_id: Intake reference when delivered
        request_id: Queue row id when a request was issued
        error: Last intake error when the request was queued for retry
    """

    batch: Dict[str, Any]
    compliant: bool
    required_temperature: float
    corrective_action: DispatchOutcome = DispatchOutcome.NOT_REQUIRED
    corrective_action_id: Optional[int] = None
    request_id: Optional[int] = None
    error: Optional[str] = None

    @property
    def fully_succeeded(self) -> bool:
        """False when the corrective action is still waiting in the retry queue."""
        return self.corrective_action != DispatchOutcome.QUEUED


@dataclass
class TimelineEvent:
    """One event of a provenance timeline.

    Attributes:
        event_type: TimelineEventType
        occurred_at: Event timestamp (sort key)
        title: Human-readable title
        source_kind: Kind of consumption entry that produced the event
            (None for production events)
        entry_id: BatchMaterial id the event was resolved from
        depth: Hops from the production batch: 0 for production events,
            1 for direct sources, 2 for the reception behind a curing batch
        batch_number: Lot/batch number of the record the event describes
        supplier_name: Supplier, None when unknown
        ended_at: End of the event, for curing spans
        resolvable: False for manual sources and dangling references
        details: Extra key/value detail for display
    """

    event_type: TimelineEventType
    occurred_at: datetime
    title: str
    source_kind: Optional[SourceKind] = None
    entry_id: Optional[int] = None
    depth: int = 0
    batch_number: Optional[str] = None
    supplier_name: Optional[str] = None
    ended_at: Optional[datetime] = None
    resolvable: bool = True
    details: Dict[str, Any] = field(default_factory=dict)

    def sort_key(self):
        return (self.occurred_at, self.event_type.precedence, self.depth)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.event_type.value,
            "date": serialize_value(self.occurred_at),
            "ended_at": serialize_value(self.ended_at),
            "title": self.title,
            "source_kind": serialize_value(self.source_kind),
            "entry_id": self.entry_id,
            "depth": self.depth,
            "batch_number": self.batch_number,
            "supplier_name": self.supplier_name,
            "resolvable": self.resolvable,
            "details": {key: serialize_value(value) for key, value in self.details.items()},
        }


@dataclass
class OriginMaterialRow:
    """One row of the flattened origin-materials (recall) report."""

    entry_id: int
    source_kind: SourceKind
    material_name: str
    quantity: Decimal
    unit: str
    lot_number: Optional[str]
    supplier_name: str
    origin_lot_number: Optional[str] = None
    resolvable: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "source_kind": self.source_kind.value,
            "material_name": self.material_name,
            "quantity": serialize_value(self.quantity),
            "unit": self.unit,
            "lot_number": self.lot_number,
            "supplier_name": self.supplier_name,
            "origin_lot_number": self.origin_lot_number,
            "resolvable": self.resolvable,
        }


@dataclass
class ProvenanceReport:
    """Result of get_provenance: batch, ordered timeline and origin rows."""

    batch: Dict[str, Any]
    timeline: List[TimelineEvent]
    origin_materials: List[OriginMaterialRow]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch": self.batch,
            "timeline": [event.to_dict() for event in self.timeline],
            "origin_materials": [row.to_dict() for row in self.origin_materials],
        }
