"""
BatchMaterial model: one consumption entry of a production batch.

Each entry references exactly one upstream source, identified by
``source_kind``:

- RECEPTION: a raw-material reception (``reception_id``)
- CURING_BATCH: an intermediate curing batch (``curing_batch_id``)
- MATERIAL_RECEIPT: an auxiliary-material receipt (``material_receipt_id``)
- MANUAL: an unregistered delivery, described by ``manual_name`` and
  ``manual_lot_number`` only

Catalog references are SET NULL on delete. The kind is kept, so a deleted
upstream record shows up as an unresolvable source instead of an entry
that claims to have none.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    ForeignKey,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel, serialize_value
from .enums import SourceKind


class BatchMaterial(BaseModel):
    """
    BatchMaterial model (material consumption entry).

    Attributes:
        batch_id: Owning ProductionBatch (CASCADE)
        source_kind: SourceKind discriminant
        reception_id: RawMaterialReception reference
        curing_batch_id: CuringBatch reference
        material_receipt_id: MaterialReceipt reference
        manual_name: Free-text material name (MANUAL only)
        manual_lot_number: Free-text lot number (MANUAL only)
        manual_category: ManualCategory value (MANUAL only)
        quantity: Consumed quantity (must be > 0)
        unit: Unit of measure
    """

    __tablename__ = "batch_materials"

    batch_id = Column(
        Integer,
        ForeignKey("production_batches.id", ondelete="CASCADE"),
        nullable=False,
    )
    source_kind = Column(String(20), nullable=False)

    reception_id = Column(
        Integer,
        ForeignKey("raw_material_receptions.id", ondelete="SET NULL"),
        nullable=True,
    )
    curing_batch_id = Column(
        Integer,
        ForeignKey("curing_batches.id", ondelete="SET NULL"),
        nullable=True,
    )
    material_receipt_id = Column(
        Integer,
        ForeignKey("material_receipts.id", ondelete="SET NULL"),
        nullable=True,
    )

    manual_name = Column(String(200), nullable=True)
    manual_lot_number = Column(String(100), nullable=True)
    manual_category = Column(String(20), nullable=True)

    quantity = Column(Numeric(10, 3), nullable=False)
    unit = Column(String(20), nullable=False, default="kg")

    batch = relationship("ProductionBatch", back_populates="materials")
    reception = relationship("RawMaterialReception")
    curing_batch = relationship("CuringBatch")
    material_receipt = relationship("MaterialReceipt")

    __table_args__ = (
        Index("idx_batch_material_batch", "batch_id"),
        Index("idx_batch_material_reception", "reception_id"),
        Index("idx_batch_material_curing_batch", "curing_batch_id"),
        Index("idx_batch_material_material_receipt", "material_receipt_id"),
        CheckConstraint("quantity > 0", name="ck_batch_material_quantity_positive"),
        CheckConstraint(
            "(source_kind = 'RECEPTION' AND curing_batch_id IS NULL"
            " AND material_receipt_id IS NULL AND manual_name IS NULL)"
            " OR (source_kind = 'CURING_BATCH' AND reception_id IS NULL"
            " AND material_receipt_id IS NULL AND manual_name IS NULL)"
            " OR (source_kind = 'MATERIAL_RECEIPT' AND reception_id IS NULL"
            " AND curing_batch_id IS NULL AND manual_name IS NULL)"
            " OR (source_kind = 'MANUAL' AND reception_id IS NULL"
            " AND curing_batch_id IS NULL AND material_receipt_id IS NULL"
            " AND manual_name IS NOT NULL AND manual_lot_number IS NOT NULL)",
            name="ck_batch_material_single_source",
        ),
    )

    @property
    def kind(self) -> SourceKind:
        return SourceKind(self.source_kind)

    @property
    def source_id(self):
        """Id of the referenced catalog row, None for manual or dangling sources."""
        return {
            SourceKind.RECEPTION: self.reception_id,
            SourceKind.CURING_BATCH: self.curing_batch_id,
            SourceKind.MATERIAL_RECEIPT: self.material_receipt_id,
            SourceKind.MANUAL: None,
        }[self.kind]

    def __repr__(self) -> str:
        return (
            f"BatchMaterial(id={self.id}, batch_id={self.batch_id}, "
            f"source_kind={self.source_kind}, quantity={self.quantity})"
        )

    def to_dict(self, include_relationships: bool = False) -> dict:
        result = {
            column.name: serialize_value(getattr(self, column.name))
            for column in self.__table__.columns
        }
        result["source_id"] = self.source_id
        return result
