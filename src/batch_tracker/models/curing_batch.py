"""
CuringBatch model for intermediate (cured) material.

A curing batch is made from one raw-material reception and is later
consumed, possibly by several production batches, until its available
quantity is used up. It is the only intermediate processing stage, which is
what makes provenance two hops deep.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    Text,
    DateTime,
    ForeignKey,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import CuringStatus
from batch_tracker.utils.datetime_utils import utc_now


class CuringBatch(BaseModel):
    """
    CuringBatch model.

    Attributes:
        batch_number: Unique curing batch number (e.g., "14-03")
        product_name: Name of the cured product
        reception_id: Originating raw-material reception (SET NULL on delete)
        quantity: Quantity put into curing
        available_quantity: Quantity not yet allocated to production
        unit: Unit of measure
        curing_method: DRY or INJECTION
        status: IN_PROGRESS or COMPLETED
        start_date: Curing start
        planned_end_date: Planned end of curing
        actual_end_date: Actual end of curing (None while in progress)
    """

    __tablename__ = "curing_batches"

    batch_number = Column(String(50), nullable=False, unique=True)
    product_name = Column(String(200), nullable=True)
    reception_id = Column(
        Integer,
        ForeignKey("raw_material_receptions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    quantity = Column(Numeric(10, 3), nullable=False)
    available_quantity = Column(Numeric(10, 3), nullable=False)
    unit = Column(String(20), nullable=False, default="kg")
    curing_method = Column(String(20), nullable=True)
    status = Column(String(20), nullable=False, default=CuringStatus.IN_PROGRESS.value)
    start_date = Column(DateTime, nullable=False, default=utc_now)
    planned_end_date = Column(DateTime, nullable=True)
    actual_end_date = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    reception = relationship("RawMaterialReception")

    __table_args__ = (
        Index("idx_curing_batch_status", "status"),
        CheckConstraint("quantity > 0", name="ck_curing_batch_quantity_positive"),
        CheckConstraint(
            "available_quantity >= 0", name="ck_curing_batch_available_non_negative"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"CuringBatch(id={self.id}, batch_number='{self.batch_number}', "
            f"available={self.available_quantity})"
        )
