"""
ProductionBatch model for finished-goods production batches.

A production batch is the unit of traceability for finished product. It owns
its consumption entries (BatchMaterial) and carries the thermal-process
completion data used for the compliance decision.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    Boolean,
    Text,
    DateTime,
    ForeignKey,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel, serialize_value
from .enums import BatchStatus
from batch_tracker.utils.datetime_utils import utc_now


# Completion data is all-or-nothing
COMPLETION_FIELDS = ("end_time", "final_temperature", "temperature_compliant")


class ProductionBatch(BaseModel):
    """
    ProductionBatch model.

    Attributes:
        batch_number: Unique lot number derived from the production date
        product_id: Foreign key to Product
        quantity: Produced quantity (must be > 0)
        unit: Unit of measure
        status: BatchStatus value
        production_date: Production day (drives the batch number)
        start_time: When production started
        end_time: When the thermal process completed (None until completed)
        expiry_date: Use-by date
        final_temperature: Measured core temperature at completion
        temperature_compliant: Compliance decision at completion
        notes: Free-text notes
        operator_id: Reference to the responsible operator (external user)
        version_id: Optimistic lock counter, bumped on every flush
    """

    __tablename__ = "production_batches"

    batch_number = Column(String(50), nullable=False, unique=True)
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
    )

    quantity = Column(Float, nullable=False)
    unit = Column(String(20), nullable=False, default="kg")
    status = Column(String(20), nullable=False, default=BatchStatus.IN_PRODUCTION.value)

    production_date = Column(DateTime, nullable=False, default=utc_now)
    start_time = Column(DateTime, nullable=False, default=utc_now)
    end_time = Column(DateTime, nullable=True)
    expiry_date = Column(DateTime, nullable=False)

    final_temperature = Column(Float, nullable=True)
    temperature_compliant = Column(Boolean, nullable=True)

    notes = Column(Text, nullable=True)
    operator_id = Column(Integer, nullable=True)

    version_id = Column(Integer, nullable=False)

    product = relationship("Product", back_populates="batches")
    materials = relationship(
        "BatchMaterial",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="BatchMaterial.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        Index("idx_production_batch_product", "product_id"),
        Index("idx_production_batch_status", "status"),
        Index("idx_production_batch_production_date", "production_date"),
        CheckConstraint("quantity > 0", name="ck_production_batch_quantity_positive"),
        CheckConstraint(
            "(end_time IS NULL AND final_temperature IS NULL AND temperature_compliant IS NULL)"
            " OR (end_time IS NOT NULL AND final_temperature IS NOT NULL"
            " AND temperature_compliant IS NOT NULL)",
            name="ck_production_batch_completion_all_or_none",
        ),
    )

    @property
    def is_completed(self) -> bool:
        """True when completion data is recorded."""
        return self.end_time is not None

    def clear_completion(self) -> None:
        """Drop completion data (administrative revert to IN_PRODUCTION)."""
        for field in COMPLETION_FIELDS:
            setattr(self, field, None)

    def __repr__(self) -> str:
        """String representation of production batch."""
        return (
            f"ProductionBatch(id={self.id}, batch_number='{self.batch_number}', "
            f"status={self.status})"
        )

    def to_dict(self, include_relationships: bool = False) -> dict:
        """
        Convert production batch to dictionary.

        Args:
            include_relationships: If True, include product name and consumption entries

        Returns:
            Dictionary representation with formatted fields
        """
        result = {
            column.name: serialize_value(getattr(self, column.name))
            for column in self.__table__.columns
        }

        if include_relationships:
            result["product_name"] = self.product.name if self.product else None
            result["materials"] = [entry.to_dict() for entry in self.materials]

        return result
