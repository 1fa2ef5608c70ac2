"""
Raw material and raw-material reception models.

A reception is one delivery of a raw material from a supplier, the first
link of every provenance chain.
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
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from batch_tracker.utils.datetime_utils import utc_now


class RawMaterial(BaseModel):
    """
    Raw material master record (e.g., "Pork ham, boneless").

    Attributes:
        name: Raw material name
        category: Category such as MEAT, SPICE, CASING
        unit: Default unit of measure
    """

    __tablename__ = "raw_materials"

    name = Column(String(200), nullable=False)
    category = Column(String(50), nullable=True)
    unit = Column(String(20), nullable=False, default="kg")

    receptions = relationship("RawMaterialReception", back_populates="raw_material")


class RawMaterialReception(BaseModel):
    """
    RawMaterialReception model for a single raw-material delivery.

    Attributes:
        raw_material_id: Foreign key to RawMaterial
        supplier_id: Foreign key to Supplier (nullable for historical rows)
        batch_number: Supplier's lot/batch number printed on the delivery
        quantity: Received quantity
        unit: Unit of measure
        temperature: Measured delivery temperature, optional
        is_compliant: Whether the reception passed incoming inspection
        document_number: Delivery note / invoice number
        received_at: When the delivery was received
    """

    __tablename__ = "raw_material_receptions"

    raw_material_id = Column(
        Integer, ForeignKey("raw_materials.id", ondelete="RESTRICT"), nullable=False
    )
    supplier_id = Column(
        Integer, ForeignKey("suppliers.id", ondelete="SET NULL"), nullable=True
    )

    batch_number = Column(String(100), nullable=False)
    quantity = Column(Float, nullable=False)
    unit = Column(String(20), nullable=False, default="kg")
    temperature = Column(Float, nullable=True)
    is_compliant = Column(Boolean, nullable=False, default=True)
    document_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    received_at = Column(DateTime, nullable=False, default=utc_now)

    raw_material = relationship("RawMaterial", back_populates="receptions")
    supplier = relationship("Supplier")

    __table_args__ = (
        Index("idx_reception_received_at", "received_at"),
        Index("idx_reception_batch_number", "batch_number"),
    )

    def __repr__(self) -> str:
        return (
            f"RawMaterialReception(id={self.id}, batch_number='{self.batch_number}', "
            f"quantity={self.quantity})"
        )
