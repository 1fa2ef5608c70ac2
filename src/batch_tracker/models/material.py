"""
Auxiliary material models (spices, casings, brine components, packaging).

Part of the catalog the batch engine reads; a MaterialReceipt is one
registered delivery of an auxiliary material.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    DateTime,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from batch_tracker.utils.datetime_utils import utc_now


class Material(BaseModel):
    """
    Auxiliary material master record.

    Attributes:
        name: Material name (e.g., "Curing salt")
        category: Optional category
        unit: Default unit of measure
    """

    __tablename__ = "materials"

    name = Column(String(200), nullable=False)
    category = Column(String(50), nullable=True)
    unit = Column(String(20), nullable=False, default="kg")

    receipts = relationship("MaterialReceipt", back_populates="material")


class MaterialReceipt(BaseModel):
    """
    MaterialReceipt model for an auxiliary-material delivery.

    Attributes:
        material_id: Foreign key to Material
        supplier_id: Foreign key to Supplier (nullable)
        batch_number: Supplier lot number
        quantity: Received quantity
        unit: Unit of measure
        received_at: When the delivery was received
        expiry_date: Best-before of the delivered lot, optional
    """

    __tablename__ = "material_receipts"

    material_id = Column(
        Integer, ForeignKey("materials.id", ondelete="RESTRICT"), nullable=False
    )
    supplier_id = Column(
        Integer, ForeignKey("suppliers.id", ondelete="SET NULL"), nullable=True
    )

    batch_number = Column(String(100), nullable=False)
    quantity = Column(Float, nullable=False)
    unit = Column(String(20), nullable=False, default="kg")
    received_at = Column(DateTime, nullable=False, default=utc_now)
    expiry_date = Column(DateTime, nullable=True)

    material = relationship("Material", back_populates="receipts")
    supplier = relationship("Supplier")

    __table_args__ = (
        Index("idx_material_receipt_received_at", "received_at"),
        Index("idx_material_receipt_expiry", "expiry_date"),
    )
