"""
Supplier model for raw-material and auxiliary-material vendors.

Suppliers are master data maintained outside the batch engine; the engine
only reads them to name the origin of consumed material in provenance
reports and recall notices.
"""

from sqlalchemy import Column, String, Boolean, Text, Index

from .base import BaseModel


class Supplier(BaseModel):
    """
    Supplier model representing vendors that deliver material.

    Attributes:
        name: Supplier name
        vet_number: Veterinary approval number (meat suppliers), optional
        address: Optional address line
        notes: Optional notes
        is_active: Soft delete flag
    """

    __tablename__ = "suppliers"

    name = Column(String(200), nullable=False)
    vet_number = Column(String(50), nullable=True)
    address = Column(String(300), nullable=True)
    notes = Column(Text, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("idx_supplier_name", "name"),
        Index("idx_supplier_active", "is_active"),
    )

    def __repr__(self) -> str:
        """String representation of supplier."""
        return f"Supplier(id={self.id}, name='{self.name}')"
