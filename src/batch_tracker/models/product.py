"""
Product model for finished-goods master records.

The batch engine reads two values from a product: the critical (minimum)
core temperature of the thermal process and the shelf life used to derive
a batch's expiry date.
"""

from sqlalchemy import Column, String, Integer, Float, Text, CheckConstraint, Index
from sqlalchemy.orm import relationship

from .base import BaseModel


class Product(BaseModel):
    """
    Product master record.

    Attributes:
        name: Product name (e.g., "Smoked ham")
        code: Optional internal product code
        required_temperature: Critical limit in degrees C, None means the
            engine default applies
        shelf_life_days: Days from production date to expiry
        description: Optional description

    Relationships:
        batches: ProductionBatch records of this product
    """

    __tablename__ = "products"

    name = Column(String(200), nullable=False)
    code = Column(String(50), nullable=True, unique=True)
    required_temperature = Column(Float, nullable=True)
    shelf_life_days = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=True)

    batches = relationship("ProductionBatch", back_populates="product")

    __table_args__ = (
        Index("idx_product_name", "name"),
        CheckConstraint("shelf_life_days >= 0", name="ck_product_shelf_life_non_negative"),
    )
