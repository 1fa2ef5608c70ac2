"""
Database models package.

This package contains all SQLAlchemy ORM models for the application.
"""

from .base import Base, BaseModel
from .enums import (
    BatchStatus,
    SourceKind,
    ManualCategory,
    CuringStatus,
    TimelineEventType,
    CorrectiveActionStatus,
    CorrectiveActionPriority,
    DeliveryStatus,
    DispatchOutcome,
)
from .supplier import Supplier
from .product import Product
from .raw_material import RawMaterial, RawMaterialReception
from .curing_batch import CuringBatch
from .material import Material, MaterialReceipt
from .production_batch import ProductionBatch
from .batch_material import BatchMaterial
from .batch_number_sequence import BatchNumberSequence
from .corrective_action import CorrectiveAction, CorrectiveActionRequest

__all__ = [
    "Base",
    "BaseModel",
    # Enums
    "BatchStatus",
    "SourceKind",
    "ManualCategory",
    "CuringStatus",
    "TimelineEventType",
    "CorrectiveActionStatus",
    "CorrectiveActionPriority",
    "DeliveryStatus",
    "DispatchOutcome",
    # Catalog (read by the engine)
    "Supplier",
    "Product",
    "RawMaterial",
    "RawMaterialReception",
    "CuringBatch",
    "Material",
    "MaterialReceipt",
    # Batch engine
    "ProductionBatch",
    "BatchMaterial",
    "BatchNumberSequence",
    # Corrective actions
    "CorrectiveAction",
    "CorrectiveActionRequest",
]
