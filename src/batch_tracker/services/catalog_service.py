"""Catalog Service - read access to upstream catalog records.

Suppliers, products, receptions, curing batches and material receipts are
maintained by other parts of the system. The batch engine only reads them:
to validate references, to offer consumable sources, and to name origins in
provenance reports.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from ..models import (
    CuringBatch,
    CuringStatus,
    Material,
    MaterialReceipt,
    Product,
    RawMaterialReception,
)
from ..utils.datetime_utils import as_naive_utc, utc_now
from .database import session_scope
from .exceptions import ProductNotFoundError


def get_product_or_raise(product_id: int, session: Session) -> Product:
    """
    Load a product by id.

    Raises:
        ProductNotFoundError: If the product doesn't exist
    """
    product = session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


def list_available_curing_batches(session: Optional[Session] = None) -> List[Dict[str, Any]]:
    """
    List completed curing batches that still have quantity to consume.

    Returns:
        List of curing batch dicts with ``used_quantity`` and the originating
        reception's batch number and supplier, newest end date first.
    """
    if session is not None:
        return _list_available_curing_batches_impl(session)
    with session_scope() as session:
        return _list_available_curing_batches_impl(session)


def _list_available_curing_batches_impl(session: Session) -> List[Dict[str, Any]]:
    batches = (
        session.query(CuringBatch)
        .options(joinedload(CuringBatch.reception).joinedload(RawMaterialReception.supplier))
        .filter(CuringBatch.status == CuringStatus.COMPLETED.value)
        .filter(CuringBatch.available_quantity > 0)
        .order_by(CuringBatch.actual_end_date.desc(), CuringBatch.id.desc())
        .all()
    )

    result = []
    for batch in batches:
        data = batch.to_dict()
        data["used_quantity"] = batch.quantity - batch.available_quantity
        reception = batch.reception
        data["reception_batch_number"] = reception.batch_number if reception else None
        data["supplier_name"] = (
            reception.supplier.name if reception is not None and reception.supplier else None
        )
        result.append(data)
    return result


def list_available_material_receipts(
    as_of: Optional[datetime] = None,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """
    List auxiliary-material receipts that are not expired.

    Args:
        as_of: Reference time for the expiry check (defaults to now)
        session: Optional database session

    Returns:
        Receipt dicts with material and supplier names, ordered by material
        name then most recent delivery first.
    """
    if session is not None:
        return _list_available_material_receipts_impl(as_of, session)
    with session_scope() as session:
        return _list_available_material_receipts_impl(as_of, session)


def _list_available_material_receipts_impl(
    as_of: Optional[datetime], session: Session
) -> List[Dict[str, Any]]:
    reference = as_naive_utc(as_of or utc_now())

    receipts = (
        session.query(MaterialReceipt)
        .join(Material, MaterialReceipt.material_id == Material.id)
        .options(joinedload(MaterialReceipt.supplier))
        .filter(
            (MaterialReceipt.expiry_date.is_(None)) | (MaterialReceipt.expiry_date >= reference)
        )
        .order_by(Material.name.asc(), MaterialReceipt.received_at.desc())
        .all()
    )

    result = []
    for receipt in receipts:
        data = receipt.to_dict()
        data["material_name"] = receipt.material.name
        data["supplier_name"] = receipt.supplier.name if receipt.supplier else None
        result.append(data)
    return result
