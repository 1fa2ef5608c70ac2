"""Pytest configuration and fixtures for service layer tests."""

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session

from batch_tracker.models import (
    CuringBatch,
    CuringStatus,
    Material,
    MaterialReceipt,
    Product,
    RawMaterial,
    RawMaterialReception,
    Supplier,
)
from batch_tracker.models.base import Base
import batch_tracker.services.database as db_module


@pytest.fixture(scope="function")
def db_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_db(db_engine):
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database with all tables
    2. Points the service layer's session factory at it
    3. Restores the original session factory afterwards
    """
    session_factory = sessionmaker(bind=db_engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    original_get_session_factory = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    yield Session

    Session.remove()
    db_module.get_session_factory = original_get_session_factory


def _add(test_db, obj):
    session = test_db()
    session.add(obj)
    session.commit()
    return obj


@pytest.fixture
def supplier(test_db):
    """Meat supplier."""
    return _add(test_db, Supplier(name="Zaklady Miesne Kowalski", vet_number="14621801"))


@pytest.fixture
def spice_supplier(test_db):
    return _add(test_db, Supplier(name="Spice Trade Ltd"))


@pytest.fixture
def product(test_db):
    """Smoked ham, critical limit 72.0 degrees, 30 days shelf life."""
    return _add(
        test_db,
        Product(name="Smoked Ham", code="SH-01", required_temperature=72.0, shelf_life_days=30),
    )


@pytest.fixture
def product_without_limit(test_db):
    """Product that relies on the default critical limit."""
    return _add(
        test_db,
        Product(name="Pork Sausage", code="PS-01", required_temperature=None, shelf_life_days=14),
    )


@pytest.fixture
def raw_material(test_db):
    return _add(test_db, RawMaterial(name="Pork ham, boneless", category="MEAT"))


@pytest.fixture
def reception(test_db, raw_material, supplier):
    """Raw ham delivery received 2024-03-01 08:00."""
    return _add(
        test_db,
        RawMaterialReception(
            raw_material_id=raw_material.id,
            supplier_id=supplier.id,
            batch_number="KOW-0301",
            quantity=200.0,
            unit="kg",
            temperature=3.5,
            is_compliant=True,
            document_number="WZ/2024/0301",
            received_at=datetime(2024, 3, 1, 8, 0),
        ),
    )


@pytest.fixture
def curing_batch(test_db, reception):
    """Completed curing batch made from the ham delivery, 50 kg available."""
    return _add(
        test_db,
        CuringBatch(
            batch_number="02-03",
            product_name="Cured ham",
            reception_id=reception.id,
            quantity=50.0,
            available_quantity=50.0,
            unit="kg",
            curing_method="INJECTION",
            status=CuringStatus.COMPLETED.value,
            start_date=datetime(2024, 3, 2, 7, 0),
            planned_end_date=datetime(2024, 3, 9, 7, 0),
            actual_end_date=datetime(2024, 3, 9, 6, 0),
        ),
    )


@pytest.fixture
def material(test_db):
    return _add(test_db, Material(name="Curing salt", category="SALT"))


@pytest.fixture
def material_receipt(test_db, material, spice_supplier):
    """Curing salt delivery received 2024-03-05 10:00."""
    return _add(
        test_db,
        MaterialReceipt(
            material_id=material.id,
            supplier_id=spice_supplier.id,
            batch_number="CS-7781",
            quantity=25.0,
            unit="kg",
            received_at=datetime(2024, 3, 5, 10, 0),
            expiry_date=datetime(2025, 3, 5),
        ),
    )


@pytest.fixture
def production_day():
    return datetime(2024, 3, 14, 6, 0)
