"""Tests for engine setup and transaction scopes."""

import pytest
from sqlalchemy import text

from batch_tracker.models import Product, Supplier
from batch_tracker.services import database
from batch_tracker.services.database import create_database_engine, session_scope
from batch_tracker.utils.config import Config, reset_config, set_config


@pytest.fixture
def file_database(tmp_path):
    set_config(Config("test", database_url=f"sqlite:///{tmp_path / 'batches.db'}"))
    yield
    database.close_connections()
    reset_config()


def test_sqlite_foreign_keys_enabled():
    engine = create_database_engine("sqlite:///:memory:")

    with engine.connect() as conn:
        assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1
    engine.dispose()


def test_session_scope_commits(test_db):
    with session_scope() as session:
        session.add(Supplier(name="Farm Co-op"))

    assert test_db().query(Supplier).count() == 1


def test_session_scope_rolls_back(test_db):
    with pytest.raises(RuntimeError):
        with session_scope() as session:
            session.add(Supplier(name="Farm Co-op"))
            session.flush()
            raise RuntimeError("boom")

    assert test_db().query(Supplier).count() == 0


def test_initialize_and_reset(file_database):
    database.initialize_app_database()
    assert database.verify_database()

    with session_scope() as session:
        session.add(Product(name="Smoked Ham", shelf_life_days=30))

    with pytest.raises(ValueError):
        database.reset_database()
    database.reset_database(confirm=True)

    with session_scope() as session:
        assert session.query(Product).count() == 0
