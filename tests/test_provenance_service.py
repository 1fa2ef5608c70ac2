"""Tests for provenance reconstruction."""

import json
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import delete

from batch_tracker.models import (
    CuringBatch,
    MaterialReceipt,
    RawMaterialReception,
    TimelineEventType,
)
from batch_tracker.services import batch_service, provenance_service
from batch_tracker.services.compliance_service import complete_batch
from batch_tracker.services.dto import (
    CuringBatchSource,
    ManualSource,
    MaterialReceiptSource,
    ReceptionSource,
)
from batch_tracker.services.exceptions import BatchNotFoundError, ProvenanceDepthError
from batch_tracker.services.provenance_service import get_provenance, get_provenance_by_number

RECEPTION = TimelineEventType.RECEPTION
CURING = TimelineEventType.CURING
MATERIAL = TimelineEventType.MATERIAL
PRODUCTION = TimelineEventType.PRODUCTION


def _types(report):
    return [event.event_type for event in report.timeline]


def _remove(test_db, model, record_id):
    session = test_db()
    session.execute(delete(model).where(model.id == record_id))
    session.commit()
    test_db.remove()


@pytest.fixture
def start():
    return datetime(2024, 3, 14, 6, 0)


def _create(product, start, entries):
    return batch_service.create_batch(
        product.id, 100.0, production_date=start, start_time=start, entries=entries
    )


class TestTimeline:
    """Tests for timeline ordering and content."""

    def test_intermediate_batch_chain(self, test_db, product, curing_batch, start):
        batch = _create(
            product, start, [CuringBatchSource(curing_batch_id=curing_batch.id, quantity=20.0)]
        )

        report = get_provenance(batch["id"])

        assert _types(report) == [RECEPTION, CURING, PRODUCTION]
        reception_event, curing_event, production_event = report.timeline
        assert reception_event.batch_number == "KOW-0301"
        assert reception_event.depth == 2
        assert reception_event.supplier_name == "Zaklady Miesne Kowalski"
        assert curing_event.batch_number == "02-03"
        assert curing_event.depth == 1
        assert curing_event.ended_at == datetime(2024, 3, 9, 6, 0)
        assert production_event.depth == 0
        assert production_event.batch_number == batch["batch_number"]
        times = [event.occurred_at for event in report.timeline]
        assert times == sorted(times)

    def test_all_registered_sources(
        self, test_db, product, reception, curing_batch, material_receipt, start
    ):
        batch = _create(
            product,
            start,
            [
                MaterialReceiptSource(material_receipt_id=material_receipt.id, quantity=1.0),
                ReceptionSource(reception_id=reception.id, quantity=30.0),
                CuringBatchSource(curing_batch_id=curing_batch.id, quantity=10.0),
            ],
        )

        report = get_provenance(batch["id"])

        # reception 03-01 (direct and via curing), curing 03-02, salt 03-05, start 03-14
        assert _types(report) == [RECEPTION, RECEPTION, CURING, MATERIAL, PRODUCTION]
        assert [event.depth for event in report.timeline[:2]] == [1, 2]
        assert report.timeline[3].title == "Material: Curing salt"
        assert report.timeline[3].supplier_name == "Spice Trade Ltd"

    def test_completion_adds_second_production_event(self, test_db, product, start):
        batch = _create(product, start, [])
        complete_batch(batch["id"], 68.0, completed_at=datetime(2024, 3, 14, 14, 30))

        report = get_provenance(batch["id"])

        assert _types(report) == [PRODUCTION, PRODUCTION]
        completed = report.timeline[1]
        assert completed.occurred_at == datetime(2024, 3, 14, 14, 30)
        assert completed.details["final_temperature"] == 68.0
        assert completed.details["required_temperature"] == 72.0
        assert completed.details["temperature_compliant"] is False

    def test_equal_timestamps_use_type_precedence(
        self, test_db, product, reception, material_receipt, start
    ):
        session = test_db()
        session.get(RawMaterialReception, reception.id).received_at = start
        session.get(MaterialReceipt, material_receipt.id).received_at = start
        session.commit()

        batch = _create(
            product,
            start,
            [
                MaterialReceiptSource(material_receipt_id=material_receipt.id, quantity=1.0),
                ReceptionSource(reception_id=reception.id, quantity=30.0),
            ],
        )

        report = get_provenance(batch["id"])

        assert _types(report) == [RECEPTION, MATERIAL, PRODUCTION]

    def test_read_only(self, test_db, product, curing_batch, start):
        batch = _create(
            product, start, [CuringBatchSource(curing_batch_id=curing_batch.id, quantity=20.0)]
        )

        get_provenance(batch["id"])
        get_provenance(batch["id"])

        assert batch_service.get_batch(batch["id"])["version_id"] == batch["version_id"]
        stored = test_db().get(CuringBatch, curing_batch.id)
        assert stored.available_quantity == Decimal("30.0")

    def test_by_number(self, test_db, product, start):
        batch = _create(product, start, [])

        report = get_provenance_by_number(batch["batch_number"])

        assert report.batch["id"] == batch["id"]

    def test_not_found(self, test_db):
        with pytest.raises(BatchNotFoundError):
            get_provenance(999)
        with pytest.raises(BatchNotFoundError):
            get_provenance_by_number("20000101")

    def test_report_is_json_serializable(self, test_db, product, curing_batch, start):
        batch = _create(
            product, start, [CuringBatchSource(curing_batch_id=curing_batch.id, quantity=20.0)]
        )

        data = json.loads(json.dumps(get_provenance(batch["id"]).to_dict()))

        assert [event["type"] for event in data["timeline"]] == [
            "RECEPTION",
            "CURING",
            "PRODUCTION",
        ]
        assert data["timeline"][0]["date"] == "2024-03-01T08:00:00"


class TestUnresolvableSources:
    """Manual entries and deleted catalog records."""

    def test_manual_source(self, test_db, product, start):
        batch = _create(
            product,
            start,
            [ManualSource(name="Black pepper", lot_number="BP-22", quantity=0.3)],
        )

        report = get_provenance(batch["id"])

        manual = [e for e in report.timeline if e.event_type != PRODUCTION]
        assert len(manual) == 1
        event = manual[0]
        assert event.event_type == MATERIAL
        assert event.resolvable is False
        assert event.batch_number == "BP-22"
        assert "Black pepper" in event.title
        assert event.occurred_at == start

        row = report.origin_materials[0]
        assert row.supplier_name == "unregistered"
        assert row.lot_number == "BP-22"
        assert row.resolvable is False

    def test_manual_raw_material_is_reception_event(self, test_db, product, start):
        batch = _create(
            product,
            start,
            [
                ManualSource(
                    name="Pork belly",
                    lot_number="LOCAL-1",
                    quantity=5.0,
                    category="RAW_MATERIAL",
                )
            ],
        )

        report = get_provenance(batch["id"])

        assert _types(report) == [RECEPTION, PRODUCTION]

    def test_deleted_reception(self, test_db, product, reception, start):
        batch = _create(product, start, [ReceptionSource(reception_id=reception.id, quantity=5.0)])
        _remove(test_db, RawMaterialReception, reception.id)

        report = get_provenance(batch["id"])

        event = report.timeline[0]
        assert event.event_type == RECEPTION
        assert event.resolvable is False
        assert event.title == "Reception: unresolvable source"
        assert event.occurred_at == start
        assert report.origin_materials[0].material_name == "unresolvable source"

    def test_deleted_curing_batch(self, test_db, product, curing_batch, start):
        batch = _create(
            product, start, [CuringBatchSource(curing_batch_id=curing_batch.id, quantity=5.0)]
        )
        _remove(test_db, CuringBatch, curing_batch.id)

        report = get_provenance(batch["id"])

        assert _types(report) == [CURING, PRODUCTION]
        assert report.timeline[0].resolvable is False

    def test_deleted_reception_behind_curing_batch(
        self, test_db, product, reception, curing_batch, start
    ):
        batch = _create(
            product, start, [CuringBatchSource(curing_batch_id=curing_batch.id, quantity=5.0)]
        )
        _remove(test_db, RawMaterialReception, reception.id)

        report = get_provenance(batch["id"])

        curing_event = next(e for e in report.timeline if e.event_type == CURING)
        upstream = next(e for e in report.timeline if e.event_type == RECEPTION)
        assert curing_event.resolvable is True
        assert upstream.resolvable is False
        assert upstream.depth == 2
        assert upstream.occurred_at == datetime(2024, 3, 2, 7, 0)
        assert report.origin_materials[0].resolvable is False


class TestOriginMaterials:
    """Tests for the flattened origin-materials rows."""

    def test_one_row_per_entry(
        self, test_db, product, reception, curing_batch, material_receipt, start
    ):
        batch = _create(
            product,
            start,
            [
                ReceptionSource(reception_id=reception.id, quantity=30.0),
                CuringBatchSource(curing_batch_id=curing_batch.id, quantity=10.0),
                MaterialReceiptSource(material_receipt_id=material_receipt.id, quantity=1.0),
            ],
        )

        rows = get_provenance(batch["id"]).origin_materials

        assert [row.source_kind.value for row in rows] == [
            "RECEPTION",
            "CURING_BATCH",
            "MATERIAL_RECEIPT",
        ]
        assert rows[0].material_name == "Pork ham, boneless"
        assert rows[0].lot_number == "KOW-0301"
        assert rows[1].lot_number == "02-03"
        assert rows[1].origin_lot_number == "KOW-0301"
        assert rows[1].supplier_name == "Zaklady Miesne Kowalski"
        assert rows[2].material_name == "Curing salt"
        assert rows[2].quantity == 1.0


def test_depth_guard(test_db, product, curing_batch, start, monkeypatch):
    batch = _create(
        product, start, [CuringBatchSource(curing_batch_id=curing_batch.id, quantity=5.0)]
    )
    monkeypatch.setattr(provenance_service, "MAX_PROVENANCE_DEPTH", 1)

    with pytest.raises(ProvenanceDepthError):
        get_provenance(batch["id"])
