"""Tests for batch completion, thermal compliance and corrective actions."""

from datetime import datetime

import pytest

from batch_tracker.models import (
    CorrectiveAction,
    CorrectiveActionRequest,
    DispatchOutcome,
    Product,
    ProductionBatch,
)
from batch_tracker.services import batch_service, corrective_action_service
from batch_tracker.services.compliance_service import (
    complete_batch,
    evaluate_temperature,
    required_temperature_for,
)
from batch_tracker.services.corrective_action_service import CorrectiveActionIntake
from batch_tracker.services.exceptions import (
    BatchNotFoundError,
    ConflictError,
    SideEffectFailure,
    ValidationError,
)
from batch_tracker.utils.constants import CORRECTIVE_ACTION_MAX_ATTEMPTS


class FailingIntake(CorrectiveActionIntake):
    """Intake that is always unreachable."""

    def __init__(self):
        self.calls = 0

    def submit(self, payload, session):
        self.calls += 1
        raise SideEffectFailure("QMS unreachable")


class RecordingIntake(CorrectiveActionIntake):
    def __init__(self):
        self.payloads = []

    def submit(self, payload, session):
        self.payloads.append(payload)
        return 500 + len(self.payloads)


def _fresh(test_db):
    test_db.remove()
    return test_db()


@pytest.fixture
def batch(test_db, product, production_day):
    return batch_service.create_batch(product.id, 100.0, production_date=production_day)


@pytest.fixture
def batch_without_limit(test_db, product_without_limit, production_day):
    return batch_service.create_batch(
        product_without_limit.id, 40.0, production_date=production_day
    )


# =============================================================================
# Compliance decision
# =============================================================================


class TestEvaluateTemperature:
    """Tests for the compliance rule."""

    @pytest.mark.parametrize(
        "final,required,expected",
        [
            (75.5, 72.0, True),
            (72.0, 72.0, True),
            (71.99, 72.0, False),
            (68.0, 72.0, False),
        ],
    )
    def test_limit_is_inclusive(self, final, required, expected):
        assert evaluate_temperature(final, required) is expected

    def test_default_limit(self, product_without_limit):
        assert required_temperature_for(product_without_limit) == 72.0
        assert required_temperature_for(None) == 72.0


class TestCompleteBatch:
    """Tests for complete_batch()."""

    def test_compliant_completion(self, test_db, batch):
        result = complete_batch(batch["id"], 75.5, completed_at=datetime(2024, 3, 14, 15, 0))

        assert result.compliant is True
        assert result.required_temperature == 72.0
        assert result.corrective_action == DispatchOutcome.NOT_REQUIRED
        assert result.fully_succeeded
        assert result.batch["status"] == "COMPLETED"
        assert result.batch["final_temperature"] == 75.5
        assert result.batch["end_time"] == "2024-03-14T15:00:00"
        assert corrective_action_service.list_corrective_actions() == []

    def test_non_compliant_issues_one_corrective_action(self, test_db, batch):
        result = complete_batch(batch["id"], 68.0)

        assert result.compliant is False
        assert result.corrective_action == DispatchOutcome.DELIVERED
        assert result.batch["temperature_compliant"] is False

        actions = corrective_action_service.list_corrective_actions(batch["id"])
        assert len(actions) == 1
        action = actions[0]
        assert action["id"] == result.corrective_action_id
        assert action["expected_value"] == 72.0
        assert action["actual_value"] == 68.0
        assert action["reason_code"] == "THERMAL_PROCESS_NON_COMPLIANCE"
        assert action["related_ccp"] == "CCP3"
        assert action["priority"] == "HIGH"
        assert action["status"] == "OPEN"
        assert batch["batch_number"] in action["title"]

    def test_boundary_is_compliant(self, test_db, batch):
        result = complete_batch(batch["id"], 72.0)

        assert result.compliant is True
        assert corrective_action_service.list_corrective_actions() == []

    def test_default_limit_applies(self, test_db, batch_without_limit):
        result = complete_batch(batch_without_limit["id"], 71.0)

        assert result.required_temperature == 72.0
        assert result.compliant is False

    def test_product_specific_limit(self, test_db, product_without_limit, production_day):
        session = test_db()
        session.get(Product, product_without_limit.id).required_temperature = 68.0
        session.commit()
        created = batch_service.create_batch(
            product_without_limit.id, 40.0, production_date=production_day
        )

        result = complete_batch(created["id"], 69.0)

        assert result.required_temperature == 68.0
        assert result.compliant is True

    @pytest.mark.parametrize(
        "temperature", [float("nan"), float("inf"), float("-inf"), 10**400, "75", None, True]
    )
    def test_invalid_temperature_leaves_batch_untouched(self, test_db, batch, temperature):
        with pytest.raises(ValidationError, match="final_temperature"):
            complete_batch(batch["id"], temperature)

        stored = batch_service.get_batch(batch["id"])
        assert stored["status"] == "IN_PRODUCTION"
        assert stored["final_temperature"] is None
        assert stored["version_id"] == batch["version_id"]

    def test_not_found(self, test_db):
        with pytest.raises(BatchNotFoundError):
            complete_batch(999, 75.0)

    def test_second_completion_conflicts(self, test_db, batch):
        complete_batch(batch["id"], 68.0)

        with pytest.raises(ConflictError, match="only batches IN_PRODUCTION"):
            complete_batch(batch["id"], 80.0)

        stored = batch_service.get_batch(batch["id"])
        assert stored["final_temperature"] == 68.0
        assert len(corrective_action_service.list_corrective_actions(batch["id"])) == 1

    def test_stale_version_conflicts(self, test_db, batch):
        batch_service.update_batch(batch["id"], notes="checked")

        with pytest.raises(ConflictError):
            complete_batch(batch["id"], 75.0, expected_version=batch["version_id"])

    def test_completion_data_all_or_nothing(self, test_db, batch):
        complete_batch(batch["id"], 75.0)

        stored = _fresh(test_db).get(ProductionBatch, batch["id"])
        assert stored.end_time is not None
        assert stored.final_temperature == 75.0
        assert stored.temperature_compliant is True

    def test_recompletion_after_revert_issues_new_action(self, test_db, batch):
        complete_batch(batch["id"], 68.0)
        batch_service.update_batch(batch["id"], status="IN_PRODUCTION")

        complete_batch(batch["id"], 69.0)

        actions = corrective_action_service.list_corrective_actions(batch["id"])
        assert [a["actual_value"] for a in actions] == [68.0, 69.0]


# =============================================================================
# Corrective action delivery
# =============================================================================


class TestCorrectiveActionDelivery:
    """Tests for the corrective-action queue."""

    def test_payload_sent_to_intake(self, test_db, batch):
        intake = RecordingIntake()

        result = complete_batch(batch["id"], 68.0, intake=intake)

        assert result.corrective_action == DispatchOutcome.DELIVERED
        assert result.corrective_action_id == 501
        payload = intake.payloads[0]
        assert payload.batch_id == batch["id"]
        assert payload.batch_number == batch["batch_number"]
        assert payload.expected_value == 72.0
        assert payload.actual_value == 68.0
        assert payload.to_dict()["reasonCode"] == "THERMAL_PROCESS_NON_COMPLIANCE"

    def test_intake_failure_keeps_completion_and_queues_request(self, test_db, batch):
        result = complete_batch(batch["id"], 68.0, intake=FailingIntake())

        assert result.compliant is False
        assert result.corrective_action == DispatchOutcome.QUEUED
        assert not result.fully_succeeded
        assert result.error == "QMS unreachable"
        assert result.request_id is not None

        stored = batch_service.get_batch(batch["id"])
        assert stored["status"] == "COMPLETED"
        assert stored["temperature_compliant"] is False

        pending = corrective_action_service.list_pending_requests()
        assert len(pending) == 1
        assert pending[0]["delivery_status"] == "PENDING"
        assert pending[0]["attempts"] == 1
        assert pending[0]["last_error"] == "QMS unreachable"
        assert corrective_action_service.list_corrective_actions() == []

    def test_retry_delivers_exactly_once(self, test_db, batch):
        complete_batch(batch["id"], 68.0, intake=FailingIntake())

        counts = corrective_action_service.retry_pending_corrective_actions()
        again = corrective_action_service.retry_pending_corrective_actions()

        assert counts == {"attempted": 1, "delivered": 1, "pending": 0, "failed": 0}
        assert again["attempted"] == 0
        assert len(corrective_action_service.list_corrective_actions(batch["id"])) == 1
        assert corrective_action_service.list_pending_requests() == []

    def test_database_intake_is_idempotent(self, test_db, batch):
        complete_batch(batch["id"], 68.0)

        session = _fresh(test_db)
        request = session.query(CorrectiveActionRequest).one()
        intake = corrective_action_service.DatabaseCorrectiveActionIntake()
        reference = intake.submit(corrective_action_service.payload_for(request), session)
        session.commit()

        assert reference == request.corrective_action_id
        assert _fresh(test_db).query(CorrectiveAction).count() == 1

    def test_gives_up_after_max_attempts(self, test_db, batch):
        intake = FailingIntake()
        complete_batch(batch["id"], 68.0, intake=intake)

        for _ in range(CORRECTIVE_ACTION_MAX_ATTEMPTS - 2):
            counts = corrective_action_service.retry_pending_corrective_actions(intake)
            assert counts["pending"] == 1
        counts = corrective_action_service.retry_pending_corrective_actions(intake)

        assert counts["failed"] == 1
        assert intake.calls == CORRECTIVE_ACTION_MAX_ATTEMPTS
        pending = corrective_action_service.list_pending_requests()
        assert pending[0]["delivery_status"] == "FAILED"
        assert corrective_action_service.retry_pending_corrective_actions()["attempted"] == 0

    def test_retry_limit(self, test_db, product, production_day):
        for _ in range(3):
            created = batch_service.create_batch(product.id, 10.0, production_date=production_day)
            complete_batch(created["id"], 60.0, intake=FailingIntake())

        counts = corrective_action_service.retry_pending_corrective_actions(limit=2)

        assert counts["attempted"] == 2
        assert len(corrective_action_service.list_pending_requests()) == 1
