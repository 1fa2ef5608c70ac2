"""Tests for the batch-tracker command line."""

import json
from datetime import datetime

import pytest

from batch_tracker import cli
from batch_tracker.services import batch_service
from batch_tracker.services.compliance_service import complete_batch
from batch_tracker.services.corrective_action_service import CorrectiveActionIntake
from batch_tracker.services.database import close_connections
from batch_tracker.services.dto import CuringBatchSource
from batch_tracker.services.exceptions import SideEffectFailure
from batch_tracker.utils.config import reset_config


class _DownIntake(CorrectiveActionIntake):
    def submit(self, payload, session):
        raise SideEffectFailure("timeout")


@pytest.fixture
def traced_batch(test_db, product, curing_batch):
    return batch_service.create_batch(
        product.id,
        50.0,
        production_date=datetime(2024, 3, 14, 6, 0),
        entries=[CuringBatchSource(curing_batch_id=curing_batch.id, quantity=10.0)],
    )


class TestCommands:
    """Command functions against the test database."""

    def test_trace_prints_json(self, traced_batch, capsys):
        assert cli.trace_cmd("20240314", None, None) == 0

        data = json.loads(capsys.readouterr().out)
        assert data["batch"]["batch_number"] == "20240314"
        assert [e["type"] for e in data["timeline"]] == ["RECEPTION", "CURING", "PRODUCTION"]

    def test_trace_to_file(self, traced_batch, tmp_path):
        output = tmp_path / "recall.json"

        cli.trace_cmd(None, traced_batch["id"], str(output))

        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["origin_materials"][0]["lot_number"] == "02-03"

    def test_list(self, traced_batch, capsys):
        complete_batch(traced_batch["id"], 70.0)

        cli.list_cmd("COMPLETED", None, 10)

        out = capsys.readouterr().out
        assert "20240314" in out
        assert "NON-COMPLIANT" in out
        assert "1 of 1 batch(es)" in out

    def test_retry_reports_pending(self, traced_batch, capsys):
        complete_batch(traced_batch["id"], 60.0, intake=_DownIntake())

        assert cli.retry_cmd(None) == 0
        assert "delivered 1" in capsys.readouterr().out


class TestMain:
    """End-to-end runs of main() against a file database."""

    @pytest.fixture
    def database_url(self, tmp_path):
        yield f"sqlite:///{tmp_path / 'cli.db'}"
        close_connections()
        reset_config()

    def test_no_command(self, capsys):
        assert cli.main([]) == 1

    def test_init_and_list(self, database_url, capsys):
        assert cli.main(["--database", database_url, "init-db"]) == 0
        assert cli.main(["--database", database_url, "list"]) == 0

        assert "0 of 0 batch(es)" in capsys.readouterr().out

    def test_unknown_batch_is_an_error(self, database_url, capsys):
        assert cli.main(["--database", database_url, "trace", "19990101"]) == 1

        assert "Production batch 19990101 not found" in capsys.readouterr().err

    def test_trace_requires_target(self, database_url):
        with pytest.raises(SystemExit):
            cli.main(["--database", database_url, "trace"])

    @pytest.mark.parametrize("limit", ["0", "5000", "ten"])
    def test_list_limit_out_of_range(self, database_url, capsys, limit):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--database", database_url, "list", "--limit", limit])

        assert exc_info.value.code == 2
        assert "--limit" in capsys.readouterr().err

    def test_list_limit_at_maximum(self, database_url, capsys):
        assert cli.main(["--database", database_url, "init-db"]) == 0
        assert cli.main(["--database", database_url, "list", "--limit", "1000"]) == 0
