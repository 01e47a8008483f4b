from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

import hrsync.cli.__main__ as cli
from conftest import RecordingHandler, reference_sheets, write_workbook
from hrsync.api.client import HiBobClient
from hrsync.logging.init import reset_logging

"""Exit code contract: 0 success, 1 fatal, 2 finished with failed rows or issues."""

FIELD = "root.work.department"


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def fast_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "sync.yml"
    cfg.write_text(sample_config_yaml.replace("requests_per_minute: 10", "requests_per_minute: 60000"), encoding="utf-8")
    return cfg


@pytest.fixture()
def staged(temp_workdir: Path):
    def _write(uploads):
        return write_workbook(temp_workdir / "data" / "hibob.xlsx", reference_sheets(uploads))
    return _write


@pytest.fixture()
def hibob(monkeypatch) -> RecordingHandler:
    handler = RecordingHandler({
        ("POST", "/v1/people/search"): httpx.Response(200, json={"employees": []}),
        ("PUT", "/v1/people/111"): httpx.Response(200, json={}),
        ("GET", "/v1/people/111"): httpx.Response(200, json={"work": {"department": "d_eng"}}),
    })

    def _client(api, credentials):
        return HiBobClient(api, credentials, http_client=httpx.Client(transport=httpx.MockTransport(handler)))

    monkeypatch.setattr(cli, "HiBobClient", _client)
    return handler


def _make_trigger_due(temp_workdir: Path) -> None:
    path = temp_workdir / "state" / "properties.json"
    data = json.loads(path.read_text(encoding="utf-8"))
    trigger = json.loads(data["hrsync.trigger.batch"])
    trigger["last_run_at"] = 0
    data["hrsync.trigger.batch"] = json.dumps(trigger)
    path.write_text(json.dumps(data), encoding="utf-8")


def test_exit_code_fatal_startup(temp_workdir: Path, capsys):
    code = cli.main(["batch", "status"])
    assert code == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_missing_credentials_is_fatal(fast_config, staged, monkeypatch, capsys):
    monkeypatch.delenv("HIBOB_SERVICE_USER_ID", raising=False)
    monkeypatch.delenv("HIBOB_SERVICE_USER_TOKEN", raising=False)
    staged([["E1", "Engineering"]])
    code = cli.main(["batch", "start", "--field", FIELD])
    out = capsys.readouterr().out
    assert code == 1
    assert "ERROR config: missing credentials" in out
    assert "secret" not in out


def test_status_and_cancel_without_batch(fast_config, capsys):
    assert cli.main(["batch", "status"]) == 0
    assert cli.main(["batch", "cancel"]) == 0
    assert capsys.readouterr().out.count("INFO no batch running") == 2


def test_validate_reports_issues(fast_config, staged, capsys):
    staged([["E1", "Engineering"], ["E9", "Nope"]])
    code = cli.main(["validate", "--field", FIELD])
    out = capsys.readouterr().out
    assert code == 2
    assert "WARN row 2 (E9): employee not in roster" in out
    assert "value 'Nope' not found in list 'department'" in out
    assert "SUMMARY validate field=root.work.department rows=2 issues=2" in out


def test_validate_clean(fast_config, staged, capsys):
    staged([["E1", "Engineering"], ["E2", "sales"]])
    assert cli.main(["validate", "--field", "work.department"]) == 0
    assert "issues=0" in capsys.readouterr().out


def test_batch_run_with_failed_row_exits_2(fast_config, staged, credentials_env, hibob, temp_workdir, capsys):
    staged([["E1", "Engineering"], ["E9", "Sales"]])

    assert cli.main(["batch", "start", "--field", FIELD]) == 0
    assert cli.main(["batch", "status"]) == 0
    out = capsys.readouterr().out
    assert "INFO progress field=root.work.department next=3/2" in out
    assert "INFO running field=root.work.department next=3/2" in out

    # a second tick before the period elapsed does nothing
    assert cli.main(["batch", "tick"]) == 0
    assert "SUMMARY" not in capsys.readouterr().out

    _make_trigger_due(temp_workdir)
    assert cli.main(["batch", "tick"]) == 2
    out = capsys.readouterr().out
    assert "SUMMARY field=root.work.department rows=2/2 completed=1 skipped=0 failed=1" in out
    assert list((temp_workdir / "logs").glob("errors-*.log"))


def test_cleanup_refused_while_running(fast_config, staged, credentials_env, hibob, capsys):
    staged([["E1", "Engineering"], ["E1", "Finance"]])
    cli.main(["batch", "start", "--field", FIELD])
    assert cli.main(["cleanup"]) == 1
    assert "ERROR batch: a batch is running" in capsys.readouterr().out
    assert cli.main(["batch", "cancel"]) == 0
    assert cli.main(["cleanup"]) == 0


def test_corrupt_state_is_fatal(fast_config, temp_workdir: Path, capsys):
    state = temp_workdir / "state"
    state.mkdir()
    (state / "properties.json").write_text('{"hrsync.batch.state": "{oops"}', encoding="utf-8")
    assert cli.main(["batch", "status"]) == 1
    assert "ERROR state: corrupt batch state" in capsys.readouterr().out


def test_start_with_unknown_field_is_fatal(fast_config, staged, credentials_env, hibob, capsys):
    staged([["E1", "Engineering"]])
    assert cli.main(["batch", "start", "--field", "root.work.nope"]) == 1
    assert "ERROR config: field 'root.work.nope' not found" in capsys.readouterr().out
    assert hibob.requests == []
