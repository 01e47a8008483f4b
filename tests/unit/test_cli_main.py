from __future__ import annotations

import os
from pathlib import Path

import pytest

import hrsync.cli.__main__ as cli
from hrsync.logging.init import reset_logging


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


def test_subcommand_required(capsys):
    with pytest.raises(SystemExit) as excinfo:
        cli.main([])
    assert excinfo.value.code == 2


def test_batch_start_requires_field_unless_retrying():
    with pytest.raises(SystemExit):
        cli._parse_args(["batch", "start"])
    args = cli._parse_args(["batch", "start", "--retry-failed"])
    assert args.retry_failed and args.field is None
    assert args.handler is cli._cmd_batch_start


def test_history_table_choices():
    assert cli._parse_args(["history", "upload", "--table", "work"]).table == "work"
    with pytest.raises(SystemExit):
        cli._parse_args(["history", "upload", "--table", "pensions"])


def test_debug_flag_enables_debug_output(write_config: Path, capsys):
    assert cli.main(["--debug", "batch", "status"]) == 0
    out = capsys.readouterr().out
    assert "DEBUG debug mode enabled" in out
    assert "INFO no batch running" in out


def test_custom_config_path(temp_workdir: Path, sample_config_yaml: str, capsys):
    other = temp_workdir / "elsewhere.yml"
    other.write_text(sample_config_yaml, encoding="utf-8")
    assert cli.main(["--config", str(other), "batch", "status"]) == 0


def test_env_file_overrides_environment(temp_workdir: Path, monkeypatch):
    monkeypatch.setenv("HIBOB_SERVICE_USER_ID", "from-shell")
    (temp_workdir / ".env").write_text("HIBOB_SERVICE_USER_ID=from-dotenv\n", encoding="utf-8")
    cli._load_env_file(Path(".env"))
    assert os.environ["HIBOB_SERVICE_USER_ID"] == "from-dotenv"


def test_missing_env_file_is_ignored(temp_workdir: Path, monkeypatch):
    monkeypatch.setenv("HIBOB_SERVICE_USER_ID", "from-shell")
    cli._load_env_file(temp_workdir / "absent.env")
    assert os.environ["HIBOB_SERVICE_USER_ID"] == "from-shell"
