"""Tests for CLI commands."""
import json
import pytest
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import yaml
from click.testing import CliRunner
from datetime import timedelta
from unittest.mock import patch

from main import cli
from models.database import Database
from models.enums import Severity
from models.alerts import utc_now


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "database": {"path": str(tmp_path / "incidents.db")},
        "notifications": {"console": False, "jsonl_path": str(tmp_path / "incidents.jsonl")},
        "monitor": {"startup_delay_seconds": 0},
        "logging": {"level": "WARNING"},
    }))
    return str(path)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "incidents.db")


def _invoke(runner, config_file, *args):
    return runner.invoke(cli, ["--config", config_file, *args])


def _seed_incident(db_path, metric="gateway_latency", severity=Severity.WARNING):
    with Database(db_path) as db:
        return db.create_incident(metric, severity, 300, 200, message=f"{metric} exceeded")


def test_cli_help(runner):
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "perfwatch" in result.output


def test_cli_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "0.3.0" in result.output


def test_group_help(runner):
    result = runner.invoke(cli, ["incidents", "--help"])
    assert result.exit_code == 0
    for command in ("active", "history", "ack", "ack-all", "summary", "frequency", "recoveries"):
        assert command in result.output

    result = runner.invoke(cli, ["monitor", "--help"])
    for command in ("run", "tick", "values", "sweep"):
        assert command in result.output


# ── configs ─────────────────────────────────────────────

def test_configs_list(runner, config_file):
    result = _invoke(runner, config_file, "configs", "list")
    assert result.exit_code == 0
    assert "Alert Configurations" in result.output


def test_configs_set(runner, config_file, db_path):
    result = _invoke(runner, config_file, "configs", "set", "error_rate",
                     "--critical", "12", "--breaches", "3", "--by", "alice")
    assert result.exit_code == 0
    assert "Updated error_rate" in result.output

    with Database(db_path) as db:
        config = db.get_config("error_rate")
    assert config.critical_threshold == 12
    assert config.consecutive_breaches_required == 3
    assert config.updated_by == "alice"


def test_configs_set_disable(runner, config_file, db_path):
    result = _invoke(runner, config_file, "configs", "set", "memory_usage", "--disable")
    assert result.exit_code == 0
    with Database(db_path) as db:
        assert db.get_config("memory_usage").is_enabled is False


def test_configs_set_unknown_metric(runner, config_file):
    result = _invoke(runner, config_file, "configs", "set", "nope", "--warning", "1")
    assert result.exit_code == 1
    assert "not found" in result.output


def test_configs_set_invalid(runner, config_file):
    result = _invoke(runner, config_file, "configs", "set", "error_rate", "--normals", "0")
    assert result.exit_code == 1


# ── incidents ───────────────────────────────────────────

def test_active_empty(runner, config_file):
    result = _invoke(runner, config_file, "incidents", "active")
    assert result.exit_code == 0
    assert "All clear" in result.output


def test_active_json(runner, config_file, db_path):
    incident = _seed_incident(db_path)
    result = _invoke(runner, config_file, "incidents", "active", "--json")
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert [d["id"] for d in data] == [incident.id]
    assert data[0]["status"] == "Active"


def test_ack_by_prefix(runner, config_file, db_path):
    incident = _seed_incident(db_path)
    result = _invoke(runner, config_file, "incidents", "ack", incident.id[:8],
                     "--by", "alice", "--notes", "on it")
    assert result.exit_code == 0
    assert "Acknowledged gateway_latency" in result.output

    with Database(db_path) as db:
        stored = db.get_incident(incident.id)
    assert stored.acknowledged_by == "alice"
    assert stored.acknowledgment_notes == "on it"


def test_ack_unknown(runner, config_file):
    result = _invoke(runner, config_file, "incidents", "ack", "deadbeef", "--by", "alice")
    assert result.exit_code == 1
    assert "Incident not found" in result.output


def test_ack_ambiguous_prefix(runner, config_file, db_path):
    with patch("models.database.uuid.uuid4", side_effect=["abc-111", "abc-222"]):
        _seed_incident(db_path, "a")
        _seed_incident(db_path, "b")
    result = _invoke(runner, config_file, "incidents", "ack", "abc", "--by", "alice")
    assert result.exit_code == 1
    assert "ambiguous" in result.output
    assert "Incident not found" not in result.output

    with Database(db_path) as db:
        assert db.get_incident("abc-111").acknowledged_by is None
        assert db.get_incident("abc-222").acknowledged_by is None


def test_ack_resolved(runner, config_file, db_path):
    incident = _seed_incident(db_path)
    with Database(db_path) as db:
        db.resolve_incident(incident.id)
    result = _invoke(runner, config_file, "incidents", "ack", incident.id, "--by", "alice")
    assert result.exit_code == 1
    assert "closed incident" in result.output


def test_ack_requires_actor(runner, config_file):
    result = _invoke(runner, config_file, "incidents", "ack", "abc")
    assert result.exit_code != 0


def test_ack_all(runner, config_file, db_path):
    _seed_incident(db_path, "a")
    _seed_incident(db_path, "b", Severity.CRITICAL)
    result = _invoke(runner, config_file, "incidents", "ack-all", "--by", "alice")
    assert result.exit_code == 0
    assert "Acknowledged 2 incident(s)" in result.output


def test_summary(runner, config_file, db_path):
    _seed_incident(db_path, "a", Severity.CRITICAL)
    _seed_incident(db_path, "b")
    result = _invoke(runner, config_file, "incidents", "summary")
    assert result.exit_code == 0
    assert "2 open" in result.output
    assert "critical: 1" in result.output


def test_history(runner, config_file, db_path):
    _seed_incident(db_path)
    result = _invoke(runner, config_file, "incidents", "history", "--severity", "Warning")
    assert result.exit_code == 0
    assert "Incident History" in result.output

    result = _invoke(runner, config_file, "incidents", "history", "--metric", "other")
    assert "No incidents match" in result.output


def test_history_bad_date(runner, config_file):
    result = _invoke(runner, config_file, "incidents", "history", "--since", "yesterday")
    assert result.exit_code != 0


def test_history_until_includes_whole_day(runner, config_file, db_path):
    _seed_incident(db_path)
    today = utc_now().strftime("%Y-%m-%d")
    result = _invoke(runner, config_file, "incidents", "history", "--since", today, "--until", today)
    assert result.exit_code == 0
    assert "Incident History" in result.output

    yesterday = (utc_now() - timedelta(days=1)).strftime("%Y-%m-%d")
    result = _invoke(runner, config_file, "incidents", "history", "--until", yesterday)
    assert "No incidents match" in result.output


def test_frequency_and_recoveries(runner, config_file, db_path):
    incident = _seed_incident(db_path)
    with Database(db_path) as db:
        db.resolve_incident(incident.id, auto_resolved=True)

    result = _invoke(runner, config_file, "incidents", "frequency", "--days", "7")
    assert result.exit_code == 0
    assert "Incident Frequency" in result.output

    result = _invoke(runner, config_file, "incidents", "recoveries")
    assert result.exit_code == 0
    assert "Auto-Recovery Events" in result.output


def test_recoveries_empty(runner, config_file):
    result = _invoke(runner, config_file, "incidents", "recoveries")
    assert "No auto-recoveries yet" in result.output


# ── monitor ─────────────────────────────────────────────

def test_monitor_tick(runner, config_file):
    result = _invoke(runner, config_file, "monitor", "tick")
    assert result.exit_code == 0
    assert "Checked 8 metric(s)" in result.output


def test_monitor_sweep(runner, config_file, db_path):
    incident = _seed_incident(db_path)
    with Database(db_path) as db:
        db.resolve_incident(incident.id, resolved_at=utc_now() - timedelta(days=120))
    result = _invoke(runner, config_file, "monitor", "sweep")
    assert result.exit_code == 0
    assert "Deleted 1 resolved incident(s)" in result.output
