"""Shared test fixtures."""
import os
import sys
import pytest
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timedelta, timezone

from models.database import Database
from models.alerts import AlertConfig
from monitor.sources import SourceRegistry


class FakeClock:
    """Deterministic clock; call it for now(), advance() to move time."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


class FakeSource:
    """Metric source returning whatever the test last set; exceptions are raised."""

    def __init__(self, **values):
        self.values = dict(values)
        self.reads = []

    def set(self, metric_name, value):
        self.values[metric_name] = value

    def get_current_value(self, metric_name):
        self.reads.append(metric_name)
        value = self.values.get(metric_name)
        if isinstance(value, Exception):
            raise value
        return value


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.unlink(db_path + suffix)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def registry(fake_source):
    """SourceRegistry backed by fake_source for the usual test metrics."""
    reg = SourceRegistry(timeout=1.0)
    for name in ("gateway_latency", "error_rate", "memory_usage"):
        reg.register(name, fake_source)
    yield reg
    reg.shutdown()


@pytest.fixture
def latency_config(temp_db):
    """gateway_latency: warning 200 ms, critical 500 ms, 2 breaches / 3 normals."""
    config = AlertConfig(
        metric_name="gateway_latency",
        display_name="Gateway Latency",
        threshold_unit="ms",
        warning_threshold=200.0,
        critical_threshold=500.0,
        consecutive_breaches_required=2,
        consecutive_normal_required=3,
    )
    temp_db.upsert_config(config)
    return config
