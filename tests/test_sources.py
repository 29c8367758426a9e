"""Tests for metric sources and the source registry."""
import threading
import pytest
import requests
from unittest.mock import MagicMock, patch

from models.enums import ServiceStatus
from models.alerts import ServiceHealth
from monitor.sources import (
    SourceBusyError, SourceRegistry, SourceTimeoutError, UnknownMetricError,
    build_source_registry,
)
from monitor.sources.functions import CallableSource
from monitor.sources.health import ServiceHealthSource
from monitor.sources.http_json import HttpJsonSource
from monitor.sources.process import ProcessMemorySource
from utils.http_client import HTTPClient, APIError


class TestRegistry:
    def test_read_converts_to_float(self, registry, fake_source):
        fake_source.set("gateway_latency", 250)
        assert registry.read("gateway_latency") == 250.0
        assert isinstance(registry.read("gateway_latency"), float)

    def test_read_none(self, registry):
        assert registry.read("gateway_latency") is None

    def test_unknown_metric(self, registry):
        with pytest.raises(UnknownMetricError):
            registry.read("nope")

    def test_source_exception_propagates(self, registry, fake_source):
        fake_source.set("error_rate", ConnectionError("refused"))
        with pytest.raises(ConnectionError):
            registry.read("error_rate")

    def test_timeout(self):
        release = threading.Event()
        source = CallableSource(lambda: release.wait(5) and 1)
        registry = SourceRegistry(timeout=0.05)
        registry.register("slow", source)
        try:
            with pytest.raises(SourceTimeoutError):
                registry.read("slow")
        finally:
            release.set()
            registry.shutdown()

    def test_busy_metric_fails_fast(self):
        release = threading.Event()
        registry = SourceRegistry(timeout=0.2, max_workers=1)
        registry.register("slow", CallableSource(lambda: release.wait(5) and 1))
        registry.register("fast", CallableSource(lambda: 7))
        try:
            with pytest.raises(SourceTimeoutError):
                registry.read("slow")
            with pytest.raises(SourceBusyError):
                registry.read("slow")
            release.set()
            # the only worker frees up once the stuck call returns
            assert registry.read("fast") == 7.0
            assert registry.read("slow") == 1.0
        finally:
            release.set()
            registry.shutdown()

    def test_register_rejects_non_sources(self, registry):
        with pytest.raises(TypeError):
            registry.register("x", object())

    def test_read_all_best_effort(self, registry, fake_source):
        fake_source.set("gateway_latency", 1)
        fake_source.set("error_rate", RuntimeError("x"))
        values = registry.read_all()
        assert values["gateway_latency"] == 1.0
        assert values["error_rate"] is None


class TestBuiltinSources:
    def test_process_memory_positive(self):
        assert ProcessMemorySource().get_current_value("memory_usage") > 0

    def test_service_health_source(self):
        host = MagicMock()
        host.get_all_health.return_value = [
            ServiceHealth("alert_monitor", ServiceStatus.RUNNING),
            ServiceHealth("retention_sweeper", ServiceStatus.RUNNING),
        ]
        source = ServiceHealthSource(host)
        assert source.get_current_value("service_failure") == 0.0

        host.get_all_health.return_value[1] = ServiceHealth("retention_sweeper", ServiceStatus.ERROR)
        assert source.get_current_value("service_failure") == 1.0
        assert ServiceHealthSource(host, ignore=["retention_sweeper"]).get_current_value("x") == 0.0

    def test_callable_source(self):
        assert CallableSource(lambda: True).get_current_value("bot_disconnected") == 1.0
        assert CallableSource(lambda: None).get_current_value("x") is None

    def test_http_json_dotted_field(self):
        client = MagicMock()
        client.get.return_value = {"gateway": {"latency_ms": 312.5}}
        source = HttpJsonSource("http://localhost/health", "gateway.latency_ms", client=client)
        assert source.get_current_value("gateway_latency") == 312.5

    def test_http_json_missing_field(self):
        client = MagicMock()
        client.get.return_value = {"gateway": {}}
        source = HttpJsonSource("http://localhost/health", "gateway.latency_ms", client=client)
        assert source.get_current_value("gateway_latency") is None


def test_build_source_registry():
    config = {
        "monitor": {"source_timeout_seconds": 2, "source_workers": 2},
        "sources": {"http": [
            {"metric_name": "gateway_latency", "url": "http://localhost:8080/health",
             "field": "gateway.latency_ms"},
        ]},
    }
    host = MagicMock()
    registry = build_source_registry(config, host, extra_sources={"bot_disconnected": lambda: 0})
    try:
        assert registry.metric_names() == [
            "bot_disconnected", "gateway_latency", "memory_usage", "service_failure",
        ]
        assert registry.timeout == 2
        assert registry.read("bot_disconnected") == 0.0
    finally:
        registry.shutdown()


# ── HTTPClient ──────────────────────────────────────────

def _response(status, payload=None, headers=None):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload
    resp.text = str(payload)
    resp.headers = headers or {}
    return resp


class TestHTTPClient:
    def test_returns_json(self):
        client = HTTPClient("http://metrics.local/", max_retries=0)
        client.session = MagicMock()
        client.session.get.return_value = _response(200, {"p95": 120})
        assert client.get("stats") == {"p95": 120}
        assert client.session.get.call_args[0][0] == "http://metrics.local/stats"

    @patch("utils.http_client.time.sleep")
    def test_retries_server_errors(self, sleep):
        client = HTTPClient("http://metrics.local", max_retries=2)
        client.session = MagicMock()
        client.session.get.side_effect = [_response(503), _response(200, {"ok": 1})]
        assert client.get() == {"ok": 1}
        assert client.session.get.call_count == 2
        sleep.assert_called_once_with(1)

    @patch("utils.http_client.time.sleep")
    def test_client_errors_not_retried(self, sleep):
        client = HTTPClient("http://metrics.local", max_retries=3)
        client.session = MagicMock()
        client.session.get.return_value = _response(404)
        with pytest.raises(APIError) as exc:
            client.get("missing")
        assert exc.value.status_code == 404
        assert client.session.get.call_count == 1
        sleep.assert_not_called()

    @patch("utils.http_client.time.sleep")
    def test_gives_up_after_retries(self, sleep):
        client = HTTPClient("http://metrics.local", max_retries=1)
        client.session = MagicMock()
        client.session.get.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(requests.exceptions.ConnectionError):
            client.get()
        assert client.session.get.call_count == 2
