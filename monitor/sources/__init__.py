"""Metric source registry and time-bounded reads."""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Optional, Protocol, runtime_checkable

logger = logging.getLogger("perfwatch.sources")


@runtime_checkable
class MetricSource(Protocol):
    def get_current_value(self, metric_name: str) -> Optional[float]: ...


class SourceTimeoutError(Exception):
    def __init__(self, metric_name, timeout):
        super().__init__(f"Metric source for {metric_name} did not respond within {timeout}s")
        self.metric_name = metric_name
        self.timeout = timeout


class SourceBusyError(Exception):
    """The previous read of this metric is still running."""

    def __init__(self, metric_name):
        super().__init__(f"Previous read of {metric_name} is still running")
        self.metric_name = metric_name


class UnknownMetricError(LookupError):
    def __init__(self, metric_name):
        super().__init__(f"No metric source registered for {metric_name}")
        self.metric_name = metric_name


class SourceRegistry:
    """Maps metric names to sources and reads them with a per-read timeout.

    Reads run on a small worker pool so a hanging source only costs the
    caller `timeout` seconds. A metric gets at most one read in flight: while
    a timed-out call is still running, later reads of that metric fail fast
    with SourceBusyError instead of taking another worker.
    """

    def __init__(self, timeout=5.0, max_workers=4):
        self.timeout = timeout
        self._sources = {}
        self._inflight = {}
        self._inflight_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix="perfwatch-source")

    def register(self, metric_name, source):
        if not isinstance(source, MetricSource):
            raise TypeError(f"{type(source).__name__} does not implement get_current_value()")
        self._sources[metric_name] = source
        return source

    def metric_names(self):
        return sorted(self._sources)

    def has(self, metric_name):
        return metric_name in self._sources

    def read(self, metric_name) -> Optional[float]:
        """Current value for metric_name, or None when the source has nothing to report.

        Raises UnknownMetricError, SourceBusyError, SourceTimeoutError, or
        whatever the source raised.
        """
        source = self._sources.get(metric_name)
        if source is None:
            raise UnknownMetricError(metric_name)

        with self._inflight_lock:
            pending = self._inflight.get(metric_name)
            if pending is not None and not pending.done():
                raise SourceBusyError(metric_name)
            future = self._executor.submit(source.get_current_value, metric_name)
            self._inflight[metric_name] = future

        try:
            value = future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            raise SourceTimeoutError(metric_name, self.timeout) from None
        if value is None:
            return None
        return float(value)

    def read_all(self):
        """Best-effort read of every registered metric, for display."""
        values = {}
        for name in self.metric_names():
            try:
                values[name] = self.read(name)
            except Exception as e:
                logger.debug(f"Could not read {name}: {e}")
                values[name] = None
        return values

    def shutdown(self):
        self._executor.shutdown(wait=False, cancel_futures=True)


def build_source_registry(config, host, extra_sources=None):
    """Registry with the built-in sources, configured HTTP sources, and any extras.

    `extra_sources` maps metric names to MetricSource objects or plain
    callables supplied by the embedding application.
    """
    from monitor.sources.functions import CallableSource
    from monitor.sources.health import ServiceHealthSource
    from monitor.sources.http_json import HttpJsonSource
    from monitor.sources.process import ProcessMemorySource

    monitor_cfg = config.get("monitor", {})
    timeout = monitor_cfg.get("source_timeout_seconds", 5)
    registry = SourceRegistry(timeout=timeout, max_workers=monitor_cfg.get("source_workers", 4))

    registry.register("memory_usage", ProcessMemorySource())
    registry.register("service_failure", ServiceHealthSource(host))

    for entry in config.get("sources", {}).get("http") or []:
        registry.register(
            entry["metric_name"],
            HttpJsonSource(entry["url"], entry["field"], timeout=entry.get("timeout", timeout)),
        )

    for metric_name, source in (extra_sources or {}).items():
        if not isinstance(source, MetricSource) and callable(source):
            source = CallableSource(source)
        registry.register(metric_name, source)

    logger.debug(f"Built source registry: {', '.join(registry.metric_names())}")
    return registry
