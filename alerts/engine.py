"""Threshold evaluation loop: streaks, incident creation and auto-resolution."""
import logging
import threading

from alerts.notifier import Notifier
from alerts.streaks import StreakTracker
from models.alerts import utc_now
from models.enums import Classification
from models.errors import DuplicateIncidentError
from monitor.service import BackgroundService
from monitor.sources import UnknownMetricError
from utils.formatters import format_value

logger = logging.getLogger("perfwatch.alerts.engine")


def classify(config, value):
    """Return (classification, threshold crossed). Critical is checked first."""
    if config.critical_threshold is not None and value >= config.critical_threshold:
        return Classification.CRITICAL, config.critical_threshold
    if config.warning_threshold is not None and value >= config.warning_threshold:
        return Classification.WARNING, config.warning_threshold
    return Classification.NORMAL, None


class AlertMonitor(BackgroundService):
    """Samples every enabled metric once per tick and drives the incident lifecycle.

    Metric sources are not resolved at construction. `resolver` is called once,
    on the first tick, after `startup_barrier` has been set by the host: one of
    the sources enumerates the host's background services, this one included.
    """

    name = "alert_monitor"

    def __init__(self, db, resolver, notifier=None, startup_barrier=None,
                 barrier_timeout=60.0, clock=utc_now):
        super().__init__()
        self.db = db
        self.notifier = notifier or Notifier()
        self.startup_barrier = startup_barrier
        self.barrier_timeout = barrier_timeout
        self.clock = clock
        self.streaks = StreakTracker()
        self.execution_cycle = 0
        self._resolver = resolver
        self._sources = None
        self._resolve_lock = threading.Lock()

    @property
    def sources(self):
        """Lazily resolved SourceRegistry."""
        if self._sources is None:
            with self._resolve_lock:
                if self._sources is None:
                    if self.startup_barrier is not None and not self.startup_barrier.wait(self.barrier_timeout):
                        raise RuntimeError(
                            f"Host startup not complete after {self.barrier_timeout}s; "
                            f"metric sources not resolved"
                        )
                    self._sources = self._resolver()
                    logger.info(f"Resolved {len(self._sources.metric_names())} metric sources")
        return self._sources

    @property
    def is_resolved(self):
        return self._sources is not None

    def run_once(self):
        """Evaluate all enabled configs. Returns the number of configs checked."""
        sources = self.sources
        self.execution_cycle += 1
        configs = self.db.get_enabled_configs()
        logger.debug(f"Tick {self.execution_cycle}: checking {len(configs)} enabled alert configs")

        checked = 0
        for config in configs:
            if self.stopping:
                logger.info(f"Stop requested, ending tick {self.execution_cycle} after {checked} metrics")
                break
            self.check_metric(config, sources)
            checked += 1
        return checked

    def check_metric(self, config, sources=None):
        """Evaluate one metric. Returns the incident created or resolved, if any.

        Never raises: read failures and store failures skip this metric for
        this tick only.
        """
        sources = sources or self.sources
        name = config.metric_name
        try:
            value = sources.read(name)
        except UnknownMetricError:
            logger.debug(f"No metric source registered for {name}, skipping")
            return None
        except Exception as e:
            logger.warning(f"Skipping {name} this tick: {e}")
            return None

        if value is None:
            logger.debug(f"No value available for {name}")
            return None

        classification, threshold = classify(config, value)
        try:
            if classification.is_breach:
                return self._handle_breach(config, value, classification, threshold)
            return self._handle_normal(config)
        except Exception as e:
            logger.error(f"Failed to update incident state for {name}: {e}")
            return None

    def _handle_breach(self, config, value, classification, threshold):
        name = config.metric_name
        streak = self.streaks.record_breach(name)
        logger.debug(
            f"Threshold breach for {name}: {value} >= {threshold} ({classification.value}), "
            f"breach count {streak.breach_count}"
        )

        # Fires only on the tick the streak reaches the target.
        if streak.breach_count != config.consecutive_breaches_required:
            return None

        if self.db.get_open_incident(name) is not None:
            logger.debug(f"Open incident already exists for {name}, not creating duplicate")
            return None

        severity = classification.to_severity()
        unit = config.threshold_unit
        message = (
            f"{config.label} exceeded {severity.value.lower()} threshold: "
            f"{format_value(value, unit)} >= {format_value(threshold, unit)}"
        )
        try:
            incident = self.db.create_incident(
                name, severity, value, threshold, message=message, triggered_at=self.clock(),
            )
        except DuplicateIncidentError:
            logger.info(f"Incident for {name} was opened concurrently, skipping create")
            return None

        logger.warning(f"Alert triggered for {name}: {message}")
        self.notifier.incident_created(incident)
        return incident

    def _handle_normal(self, config):
        name = config.metric_name
        streak = self.streaks.record_normal(name)
        logger.debug(f"Normal reading for {name}, normal count {streak.normal_count}")

        if streak.normal_count != config.consecutive_normal_required:
            return None

        incident = self.db.get_open_incident(name)
        if incident is None:
            return None

        resolved = self.db.resolve_incident(incident.id, auto_resolved=True, resolved_at=self.clock())
        if resolved is None:
            logger.info(f"Incident {incident.id} for {name} was already closed")
            return None

        logger.info(
            f"Auto-resolved incident {resolved.id} for {name} after "
            f"{streak.normal_count} consecutive normal readings"
        )
        self.notifier.incident_resolved(resolved)
        return resolved

    def current_values(self):
        """Current value of every configured metric, None where unavailable."""
        values = {}
        for config in self.db.get_all_configs():
            try:
                values[config.metric_name] = self.sources.read(config.metric_name)
            except Exception as e:
                logger.debug(f"Could not read {config.metric_name}: {e}")
                values[config.metric_name] = None
        return values
