"""Base class for periodic background services with health reporting."""
import logging
import threading

from models.alerts import ServiceHealth, utc_now
from models.enums import ServiceStatus

logger = logging.getLogger("perfwatch.service")


class BackgroundService:
    """One unit of periodic work hosted by MonitorScheduler.

    Subclasses implement run_once(). execute() wraps it with single-flight
    protection, heartbeat and error tracking; exceptions never escape it.
    """

    name = "background_service"

    def __init__(self):
        self._status = ServiceStatus.INITIALIZING
        self._last_heartbeat = None
        self._last_error = None
        self._run_lock = threading.Lock()
        self._stop_event = threading.Event()
        self.consecutive_failures = 0

    def run_once(self):
        raise NotImplementedError

    @property
    def status(self):
        return self._status

    @property
    def stopping(self):
        return self._stop_event.is_set()

    def request_stop(self):
        self._stop_event.set()

    def reset_stop(self):
        """Clear a previous stop request so the service can run again after a restart."""
        self._stop_event.clear()

    def mark_stopped(self):
        self._status = ServiceStatus.STOPPED

    def health(self):
        return ServiceHealth(
            name=self.name,
            status=self._status,
            last_heartbeat=self._last_heartbeat,
            last_error=self._last_error,
        )

    def execute(self):
        """Run one pass unless a previous pass is still in progress."""
        if not self._run_lock.acquire(blocking=False):
            logger.warning(f"{self.name}: previous run still in progress, skipping")
            return None
        try:
            self._last_heartbeat = utc_now()
            result = self.run_once()
            self._status = ServiceStatus.RUNNING
            self.consecutive_failures = 0
            return result
        except Exception as e:
            self.consecutive_failures += 1
            self._status = ServiceStatus.ERROR
            self._last_error = str(e)
            logger.error(f"{self.name} failed ({self.consecutive_failures} consecutive): {e}")
            if self.consecutive_failures >= 5:
                logger.critical(f"{self.name}: 5+ consecutive failures!")
            return None
        finally:
            self._run_lock.release()
