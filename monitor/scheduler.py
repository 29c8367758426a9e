"""Background host that runs periodic services on a single scheduler thread."""
import logging
import threading
import schedule

logger = logging.getLogger("perfwatch.scheduler")


class MonitorScheduler:
    """Runs registered BackgroundServices on one daemon thread.

    Jobs execute sequentially, so a slow tick delays the next one instead of
    overlapping it. `started` is set once every service is registered and the
    thread is running; services that resolve dependencies through the host
    wait on it.
    """

    def __init__(self, startup_delay=0):
        self.startup_delay = startup_delay
        self.started = threading.Event()
        self._scheduler = schedule.Scheduler()
        self._services = []
        self._thread = None
        self._running = False
        self._stop_event = threading.Event()

    def add_service(self, service, interval_seconds, run_immediately=True):
        if self._running:
            raise RuntimeError("Cannot add services after the scheduler has started")
        self._services.append((service, interval_seconds, run_immediately))
        return service

    @property
    def services(self):
        return [s for s, _, _ in self._services]

    def get_all_health(self):
        return [s.health() for s in self.services]

    @property
    def is_running(self):
        return self._running

    def start(self):
        """Start background execution."""
        if self._running:
            return
        self._running = True
        self._stop_event.clear()

        for service, interval, _ in self._services:
            service.reset_stop()
            self._scheduler.every(interval).seconds.do(service.execute).tag(service.name)

        self._thread = threading.Thread(target=self._run_loop, name="perfwatch-scheduler", daemon=True)
        self._thread.start()
        self.started.set()
        names = ", ".join(f"{s.name} every {i}s" for s, i, _ in self._services)
        logger.info(f"Scheduler started ({names})")

    def stop(self, timeout=10):
        """Stop background execution, letting the current unit of work finish."""
        if not self._running:
            return
        self._running = False
        self._stop_event.set()
        for service in self.services:
            service.request_stop()
        self._scheduler.clear()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning(f"Scheduler thread did not exit within {timeout}s")
            self._thread = None
        for service in self.services:
            service.mark_stopped()
        logger.info("Scheduler stopped")

    def run_forever(self):
        """Start and block until interrupted."""
        self.start()
        try:
            while self._thread is not None and self._thread.is_alive():
                self._thread.join(timeout=1)
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
        finally:
            self.stop()

    def _run_loop(self):
        self.started.wait()
        if self.startup_delay and self._stop_event.wait(self.startup_delay):
            return

        for service, _, run_immediately in self._services:
            if self._stop_event.is_set():
                return
            if run_immediately:
                service.execute()

        while not self._stop_event.is_set():
            self._scheduler.run_pending()
            self._stop_event.wait(1)
