"""Background service failure flag derived from the host's service health."""
from models.enums import ServiceStatus


class ServiceHealthSource:
    """Reports 1.0 when any background service on the host is in Error, else 0.0.

    Enumerates every service registered on the host, including the monitor
    that reads it, so it can only be built after the host has started.
    """

    def __init__(self, host, ignore=()):
        self.host = host
        self.ignore = set(ignore)

    def get_current_value(self, metric_name):
        failed = [
            h.name for h in self.host.get_all_health()
            if h.name not in self.ignore and h.status is ServiceStatus.ERROR
        ]
        return 1.0 if failed else 0.0
