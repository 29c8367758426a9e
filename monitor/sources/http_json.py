"""Numeric fields read from JSON HTTP endpoints."""
import logging

from utils.http_client import HTTPClient

logger = logging.getLogger("perfwatch.sources.http")


class HttpJsonSource:
    """Reads one numeric field from a JSON document.

    `field` is a dotted path into the response, e.g. "latency.p95_ms".
    """

    def __init__(self, url, field, timeout=5, client=None):
        self.url = url
        self.field = field
        self.client = client or HTTPClient(url, timeout=timeout, max_retries=0)

    def get_current_value(self, metric_name):
        data = self.client.get()
        value = data
        for key in self.field.split("."):
            if not isinstance(value, dict) or key not in value:
                logger.debug(f"{metric_name}: field {self.field} missing from {self.url}")
                return None
            value = value[key]
        if value is None:
            return None
        return float(value)
