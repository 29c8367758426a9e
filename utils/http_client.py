"""JSON-over-HTTP client used by HTTP metric sources."""
import time
import logging
import requests

from __version__ import __version__

logger = logging.getLogger("perfwatch.http")

RETRY_STATUS = frozenset({429, 500, 502, 503, 504})
MAX_BACKOFF_SECONDS = 10


class APIError(Exception):
    """Non-success response from a metrics endpoint."""

    def __init__(self, message, status_code=None, url=None, response_body=None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url
        self.response_body = response_body

    @property
    def retryable(self):
        return self.status_code in RETRY_STATUS


class HTTPClient:
    """Fetches JSON documents from one base URL over a shared requests.Session.

    Connection errors and 429/5xx responses are retried up to `max_retries`
    times with exponential backoff (or the server's Retry-After). Any other
    non-200 status raises APIError immediately.
    """

    def __init__(self, base_url, timeout=5, max_retries=1, headers=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = requests.Session()
        self.session.headers["User-Agent"] = f"perfwatch/{__version__}"
        self.session.headers["Accept"] = "application/json"
        self.session.headers.update(headers or {})

    def url_for(self, path=""):
        return f"{self.base_url}/{path.lstrip('/')}" if path else self.base_url

    def get(self, path="", params=None):
        """GET and decode JSON. Raises APIError or requests.RequestException."""
        url = self.url_for(path)
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return self._get_once(url, params)
            except (APIError, requests.exceptions.RequestException) as e:
                if isinstance(e, APIError) and not e.retryable:
                    raise
                if attempt == attempts:
                    raise
                wait = self._backoff(e, attempt)
                logger.warning(f"GET {url} failed ({e}), retry {attempt}/{self.max_retries} in {wait:.1f}s")
                time.sleep(wait)

    def _get_once(self, url, params):
        started = time.monotonic()
        resp = self.session.get(url, params=params, timeout=self.timeout)
        logger.debug(f"GET {url} -> {resp.status_code} ({(time.monotonic() - started) * 1000:.0f}ms)")
        if resp.status_code != 200:
            error = APIError(f"HTTP {resp.status_code} from {url}", status_code=resp.status_code,
                             url=url, response_body=resp.text)
            error.retry_after = resp.headers.get("Retry-After")
            raise error
        try:
            return resp.json()
        except ValueError as e:
            raise APIError(f"Response from {url} is not JSON", status_code=200, url=url,
                           response_body=resp.text) from e

    @staticmethod
    def _backoff(error, attempt):
        retry_after = getattr(error, "retry_after", None)
        if retry_after:
            try:
                return min(float(retry_after), MAX_BACKOFF_SECONDS)
            except ValueError:
                pass
        return min(2 ** (attempt - 1), MAX_BACKOFF_SECONDS)
