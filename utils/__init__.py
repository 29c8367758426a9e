"""Utility modules for perfwatch."""
from utils.logger import setup_logging
from utils.formatters import format_value, format_duration, format_timestamp
from utils.http_client import HTTPClient, APIError
