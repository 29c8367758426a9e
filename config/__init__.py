"""Configuration management.

Precedence, lowest to highest: default_config.yaml, the user's YAML file,
PERFWATCH_* environment variables.
"""
import os
import yaml
from pathlib import Path

_config = None
_DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"

ENV_OVERRIDES = {
    "PERFWATCH_DB_PATH": (("database", "path"), str),
    "PERFWATCH_CHECK_INTERVAL": (("monitor", "check_interval_seconds"), int),
    "PERFWATCH_LOG_LEVEL": (("logging", "level"), str),
    "PERFWATCH_RETENTION_DAYS": (("retention", "days"), int),
}

REQUIRED_SECTIONS = ("monitor", "retention", "alerts", "notifications", "database", "logging")


def load_config(path=None, environ=None):
    """Load and validate the merged configuration. Raises ValueError if invalid."""
    global _config
    environ = os.environ if environ is None else environ

    config = _read_yaml(_DEFAULT_CONFIG)
    if path and Path(path).exists():
        config = _deep_merge(config, _read_yaml(path))

    for env_key, (keys, cast) in ENV_OVERRIDES.items():
        raw = environ.get(env_key)
        if not raw:
            continue
        try:
            value = cast(raw)
        except ValueError:
            raise ValueError(f"{env_key} must be {cast.__name__}, got {raw!r}")
        section = config.setdefault(keys[0], {})
        section[keys[1]] = value

    _validate_config(config)
    _config = config
    return config


def get_config():
    """Return cached config, loading defaults if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def _read_yaml(path):
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _deep_merge(base, override):
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate_config(config):
    missing = [s for s in REQUIRED_SECTIONS if not isinstance(config.get(s), dict)]
    if missing:
        raise ValueError(f"Missing required config section(s): {', '.join(missing)}")

    monitor, retention = config["monitor"], config["retention"]
    checks = [
        (monitor.get("check_interval_seconds", 0) >= 1, "monitor.check_interval_seconds must be >= 1"),
        (monitor.get("source_timeout_seconds", 0) > 0, "monitor.source_timeout_seconds must be > 0"),
        (monitor.get("startup_delay_seconds", 0) >= 0, "monitor.startup_delay_seconds must be >= 0"),
        (retention.get("days", 0) >= 1, "retention.days must be >= 1"),
        (retention.get("sweep_interval_hours", 0) > 0, "retention.sweep_interval_hours must be > 0"),
    ]
    for ok, message in checks:
        if not ok:
            raise ValueError(message)
