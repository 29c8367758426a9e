"""Alert configuration seeding and administrative updates."""
import logging
import yaml
from pathlib import Path

from models.alerts import AlertConfig, utc_now
from models.errors import ConfigNotFoundError, ConfigValidationError

logger = logging.getLogger("perfwatch.alerts.configs")

DEFAULT_SEED_PATH = Path(__file__).resolve().parent.parent / "config" / "alert_configs.yaml"


class AlertConfigManager:
    def __init__(self, db, seed_path=DEFAULT_SEED_PATH):
        self.db = db
        self.seed_path = Path(seed_path)

    def load_seed(self):
        """Parse the seed YAML into AlertConfig objects."""
        if not self.seed_path.exists():
            logger.warning(f"Alert config seed file not found: {self.seed_path}")
            return []
        with open(self.seed_path) as f:
            data = yaml.safe_load(f) or {}
        return self._parse_configs(data.get("metrics", []))

    def _parse_configs(self, raw_configs):
        configs = []
        for c in raw_configs:
            if not c.get("metric_name"):
                logger.warning(f"Skipping alert config without metric_name: {c}")
                continue
            config = AlertConfig(
                metric_name=c["metric_name"],
                display_name=c.get("display_name", c["metric_name"]),
                description=c.get("description", ""),
                threshold_unit=c.get("threshold_unit", ""),
                warning_threshold=_optional_float(c.get("warning_threshold")),
                critical_threshold=_optional_float(c.get("critical_threshold")),
                is_enabled=c.get("enabled", True),
                consecutive_breaches_required=c.get("consecutive_breaches_required", 2),
                consecutive_normal_required=c.get("consecutive_normal_required", 3),
            )
            try:
                validate(config)
            except ConfigValidationError as e:
                logger.warning(f"Invalid seed config {config.metric_name}: {e}")
                continue
            configs.append(config)
        return configs

    def seed(self):
        """Insert defaults for metrics that have no stored config yet."""
        inserted = 0
        for config in self.load_seed():
            if self.db.insert_config_if_missing(config):
                inserted += 1
        if inserted:
            logger.info(f"Seeded {inserted} alert configurations")
        return inserted

    def get_all(self):
        return self.db.get_all_configs()

    def get_enabled(self):
        return self.db.get_enabled_configs()

    def get(self, metric_name):
        return self.db.get_config(metric_name)

    def update(self, metric_name, updated_by=None, warning_threshold=None,
               critical_threshold=None, is_enabled=None,
               consecutive_breaches_required=None, consecutive_normal_required=None):
        """Apply the given (non-None) fields to an existing config."""
        config = self.db.get_config(metric_name)
        if config is None:
            raise ConfigNotFoundError(metric_name)

        if warning_threshold is not None:
            config.warning_threshold = float(warning_threshold)
        if critical_threshold is not None:
            config.critical_threshold = float(critical_threshold)
        if is_enabled is not None:
            config.is_enabled = bool(is_enabled)
        if consecutive_breaches_required is not None:
            config.consecutive_breaches_required = consecutive_breaches_required
        if consecutive_normal_required is not None:
            config.consecutive_normal_required = consecutive_normal_required
        validate(config)

        config.updated_at = utc_now()
        config.updated_by = updated_by
        self.db.upsert_config(config)
        logger.info(
            f"Updated alert config {metric_name}: warning={config.warning_threshold}, "
            f"critical={config.critical_threshold}, enabled={config.is_enabled}"
        )
        return config


def validate(config):
    for attr in ("consecutive_breaches_required", "consecutive_normal_required"):
        value = getattr(config, attr)
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise ConfigValidationError(f"{attr} must be an integer >= 1 (got {value!r})")
    if (config.warning_threshold is not None and config.critical_threshold is not None
            and config.critical_threshold < config.warning_threshold):
        logger.warning(
            f"{config.metric_name}: critical threshold {config.critical_threshold} "
            f"is below warning threshold {config.warning_threshold}"
        )


def _optional_float(value):
    return None if value is None else float(value)
