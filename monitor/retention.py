"""Periodic purge of old resolved incidents."""
import logging
from datetime import timedelta

from models.alerts import utc_now
from monitor.service import BackgroundService

logger = logging.getLogger("perfwatch.retention")


class RetentionSweeper(BackgroundService):
    """Hard-deletes Resolved incidents whose resolved_at is older than the window.

    Active and Acknowledged incidents are kept regardless of age.
    """

    name = "retention_sweeper"

    def __init__(self, db, retention_days=90, clock=utc_now):
        super().__init__()
        if retention_days < 1:
            raise ValueError("retention_days must be >= 1")
        self.db = db
        self.retention_days = retention_days
        self.clock = clock

    def run_once(self):
        return self.sweep()

    def sweep(self):
        cutoff = self.clock() - timedelta(days=self.retention_days)
        deleted = self.db.delete_resolved_before(cutoff)
        if deleted:
            logger.info(f"Deleted {deleted} resolved incidents older than {cutoff:%Y-%m-%d} "
                        f"(retention: {self.retention_days} days)")
        else:
            logger.debug(f"No resolved incidents older than {cutoff:%Y-%m-%d}")
        return deleted
