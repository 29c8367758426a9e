"""Operator-facing incident queries and acknowledgment commands."""
import logging
from datetime import timedelta

from models.alerts import AutoRecoveryEvent, IncidentQuery, utc_now
from models.enums import IncidentStatus
from models.errors import AmbiguousIncidentIdError, IncidentNotFoundError

logger = logging.getLogger("perfwatch.alerts.incidents")


class IncidentService:
    """Query/command surface used by dashboards and the CLI.

    Runs concurrently with the monitor loop; every mutation is a single
    compare-and-set statement in the store.
    """

    def __init__(self, db, clock=utc_now):
        self.db = db
        self.clock = clock

    # --- Commands ---

    def resolve_id(self, id_or_prefix):
        """Full incident id for an exact id or a unique prefix of one.

        Raises IncidentNotFoundError or AmbiguousIncidentIdError.
        """
        if self.db.get_incident(id_or_prefix):
            return id_or_prefix
        matches = self.db.find_incident_ids(id_or_prefix)
        if not matches:
            raise IncidentNotFoundError(id_or_prefix)
        if len(matches) > 1:
            raise AmbiguousIncidentIdError(id_or_prefix, matches)
        return matches[0]

    def acknowledge(self, incident_id, actor, notes=None):
        """Acknowledge one incident.

        Raises IncidentNotFoundError or IncidentClosedError; acknowledging an
        already acknowledged incident just refreshes actor and notes.
        """
        incident = self.db.acknowledge_incident(incident_id, actor, notes, acknowledged_at=self.clock())
        logger.info(f"Acknowledged incident {incident_id} for {incident.metric_name} by {actor}")
        return incident

    def acknowledge_all(self, actor):
        """Acknowledge every Active incident. Returns how many were transitioned."""
        count = 0
        for incident in self.db.get_active_incidents():
            if incident.status is not IncidentStatus.ACTIVE:
                continue
            try:
                if self.db.acknowledge_if_active(incident.id, actor, acknowledged_at=self.clock()):
                    count += 1
                else:
                    logger.debug(f"Incident {incident.id} changed state before it could be acknowledged")
            except Exception as e:
                logger.warning(f"Failed to acknowledge incident {incident.id}: {e}")
        logger.info(f"Acknowledged {count} active incidents by {actor}")
        return count

    # --- Queries ---

    def get(self, incident_id):
        return self.db.get_incident(incident_id)

    def get_active(self):
        return self.db.get_active_incidents()

    def get_history(self, query=None):
        query = query or IncidentQuery()
        page = self.db.get_incidents(query)
        logger.debug(
            f"Retrieved {len(page.items)} incidents (page {page.page} of {page.total_pages}, "
            f"total {page.total_count})"
        )
        return page

    def get_frequency(self, days=30, metric_name=None):
        start_of_today = self.clock().replace(hour=0, minute=0, second=0, microsecond=0)
        since = start_of_today - timedelta(days=days)
        return self.db.get_alert_frequency(since, metric_name=metric_name)

    def get_summary(self):
        return self.db.get_active_summary()

    def get_auto_recovery_events(self, limit=10):
        return [
            AutoRecoveryEvent(
                timestamp=i.resolved_at,
                metric_name=i.metric_name,
                issue=i.message,
                duration_seconds=i.duration_seconds or 0.0,
            )
            for i in self.db.get_auto_recovered_incidents(limit)
        ]
