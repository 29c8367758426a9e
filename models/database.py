"""SQLite database for alert configurations and incidents."""
import sqlite3
import logging
import threading
import uuid
from pathlib import Path

from models.alerts import (
    AlertConfig, Incident, IncidentPage, FrequencyBucket, AlertSummary,
    to_iso, utc_now,
)
from models.enums import Severity, IncidentStatus
from models.errors import IncidentNotFoundError, IncidentClosedError, DuplicateIncidentError

logger = logging.getLogger("perfwatch.db")

_OPEN = "('Active', 'Acknowledged')"


class Database:
    def __init__(self, db_path="data/incidents.db"):
        self.db_path = db_path
        self.conn = None
        self._lock = threading.RLock()

    def connect(self):
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def _create_tables(self):
        self.conn.executescript(f"""
            CREATE TABLE IF NOT EXISTS alert_configs (
                metric_name TEXT PRIMARY KEY,
                display_name TEXT,
                description TEXT,
                threshold_unit TEXT,
                warning_threshold REAL,
                critical_threshold REAL,
                is_enabled INTEGER NOT NULL DEFAULT 1,
                consecutive_breaches_required INTEGER NOT NULL DEFAULT 2,
                consecutive_normal_required INTEGER NOT NULL DEFAULT 3,
                updated_at TEXT NOT NULL,
                updated_by TEXT
            );

            CREATE TABLE IF NOT EXISTS incidents (
                id TEXT PRIMARY KEY,
                metric_name TEXT NOT NULL,
                severity TEXT NOT NULL,
                trigger_value REAL,
                threshold_at_trigger REAL,
                message TEXT,
                triggered_at TEXT NOT NULL,
                status TEXT NOT NULL,
                acknowledged_by TEXT,
                acknowledged_at TEXT,
                acknowledgment_notes TEXT,
                resolved_at TEXT,
                auto_resolved INTEGER NOT NULL DEFAULT 0
            );

            CREATE INDEX IF NOT EXISTS idx_incidents_status_triggered
                ON incidents(status, triggered_at);

            CREATE INDEX IF NOT EXISTS idx_incidents_metric
                ON incidents(metric_name);

            CREATE UNIQUE INDEX IF NOT EXISTS idx_incidents_one_open_per_metric
                ON incidents(metric_name) WHERE status IN {_OPEN};
        """)
        self.conn.commit()

    def _fetchone(self, sql, params=()):
        with self._lock:
            return self.conn.execute(sql, params).fetchone()

    def _fetchall(self, sql, params=()):
        with self._lock:
            return self.conn.execute(sql, params).fetchall()

    # --- Alert Configs ---

    def get_all_configs(self):
        rows = self._fetchall(
            "SELECT * FROM alert_configs ORDER BY metric_name ASC"
        )
        return [AlertConfig.from_dict(dict(r)) for r in rows]

    def get_enabled_configs(self):
        rows = self._fetchall(
            "SELECT * FROM alert_configs WHERE is_enabled = 1 ORDER BY metric_name ASC"
        )
        return [AlertConfig.from_dict(dict(r)) for r in rows]

    def get_config(self, metric_name):
        row = self._fetchone(
            "SELECT * FROM alert_configs WHERE metric_name = ?", (metric_name,)
        )
        return AlertConfig.from_dict(dict(row)) if row else None

    def upsert_config(self, config: AlertConfig):
        d = config.to_dict()
        with self._lock:
            self.conn.execute("""
                INSERT INTO alert_configs
                (metric_name, display_name, description, threshold_unit,
                 warning_threshold, critical_threshold, is_enabled,
                 consecutive_breaches_required, consecutive_normal_required,
                 updated_at, updated_by)
                VALUES (:metric_name, :display_name, :description, :threshold_unit,
                        :warning_threshold, :critical_threshold, :is_enabled,
                        :consecutive_breaches_required, :consecutive_normal_required,
                        :updated_at, :updated_by)
                ON CONFLICT(metric_name) DO UPDATE SET
                    display_name = excluded.display_name,
                    description = excluded.description,
                    threshold_unit = excluded.threshold_unit,
                    warning_threshold = excluded.warning_threshold,
                    critical_threshold = excluded.critical_threshold,
                    is_enabled = excluded.is_enabled,
                    consecutive_breaches_required = excluded.consecutive_breaches_required,
                    consecutive_normal_required = excluded.consecutive_normal_required,
                    updated_at = excluded.updated_at,
                    updated_by = excluded.updated_by
            """, d)
            self.conn.commit()
        logger.debug(f"Upserted alert config {config.metric_name}")
        return config

    def insert_config_if_missing(self, config: AlertConfig):
        """Insert a seed config; returns False when the metric already has one."""
        d = config.to_dict()
        with self._lock:
            cur = self.conn.execute("""
                INSERT OR IGNORE INTO alert_configs
                (metric_name, display_name, description, threshold_unit,
                 warning_threshold, critical_threshold, is_enabled,
                 consecutive_breaches_required, consecutive_normal_required,
                 updated_at, updated_by)
                VALUES (:metric_name, :display_name, :description, :threshold_unit,
                        :warning_threshold, :critical_threshold, :is_enabled,
                        :consecutive_breaches_required, :consecutive_normal_required,
                        :updated_at, :updated_by)
            """, d)
            self.conn.commit()
        return cur.rowcount == 1

    # --- Incidents: commands ---

    def create_incident(self, metric_name, severity, trigger_value, threshold,
                        message="", triggered_at=None):
        """Insert a new Active incident.

        Raises DuplicateIncidentError if the metric already has an open incident;
        the partial unique index makes the check atomic with the insert.
        """
        incident = Incident(
            id=str(uuid.uuid4()),
            metric_name=metric_name,
            severity=Severity(severity),
            trigger_value=trigger_value,
            threshold_at_trigger=threshold,
            message=message,
            triggered_at=triggered_at or utc_now(),
            status=IncidentStatus.ACTIVE,
        )
        d = incident.to_dict()
        with self._lock:
            try:
                self.conn.execute("""
                    INSERT INTO incidents
                    (id, metric_name, severity, trigger_value, threshold_at_trigger,
                     message, triggered_at, status, acknowledged_by, acknowledged_at,
                     acknowledgment_notes, resolved_at, auto_resolved)
                    VALUES (:id, :metric_name, :severity, :trigger_value, :threshold_at_trigger,
                            :message, :triggered_at, :status, :acknowledged_by, :acknowledged_at,
                            :acknowledgment_notes, :resolved_at, :auto_resolved)
                """, d)
                self.conn.commit()
            except sqlite3.IntegrityError as e:
                self.conn.rollback()
                raise DuplicateIncidentError(metric_name) from e
        logger.warning(
            f"Incident {incident.id} created for {metric_name} "
            f"({incident.severity.value}, value={trigger_value}, threshold={threshold})"
        )
        return incident

    def acknowledge_incident(self, incident_id, actor, notes=None, acknowledged_at=None):
        """Move an open incident to Acknowledged.

        Re-acknowledging only refreshes actor and notes. Resolved incidents are
        rejected with IncidentClosedError.
        """
        with self._lock:
            cur = self.conn.execute(f"""
                UPDATE incidents
                SET status = 'Acknowledged', acknowledged_by = ?, acknowledged_at = ?,
                    acknowledgment_notes = ?
                WHERE id = ? AND status IN {_OPEN}
            """, (actor, to_iso(acknowledged_at or utc_now()), notes, incident_id))
            self.conn.commit()
            if cur.rowcount == 0:
                existing = self.get_incident(incident_id)
                if existing is None:
                    raise IncidentNotFoundError(incident_id)
                raise IncidentClosedError(incident_id)
            return self.get_incident(incident_id)

    def acknowledge_if_active(self, incident_id, actor, acknowledged_at=None):
        """Compare-and-set Active -> Acknowledged; returns True if this call moved it."""
        with self._lock:
            cur = self.conn.execute("""
                UPDATE incidents
                SET status = 'Acknowledged', acknowledged_by = ?, acknowledged_at = ?
                WHERE id = ? AND status = 'Active'
            """, (actor, to_iso(acknowledged_at or utc_now()), incident_id))
            self.conn.commit()
        return cur.rowcount == 1

    def resolve_incident(self, incident_id, auto_resolved=True, resolved_at=None):
        """Close an open incident. Returns the resolved incident, or None if it was already closed."""
        with self._lock:
            cur = self.conn.execute(f"""
                UPDATE incidents
                SET status = 'Resolved', resolved_at = ?, auto_resolved = ?
                WHERE id = ? AND status IN {_OPEN}
            """, (to_iso(resolved_at or utc_now()), int(auto_resolved), incident_id))
            self.conn.commit()
            if cur.rowcount == 0:
                if self.get_incident(incident_id) is None:
                    raise IncidentNotFoundError(incident_id)
                return None
            return self.get_incident(incident_id)

    def delete_resolved_before(self, cutoff):
        with self._lock:
            cur = self.conn.execute("""
                DELETE FROM incidents
                WHERE status = 'Resolved' AND resolved_at IS NOT NULL AND resolved_at < ?
            """, (to_iso(cutoff),))
            self.conn.commit()
        return cur.rowcount

    # --- Incidents: queries ---

    def get_incident(self, incident_id):
        row = self._fetchone(
            "SELECT * FROM incidents WHERE id = ?", (incident_id,)
        )
        return Incident.from_dict(dict(row)) if row else None

    def find_incident_ids(self, prefix, limit=2):
        """Ids starting with prefix, across all incidents. limit=2 is enough to detect ambiguity."""
        pattern = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
        rows = self._fetchall(
            "SELECT id FROM incidents WHERE id LIKE ? ESCAPE '\\' ORDER BY id LIMIT ?",
            (pattern, limit),
        )
        return [r["id"] for r in rows]

    def get_open_incident(self, metric_name):
        row = self._fetchone(f"""
            SELECT * FROM incidents
            WHERE metric_name = ? AND status IN {_OPEN}
            ORDER BY triggered_at DESC LIMIT 1
        """, (metric_name,))
        return Incident.from_dict(dict(row)) if row else None

    def get_active_incidents(self):
        rows = self._fetchall(f"""
            SELECT * FROM incidents
            WHERE status IN {_OPEN}
            ORDER BY CASE severity WHEN 'Critical' THEN 0 ELSE 1 END, triggered_at DESC
        """)
        return [Incident.from_dict(dict(r)) for r in rows]

    def get_incidents(self, query):
        where = " WHERE 1=1"
        params = []
        if query.metric_name:
            where += " AND metric_name = ?"
            params.append(query.metric_name)
        if query.severity:
            where += " AND severity = ?"
            params.append(Severity(query.severity).value)
        if query.status:
            where += " AND status = ?"
            params.append(IncidentStatus(query.status).value)
        if query.start:
            where += " AND triggered_at >= ?"
            params.append(to_iso(query.start))
        if query.end:
            where += " AND triggered_at <= ?"
            params.append(to_iso(query.end))

        total = self._fetchone(
            "SELECT COUNT(*) as cnt FROM incidents" + where, params
        )["cnt"]

        page = max(1, query.page)
        page_size = max(1, query.page_size)
        rows = self._fetchall(
            "SELECT * FROM incidents" + where + " ORDER BY triggered_at DESC LIMIT ? OFFSET ?",
            params + [page_size, (page - 1) * page_size],
        )
        return IncidentPage(
            items=[Incident.from_dict(dict(r)) for r in rows],
            total_count=total,
            page=page,
            page_size=page_size,
        )

    def get_alert_frequency(self, since, metric_name=None):
        """Per-UTC-day incident counts split by severity, newest day first."""
        query = """
            SELECT substr(triggered_at, 1, 10) as day,
                   SUM(CASE WHEN severity = 'Critical' THEN 1 ELSE 0 END) as critical_count,
                   SUM(CASE WHEN severity = 'Warning' THEN 1 ELSE 0 END) as warning_count
            FROM incidents
            WHERE triggered_at >= ?
        """
        params = [to_iso(since)]
        if metric_name:
            query += " AND metric_name = ?"
            params.append(metric_name)
        query += " GROUP BY day ORDER BY day DESC"
        rows = self._fetchall(query, params)
        return [
            FrequencyBucket(date=r["day"], critical_count=r["critical_count"],
                            warning_count=r["warning_count"])
            for r in rows
        ]

    def get_active_summary(self):
        rows = self._fetchall(f"""
            SELECT severity, COUNT(*) as count
            FROM incidents
            WHERE status IN {_OPEN}
            GROUP BY severity
        """)
        counts = {r["severity"]: r["count"] for r in rows}
        critical = counts.get(Severity.CRITICAL.value, 0)
        warning = counts.get(Severity.WARNING.value, 0)
        return AlertSummary(active_count=critical + warning,
                            critical_count=critical, warning_count=warning)

    def get_auto_recovered_incidents(self, limit=10):
        rows = self._fetchall("""
            SELECT * FROM incidents
            WHERE status = 'Resolved' AND auto_resolved = 1 AND resolved_at IS NOT NULL
            ORDER BY resolved_at DESC LIMIT ?
        """, (limit,))
        return [Incident.from_dict(dict(r)) for r in rows]
