"""Dataclasses for alert configurations, incidents, and query results."""
import math
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional

from models.enums import Severity, IncidentStatus, EventType, ServiceStatus, OPEN_STATUSES


def utc_now():
    return datetime.now(timezone.utc)


def to_iso(dt):
    """Serialize a datetime as a sortable UTC ISO-8601 string."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_ts(value):
    if value is None or isinstance(value, datetime):
        return value
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class AlertConfig:
    metric_name: str = ""
    display_name: str = ""
    description: str = ""
    threshold_unit: str = ""
    warning_threshold: Optional[float] = None
    critical_threshold: Optional[float] = None
    is_enabled: bool = True
    consecutive_breaches_required: int = 2
    consecutive_normal_required: int = 3
    updated_at: datetime = field(default_factory=utc_now)
    updated_by: Optional[str] = None

    @property
    def label(self):
        return self.display_name or self.metric_name

    def to_dict(self):
        d = asdict(self)
        d["is_enabled"] = int(self.is_enabled)
        d["updated_at"] = to_iso(self.updated_at)
        return d

    @classmethod
    def from_dict(cls, d):
        return cls(
            metric_name=d["metric_name"],
            display_name=d.get("display_name") or "",
            description=d.get("description") or "",
            threshold_unit=d.get("threshold_unit") or "",
            warning_threshold=d.get("warning_threshold"),
            critical_threshold=d.get("critical_threshold"),
            is_enabled=bool(d.get("is_enabled", True)),
            consecutive_breaches_required=int(d.get("consecutive_breaches_required", 2)),
            consecutive_normal_required=int(d.get("consecutive_normal_required", 3)),
            updated_at=parse_ts(d.get("updated_at")) or utc_now(),
            updated_by=d.get("updated_by"),
        )


@dataclass
class StreakState:
    breach_count: int = 0
    normal_count: int = 0


@dataclass
class Incident:
    id: str = ""
    metric_name: str = ""
    severity: Severity = Severity.WARNING
    trigger_value: float = 0.0
    threshold_at_trigger: float = 0.0
    message: str = ""
    triggered_at: datetime = field(default_factory=utc_now)
    status: IncidentStatus = IncidentStatus.ACTIVE
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    acknowledgment_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    auto_resolved: bool = False

    @property
    def is_open(self):
        return self.status in OPEN_STATUSES

    @property
    def duration_seconds(self):
        if self.resolved_at is None:
            return None
        return (self.resolved_at - self.triggered_at).total_seconds()

    def to_dict(self):
        """Flatten for storage and JSON output."""
        return {
            "id": self.id,
            "metric_name": self.metric_name,
            "severity": self.severity.value,
            "trigger_value": self.trigger_value,
            "threshold_at_trigger": self.threshold_at_trigger,
            "message": self.message,
            "triggered_at": to_iso(self.triggered_at),
            "status": self.status.value,
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": to_iso(self.acknowledged_at),
            "acknowledgment_notes": self.acknowledgment_notes,
            "resolved_at": to_iso(self.resolved_at),
            "auto_resolved": int(self.auto_resolved),
        }

    @classmethod
    def from_dict(cls, d):
        """Reconstruct from a flat dict (e.g., DB row)."""
        return cls(
            id=d["id"],
            metric_name=d["metric_name"],
            severity=Severity(d["severity"]),
            trigger_value=d.get("trigger_value", 0.0),
            threshold_at_trigger=d.get("threshold_at_trigger", 0.0),
            message=d.get("message") or "",
            triggered_at=parse_ts(d["triggered_at"]),
            status=IncidentStatus(d["status"]),
            acknowledged_by=d.get("acknowledged_by"),
            acknowledged_at=parse_ts(d.get("acknowledged_at")),
            acknowledgment_notes=d.get("acknowledgment_notes"),
            resolved_at=parse_ts(d.get("resolved_at")),
            auto_resolved=bool(d.get("auto_resolved", 0)),
        )


@dataclass
class IncidentEvent:
    type: EventType
    incident: Incident
    emitted_at: datetime = field(default_factory=utc_now)

    def to_dict(self):
        return {
            "type": self.type.value,
            "emitted_at": to_iso(self.emitted_at),
            "incident": self.incident.to_dict(),
        }


@dataclass
class IncidentQuery:
    metric_name: Optional[str] = None
    severity: Optional[Severity] = None
    status: Optional[IncidentStatus] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    page: int = 1
    page_size: int = 25


@dataclass
class IncidentPage:
    items: list = field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 25

    @property
    def total_pages(self):
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total_count / self.page_size)


@dataclass
class FrequencyBucket:
    date: str = ""
    critical_count: int = 0
    warning_count: int = 0

    @property
    def total(self):
        return self.critical_count + self.warning_count


@dataclass
class AlertSummary:
    active_count: int = 0
    critical_count: int = 0
    warning_count: int = 0


@dataclass
class AutoRecoveryEvent:
    timestamp: datetime
    metric_name: str
    issue: str
    action: str = "Metric returned to normal range"
    result: str = "Incident auto-resolved"
    duration_seconds: float = 0.0


@dataclass
class ServiceHealth:
    name: str
    status: ServiceStatus = ServiceStatus.INITIALIZING
    last_heartbeat: Optional[datetime] = None
    last_error: Optional[str] = None
