"""Enums for severity, incident status, reading classification, and events."""
from enum import Enum


class Severity(str, Enum):
    WARNING = "Warning"
    CRITICAL = "Critical"


class IncidentStatus(str, Enum):
    ACTIVE = "Active"
    ACKNOWLEDGED = "Acknowledged"
    RESOLVED = "Resolved"


OPEN_STATUSES = (IncidentStatus.ACTIVE, IncidentStatus.ACKNOWLEDGED)


class Classification(str, Enum):
    NORMAL = "Normal"
    WARNING = "Warning"
    CRITICAL = "Critical"

    @property
    def is_breach(self):
        return self is not Classification.NORMAL

    def to_severity(self):
        if self is Classification.NORMAL:
            return None
        return Severity(self.value)


class EventType(str, Enum):
    INCIDENT_CREATED = "IncidentCreated"
    INCIDENT_RESOLVED = "IncidentResolved"


class ServiceStatus(str, Enum):
    INITIALIZING = "Initializing"
    RUNNING = "Running"
    ERROR = "Error"
    STOPPED = "Stopped"
