"""Data models."""
from models.enums import Severity, IncidentStatus, Classification, EventType, ServiceStatus
from models.alerts import (
    AlertConfig, StreakState, Incident, IncidentEvent, IncidentQuery, IncidentPage,
    FrequencyBucket, AlertSummary, AutoRecoveryEvent, ServiceHealth,
)
from models.errors import (
    PerfwatchError, IncidentNotFoundError, IncidentClosedError, DuplicateIncidentError,
    ConfigNotFoundError, ConfigValidationError,
)
