"""Exceptions raised by the incident and configuration stores."""


class PerfwatchError(Exception):
    """Base class for errors surfaced to operators."""


class IncidentNotFoundError(PerfwatchError):
    def __init__(self, incident_id):
        super().__init__(f"Incident not found: {incident_id}")
        self.incident_id = incident_id


class IncidentClosedError(PerfwatchError):
    """Raised when acknowledging an incident that is already resolved."""

    def __init__(self, incident_id):
        super().__init__(f"Cannot acknowledge a closed incident: {incident_id}")
        self.incident_id = incident_id


class DuplicateIncidentError(PerfwatchError):
    """Raised when a metric already has an Active or Acknowledged incident."""

    def __init__(self, metric_name):
        super().__init__(f"An open incident already exists for metric: {metric_name}")
        self.metric_name = metric_name


class ConfigNotFoundError(PerfwatchError):
    def __init__(self, metric_name):
        super().__init__(f"Alert configuration not found for metric: {metric_name}")
        self.metric_name = metric_name


class ConfigValidationError(PerfwatchError):
    pass


class AmbiguousIncidentIdError(PerfwatchError):
    """Raised when an id prefix matches more than one incident."""

    def __init__(self, prefix, matches):
        shown = ", ".join(m[:12] for m in matches)
        super().__init__(f"Incident id prefix {prefix!r} is ambiguous (matches {shown}); use more characters")
        self.prefix = prefix
        self.matches = matches
