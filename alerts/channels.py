"""Notification channels that observe incident events."""
import json
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from models.enums import EventType

logger = logging.getLogger("perfwatch.alerts.channels")


@runtime_checkable
class NotificationChannel(Protocol):
    def send(self, event) -> None: ...


class ConsoleChannel:
    """Print incident events to the terminal with rich formatting."""

    def __init__(self, console=None):
        self._console = console

    def send(self, event):
        from rich.console import Console
        from rich.markup import escape
        console = self._console or Console()

        incident = event.incident
        if event.type is EventType.INCIDENT_RESOLVED:
            style = "bold green"
            label = "RESOLVED"
        elif incident.severity.value == "Critical":
            style = "bold white on red"
            label = "CRITICAL"
        else:
            style = "bold yellow"
            label = "WARNING"
        console.print(f"[{style}] {escape(f'[{label}] {incident.metric_name}: {incident.message}')}[/]")


class FileChannel:
    """Append incident events to a JSON lines log file."""

    def __init__(self, log_path="data/incidents.jsonl"):
        self.log_path = log_path

    def send(self, event):
        try:
            Path(self.log_path).parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a") as f:
                f.write(json.dumps(event.to_dict()) + "\n")
        except OSError as e:
            logger.warning(f"Failed to write incident event to file: {e}")
