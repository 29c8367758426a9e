"""Alert system module."""
from alerts.engine import AlertMonitor, classify
from alerts.config_manager import AlertConfigManager
from alerts.incidents import IncidentService
from alerts.notifier import Notifier, Subscription
from alerts.channels import ConsoleChannel, FileChannel
