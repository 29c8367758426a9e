"""In-process fan-out of incident state changes to observers."""
import logging
import queue
import threading

from models.alerts import IncidentEvent
from models.enums import EventType

logger = logging.getLogger("perfwatch.alerts.notifier")


class Subscription:
    """Bounded queue fed by the notifier. Events are dropped when it is full."""

    def __init__(self, notifier, maxsize=100):
        self._notifier = notifier
        self._queue = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def send(self, event):
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self.dropped += 1
            logger.debug(f"Subscription queue full, dropped {event.type.value}")

    def get(self, timeout=None):
        """Next event, or None if nothing arrived within timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self):
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def close(self):
        self._notifier.unsubscribe(self)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


class Notifier:
    """Broadcasts IncidentCreated / IncidentResolved to every subscriber.

    Best effort: no retries, no persistence. Observers that miss an event
    rebuild state from the active incident list.
    """

    def __init__(self, channels=None):
        self._subscribers = list(channels or [])
        self._lock = threading.Lock()

    def add_channel(self, channel):
        with self._lock:
            self._subscribers.append(channel)
        return channel

    def subscribe(self, maxsize=100):
        return self.add_channel(Subscription(self, maxsize=maxsize))

    def unsubscribe(self, subscriber):
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    @property
    def subscriber_count(self):
        return len(self._subscribers)

    def incident_created(self, incident):
        return self.publish(IncidentEvent(EventType.INCIDENT_CREATED, incident))

    def incident_resolved(self, incident):
        return self.publish(IncidentEvent(EventType.INCIDENT_RESOLVED, incident))

    def publish(self, event):
        with self._lock:
            subscribers = list(self._subscribers)
        delivered = 0
        for subscriber in subscribers:
            try:
                subscriber.send(event)
                delivered += 1
            except Exception as e:
                logger.warning(f"Notification dispatch error ({type(subscriber).__name__}): {e}")
        logger.debug(f"Published {event.type.value} for {event.incident.metric_name} to {delivered} subscribers")
        return delivered
