"""Consecutive breach/normal streak tracking per metric."""
import threading
from dataclasses import replace

from models.alerts import StreakState


class StreakTracker:
    """In-memory map of metric name to StreakState.

    Each metric has its own lock; the table lock is only held while a new
    metric's entry is created. Written by a single monitor loop, readable from
    any thread.
    """

    def __init__(self):
        self._states = {}
        self._locks = {}
        self._table_lock = threading.Lock()

    def _entry(self, metric_name):
        lock = self._locks.get(metric_name)
        if lock is None:
            with self._table_lock:
                lock = self._locks.get(metric_name)
                if lock is None:
                    self._states[metric_name] = StreakState()
                    lock = self._locks[metric_name] = threading.Lock()
        return lock

    def record_breach(self, metric_name):
        with self._entry(metric_name):
            state = self._states[metric_name]
            state.breach_count += 1
            state.normal_count = 0
            return replace(state)

    def record_normal(self, metric_name):
        with self._entry(metric_name):
            state = self._states[metric_name]
            state.normal_count += 1
            state.breach_count = 0
            return replace(state)

    def get(self, metric_name):
        lock = self._locks.get(metric_name)
        if lock is None:
            return StreakState()
        with lock:
            return replace(self._states[metric_name])

    def reset(self, metric_name):
        lock = self._locks.get(metric_name)
        if lock is None:
            return
        with lock:
            self._states[metric_name] = StreakState()

    def snapshot(self):
        return {name: self.get(name) for name in list(self._locks)}
