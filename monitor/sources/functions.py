"""Adapters that turn plain callables into metric sources."""


class CallableSource:
    """Wraps a zero-argument callable returning a number, bool, or None."""

    def __init__(self, func):
        self.func = func

    def get_current_value(self, metric_name):
        value = self.func()
        if value is None:
            return None
        return float(value)
