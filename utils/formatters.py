"""Formatting utilities for display."""
from datetime import datetime, timezone

_DURATION_UNITS = ((86400, "d"), (3600, "h"), (60, "m"), (1, "s"))


def format_value(value, unit=""):
    """Format a metric reading with its unit: 312.5 ms, 7.20%, 1.0."""
    if value is None:
        return "N/A"
    value = float(value)
    if unit == "%":
        return f"{value:.2f}%"
    formatted = f"{value:,.2f}"
    if not unit:
        return formatted
    return f"{formatted} {unit}"


def format_duration(seconds):
    """Two most significant units: 45s, 12m 5s, 3h 20m, 2d 4h."""
    if seconds is None:
        return "ongoing"
    remaining = max(0, int(seconds))
    parts = []
    for size, suffix in _DURATION_UNITS:
        if remaining >= size or (size == 1 and not parts):
            parts.append(f"{remaining // size}{suffix}")
            remaining %= size
        elif parts:
            parts.append(f"0{suffix}")
        if len(parts) == 2:
            break
    return " ".join(parts)


def format_timestamp(ts):
    """UTC minute-resolution timestamp; ISO strings are parsed first."""
    if ts is None:
        return "N/A"
    if isinstance(ts, str):
        try:
            ts = datetime.fromisoformat(ts)
        except ValueError:
            return ts
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
