"""Resident memory of the current process."""
import resource
import sys
from pathlib import Path

_PROC_STATUS = Path("/proc/self/status")


class ProcessMemorySource:
    """Reports memory_usage in megabytes."""

    def get_current_value(self, metric_name):
        if _PROC_STATUS.exists():
            for line in _PROC_STATUS.read_text().splitlines():
                if line.startswith("VmRSS:"):
                    kb = int(line.split()[1])
                    return kb / 1024.0

        # Peak RSS; reported in bytes on macOS and kilobytes elsewhere
        peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
        if sys.platform == "darwin":
            return peak / (1024.0 * 1024.0)
        return peak / 1024.0
