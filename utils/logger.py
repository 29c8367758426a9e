"""Logging configuration for the perfwatch logger hierarchy."""
import logging
from pathlib import Path

LOGGER_NAME = "perfwatch"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level="INFO", log_file=None):
    """Attach a rich stderr handler (and optionally a file handler) to the perfwatch logger.

    Safe to call more than once: later calls only adjust the level and add a
    file handler for a path that is not already attached.
    """
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)

    log = logging.getLogger(LOGGER_NAME)
    log.setLevel(numeric_level)
    log.propagate = False

    if not any(getattr(h, "_perfwatch_console", False) for h in log.handlers):
        from rich.console import Console
        from rich.logging import RichHandler

        # stderr keeps --json output on stdout machine readable
        handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True,
                              markup=False, show_path=False)
        handler._perfwatch_console = True
        log.addHandler(handler)

    if log_file:
        path = str(Path(log_file).resolve())
        attached = {getattr(h, "baseFilename", None) for h in log.handlers}
        if path not in attached:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
            log.addHandler(file_handler)

    for handler in log.handlers:
        handler.setLevel(numeric_level)
    return log
