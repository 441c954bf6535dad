"""Logging setup shared by the CLI and the library modules.

The console only shows warnings unless ``--verbose`` is given; a log file,
when configured, always receives DEBUG records.
"""

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Per-request lines from the HTTP client
QUIET_LOGGERS = ("httpx", "httpcore")


def _file_handler(log_file: Path, formatter: logging.Formatter) -> logging.Handler | None:
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError as e:
        logging.getLogger(__name__).warning(f"Cannot write log file {log_file}: {e}")
        return None
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def setup_logging(level: str = "INFO", log_file: Path | None = None, verbose: bool = False) -> None:
    """Replace the root logger's handlers.

    Args:
        level: Root level name, overridden to DEBUG by ``verbose``
        log_file: Optional file that receives every record
        verbose: Echo DEBUG records to stderr
    """
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG if verbose else logging.getLevelName(level.upper()))

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file is not None:
        handler = _file_handler(log_file, formatter)
        if handler is not None:
            root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
