"""Centralized logging configuration.

Each process gets its own log files:
- {config_dir}/logs/{process}.log (+ .YYYY-MM-DD rotations)
- {config_dir}/logs/{process}-current.log (size-capped)

Usage in each process entry point:
    from .logging_config import setup_process_logging
    setup_process_logging("termhost")

Then in any module:
    from .logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Hello")

Per-session lines go through session_logger(), which tags each record
with the session id (prefix "pty-3: " and record attribute session_id).
"""

import logging
import sys
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler

from .config import log_dir

# Track which process we're in (set by setup_process_logging)
_current_process: str | None = None

# Chatty at DEBUG; held at INFO or above even under --verbose
_QUIET_LOGGERS = ("asyncio", "concurrent.futures")


class FlushingStreamHandler(logging.StreamHandler):
    """StreamHandler that flushes after every emit."""

    def emit(self, record):
        super().emit(record)
        self.flush()


def setup_process_logging(
    process_name: str,
    level: int = logging.INFO,
    console: bool = True,
    file: bool = True,
) -> logging.Logger:
    """
    Set up logging for a host process.

    Call this ONCE at the entry point of each process:
    - cli.py main() -> setup_process_logging("termhost")

    Args:
        process_name: Process identifier (e.g. "termhost")
        level: Minimum log level (default INFO)
        console: Whether to log to stderr
        file: Whether to log to rotating files

    Returns:
        Root logger for this process
    """
    global _current_process
    _current_process = process_name

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    # Format: [HH:MM:SS] [process] [LEVEL] module: message
    console_fmt = logging.Formatter(
        fmt=f"[%(asctime)s] [{process_name}] [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    file_fmt = logging.Formatter(
        fmt=f"[%(asctime)s] [{process_name}] [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if console:
        console_handler = FlushingStreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(console_fmt)
        root.addHandler(console_handler)

    if file:
        logs = log_dir()
        logs.mkdir(parents=True, exist_ok=True)

        # Daily rotation, 14 days of history
        daily_handler = TimedRotatingFileHandler(
            logs / f"{process_name}.log",
            when="midnight",
            interval=1,
            backupCount=14,
            encoding="utf-8",
        )
        daily_handler.setLevel(level)
        daily_handler.setFormatter(file_fmt)
        daily_handler.suffix = "%Y-%m-%d"
        root.addHandler(daily_handler)

        # 5MB per file, 5 backups (catches a chatty session within one day)
        size_handler = RotatingFileHandler(
            logs / f"{process_name}-current.log",
            maxBytes=5 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        size_handler.setLevel(level)
        size_handler.setFormatter(file_fmt)
        root.addHandler(size_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    return root


class SessionLogAdapter(logging.LoggerAdapter):
    """Prefixes messages with the session id and records it as session_id."""

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return f"{self.extra['session_id']}: {msg}", kwargs


def session_logger(logger: logging.Logger, session_id: str) -> SessionLogAdapter:
    """Wrap a module logger for lines about one PTY session."""
    return SessionLogAdapter(logger, {"session_id": session_id})


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a module.

    Call at module level: logger = get_logger(__name__)

    Until setup_process_logging() runs, records go wherever the embedding
    application sends them.
    """
    return logging.getLogger(name)
