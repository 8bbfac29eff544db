"""
Logging configuration for Venue CRM.

Single 'venuecrm' logger; engine modules log through child loggers
(venuecrm.engine.scheduler, venuecrm.engine.sync, ...).

  Log file : logs/venuecrm.log   (directory overridable with LOG_DIR)
  Rotation : 5 MB × 3 backups
  Level    : LOG_LEVEL env var (DEBUG / INFO / WARNING / ERROR / CRITICAL),
             INFO when unset or unknown
  Console  : LOG_TO_STDERR=1 adds a stderr handler for WARNING and above

Usage
-----
    from venuecrm.logging_config import configure_logging, log_call

    configure_logging()          # once per CLI entry, idempotent

    @log_call
    def move_booking(booking_id, room_name, start_hour, start_minute):
        ...

Log format per line
-------------------
    2026-03-02 09:14:07 | DEBUG    | CALL move_booking | args=(12, 'Vergaderzaal 100', 14, 30)
    2026-03-02 09:14:07 | INFO     | OK   move_booking | 18ms
    2026-03-02 09:14:09 | ERROR    | FAIL create_booking | ConflictError: Conflict: "Lunch" ... | 9ms
"""

import functools
import logging
import logging.handlers
import os
import sys
import time
from pathlib import Path

_LOG_DIR = Path(os.environ.get("LOG_DIR", Path(__file__).parent.parent / "logs"))
_LOG_FILE = _LOG_DIR / "venuecrm.log"
_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
_BACKUP_COUNT = 3
_MAX_ARG_REPR = 200


def configure_logging() -> logging.Logger:
    """
    Set up the venuecrm logger. Idempotent — safe to call on every CLI entry.
    Returns the configured logger.
    """
    _LOG_DIR.mkdir(parents=True, exist_ok=True)

    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        level = logging.INFO

    logger = logging.getLogger("venuecrm")

    # Guard: don't add duplicate handlers if already configured
    if logger.handlers:
        return logger

    logger.setLevel(level)
    formatter = logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT)

    handler = logging.handlers.RotatingFileHandler(
        _LOG_FILE,
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    if os.environ.get("LOG_TO_STDERR", "").lower() in ("1", "true", "yes"):
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(logging.WARNING)
        console.setFormatter(formatter)
        logger.addHandler(console)

    return logger


def _short_repr(value) -> str:
    text = repr(value)
    if len(text) > _MAX_ARG_REPR:
        return text[:_MAX_ARG_REPR] + "..."
    return text


def log_call(func):
    """
    Decorator: logs entry, clean exit, and exceptions for any function.

    - DEBUG on entry   : CALL <name> | args=(...)   (long reprs are truncated)
    - INFO  on success : OK   <name> | <N>ms
    - ERROR on failure : FAIL <name> | ExcType: message | <N>ms   (then re-raises)
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger("venuecrm")
        name = func.__name__
        start = time.perf_counter()

        parts = [_short_repr(a) for a in args] + [f"{k}={_short_repr(v)}" for k, v in kwargs.items()]
        arg_str = ", ".join(parts) if parts else "—"
        logger.debug(f"CALL {name} | args=({arg_str})")

        try:
            result = func(*args, **kwargs)
            ms = int((time.perf_counter() - start) * 1000)
            logger.info(f"OK   {name} | {ms}ms")
            return result
        except Exception as exc:
            ms = int((time.perf_counter() - start) * 1000)
            logger.error(f"FAIL {name} | {type(exc).__name__}: {exc} | {ms}ms")
            raise

    return wrapper
