"""
Project-wide logging setup for pveups.

Provides a consistent console logger with optional JSON output, plus the
optional daily action/status log files and syslog forwarding used on a
Proxmox node. Controlled via environment variables:
- PVEUPS_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default: INFO)
- PVEUPS_LOG_FORMAT: text|json (default: text)
"""
from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Optional

from pythonjsonlogger import jsonlogger

STATUS_LOGGER_NAME = "pveups.status"

_TEXT_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def _get_level() -> int:
    level = os.getenv("PVEUPS_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level, logging.INFO)


def _console_formatter() -> logging.Formatter:
    fmt = os.getenv("PVEUPS_LOG_FORMAT", "text").lower()
    if fmt == "json":
        return jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "name": "logger"},
        )
    return logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_DATE_FORMAT)


def _daily_file_handler(path: Path, retention_days: int) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        path, when="midnight", backupCount=retention_days, encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter(fmt="%(asctime)s %(message)s", datefmt=_DATE_FORMAT))
    return handler


def setup_logging(
    force: bool = False,
    *,
    logger: Optional[logging.Logger] = None,
    level: Optional[int] = None,
    log_dir: Optional[str] = None,
    retention_days: int = 7,
    syslog_tag: Optional[str] = None,
) -> None:
    """Configure root logging for console output.

    If a handler is already present and force is False, this is a no-op.
    When log_dir is given, action messages go to ``actions.log`` and the
    status record (logger ``pveups.status``) to ``status.log``, both rotated
    at midnight and kept for ``retention_days`` days. A failure to open the
    directory is reported on the console and file logging is skipped.
    When syslog_tag is given and ``/dev/log`` exists, records are also
    forwarded to syslog under that tag.
    """
    target_logger = logger or logging.getLogger()
    if target_logger.handlers and not force:
        return

    # Clear existing handlers when forcing
    if force:
        for h in list(target_logger.handlers):
            target_logger.removeHandler(h)
            h.close()

    target_logger.setLevel(level if level is not None else _get_level())

    handler = logging.StreamHandler()
    handler.setFormatter(_console_formatter())
    target_logger.addHandler(handler)

    if log_dir:
        directory = Path(log_dir)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            action_handler = _daily_file_handler(directory / "actions.log", retention_days)
            action_handler.addFilter(lambda record: record.name != STATUS_LOGGER_NAME)
            target_logger.addHandler(action_handler)

            status_handler = _daily_file_handler(directory / "status.log", retention_days)
            status_handler.addFilter(lambda record: record.name == STATUS_LOGGER_NAME)
            target_logger.addHandler(status_handler)
        except OSError as e:
            target_logger.warning("File logging disabled, cannot use %s: %s", directory, e)

    if syslog_tag and os.path.exists("/dev/log"):
        syslog_handler = logging.handlers.SysLogHandler(address="/dev/log")
        syslog_handler.ident = f"{syslog_tag}: "
        syslog_handler.setFormatter(logging.Formatter("%(message)s"))
        target_logger.addHandler(syslog_handler)
