"""Centralised logging configuration for Chatzy.

The conversation core itself only ever asks for a named logger through
:func:`get_logger`; installing handlers is left to the entry point (the
``chatzy`` command line calls :func:`setup_logging` once at start-up).

Two handlers are configured:

``console``
    Colourised output powered by :class:`rich.logging.RichHandler`.
``file``
    A rotating file handler writing ``chatzy.log`` under the data directory
    (``~/.chatzy/logs`` unless ``CHATZY_LOG_DIR`` or ``CHATZY_DATA_DIR`` is
    set) so failed Gemini or storage calls can be inspected after the
    transcript has been printed.

The HTTP, SQL and Google client libraries only reach the handlers at
``WARNING`` and above; their debug chatter would bury the store's own
records.

:func:`setup_logging` is idempotent; later calls are no-ops unless
``force=True``.
"""

from __future__ import annotations

import logging
import logging.config
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

# Maximum size for the rotating log files (5 MiB by default).
_DEFAULT_MAX_BYTES = 5 * 1024 * 1024

_CONFIGURED = False


def _determine_log_directory() -> Path:
    """Return the directory used to store persistent log files."""

    from .config import default_data_dir

    raw = os.getenv("CHATZY_LOG_DIR")
    log_dir = Path(raw).expanduser() if raw else default_data_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _build_logging_config(level: str) -> dict:
    """Construct the dictionary passed to :func:`logging.config.dictConfig`."""

    log_dir = _determine_log_directory()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "rich": {"format": "%(message)s"},
            "standard": {
                "format": "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "()": RichHandler,
                "level": level,
                "formatter": "rich",
                "rich_tracebacks": True,
                "tracebacks_show_locals": False,
            },
            "file": {
                "()": RotatingFileHandler,
                "level": "DEBUG",
                "formatter": "standard",
                "filename": str(log_dir / "chatzy.log"),
                "maxBytes": int(os.getenv("CHATZY_LOG_MAX_BYTES", _DEFAULT_MAX_BYTES)),
                "backupCount": int(os.getenv("CHATZY_LOG_BACKUP_COUNT", 5)),
                "encoding": "utf-8",
            },
        },
        "loggers": {
            "": {
                "level": level,
                "handlers": ["console", "file"],
            },
            "chatzy": {"level": level},
            "urllib3": {"level": "WARNING"},
            "sqlalchemy.engine": {"level": "WARNING"},
            "google": {"level": "WARNING"},
        },
    }


def setup_logging(level: Optional[str] = None, *, force: bool = False) -> None:
    """Initialise the logging system used by the project."""

    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    requested_level = (level or os.getenv("CHATZY_LOG_LEVEL", "WARNING")).upper()
    config = _build_logging_config(requested_level)
    logging.config.dictConfig(config)
    _CONFIGURED = True

    logging.getLogger(__name__).debug(
        "Logging configured (level=%s, log_dir=%s)",
        requested_level,
        _determine_log_directory(),
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module-level logger using the configured hierarchy."""

    return logging.getLogger(name or "chatzy")


__all__ = ["get_logger", "setup_logging"]
