import os
import logging
import logging.config
from pathlib import Path
from typing import Dict, Any, Tuple


_configured = False  # idempotency guard

PACKAGE_LOGGER = "character_screen"

# Server loggers follow our level; client chatter is capped at WARNING
_ALIGNED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")
_QUIET_LOGGERS = ("httpx", "httpcore")

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _handlers(log_file: str | None) -> Tuple[Dict[str, Any], list]:
    """Console always; a WatchedFileHandler too when ``log_file`` is set."""
    handlers: Dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "formatter": "std",
        }
    }
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.WatchedFileHandler",
            "filename": log_file,
            "formatter": "std",
        }
    return handlers, list(handlers)


def _build_dict_config(log_file: str | None, level: str) -> Dict[str, Any]:
    handlers, names = _handlers(log_file)
    loggers: Dict[str, Any] = {name: {"level": "WARNING"} for name in _QUIET_LOGGERS}
    # fetch/route event lines (fetch.start, upstream.http_error, ...) live here
    loggers[PACKAGE_LOGGER] = {"level": level}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"std": {"format": _FORMAT}},
        "handlers": handlers,
        "loggers": loggers,
        "root": {"level": level, "handlers": names},
    }


def configure_logging() -> logging.Logger:
    """Configure logging to stdout and (optionally) to LOG_FILE_PATH.

    Level comes from LOG_LEVEL (default INFO). Idempotent: safe to call from
    every ``create_app()``.

    Returns:
        The ``character_screen`` package logger.
    """
    global _configured
    if not _configured:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        log_file = os.getenv("LOG_FILE_PATH") or None

        logging.config.dictConfig(_build_dict_config(log_file, level))
        for name in _ALIGNED_LOGGERS:
            logging.getLogger(name).setLevel(level)
        _configured = True

    return logging.getLogger(PACKAGE_LOGGER)
