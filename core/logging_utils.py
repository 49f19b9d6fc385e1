from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

from core.logging_setup import setup_logging as _setup_structured_logging


def setup_logging(settings: Optional[Any] = None) -> None:
    """Configure structured logging using the environment-aware debug flag."""

    if settings is not None and hasattr(settings, "debug_enabled"):
        debug = bool(settings.debug_enabled())
    else:
        debug = str(os.getenv("CASES_DEBUG", "0")).lower() in {"1", "true", "yes", "on"}
    _setup_structured_logging(debug=debug, preserve_handlers=True)


def get_logger(name: str) -> logging.Logger:
    """Return a logger that propagates to the structured root handlers."""

    logger = logging.getLogger(name)
    logger.propagate = True
    return logger


def log_event(
    logger: logging.Logger,
    channel: str,
    event: str,
    payload: Dict[str, Any] | None = None,
    *,
    level: int = logging.INFO,
) -> None:
    """Log a structured event with a consistent JSON payload."""

    data = payload or {}
    try:
        message = json.dumps({"event": event, **data}, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        message = f"{event}: {data!r}"
    logger.log(level, message, extra={"channel": channel})


def sql_logging_enabled() -> bool:
    return str(os.getenv("CASES_LOG_SQL", "0")).lower() in {"1", "true", "yes", "on"}


__all__ = ["setup_logging", "get_logger", "log_event", "sql_logging_enabled"]
