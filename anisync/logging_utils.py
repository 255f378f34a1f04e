"""Structured logging helper shared by the ingestion services."""

from __future__ import annotations

import logging
from typing import Any


def structured_log(
    logger: logging.Logger,
    level: str,
    event: str,
    /,
    **fields: Any,
) -> None:
    """Emit a structured log entry.

    The event name is the log message; JsonLogFormatter reads it back through
    record.getMessage(), so it is not repeated in ``extra``.

    Usage:
        structured_log(logger, "info", "ingestion.run_started", start_id=1, limit=500)
    """
    log_method = getattr(logger, level.lower())
    log_method(event, extra=fields)
