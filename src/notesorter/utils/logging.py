"""Structured logging for notesorter.

Every module logs through ``get_logger(__name__)`` with a snake_case event
name and keyword context. The CLI calls ``configure_logging`` once; library
use without it falls back to structlog's console defaults.
"""

import os
from pathlib import Path
from typing import Any

import structlog


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def log_file_path() -> Path:
    """Location of the JSON-lines log: ``~/.cache/notesorter/logs/notesorter.log``."""
    return Path.home() / ".cache" / "notesorter" / "logs" / "notesorter.log"


def configure_logging() -> None:
    """
    Send JSON log lines to ``log_file_path()``.

    ``NOTESORTER_LOG_LEVEL`` picks the threshold (default INFO). At DEBUG the
    log also carries routing prompts, raw classifier replies and per-block
    metadata changes.

    Example:
        NOTESORTER_LOG_LEVEL=DEBUG notesorter organize <document-id>
        tail -f ~/.cache/notesorter/logs/notesorter.log | jq .
    """
    log_file = log_file_path()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    log_level = os.environ.get("NOTESORTER_LOG_LEVEL", "INFO").upper()
    if log_level not in LOG_LEVELS:
        log_level = "INFO"

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=log_file.open("a")),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Return a structlog logger bound to ``name`` (usually the module's ``__name__``)."""
    return structlog.get_logger(name)
