"""Structured logging for the API server and the CLI (structlog over stdlib).

Environment:
    DEPSENTINEL_LOG_LEVEL  — DEBUG | INFO | WARNING | ERROR (default: INFO)
    DEPSENTINEL_LOG_FORMAT — console | plain | json (default: console)

Everything is written to stderr; ``depsentinel scan --json`` owns stdout.
"""

from __future__ import annotations

import logging
import logging.config
import os
import sys
from typing import TextIO

import structlog

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Chatty dependencies, pinned regardless of the business level.
_THIRD_PARTY_LEVELS = {
    "uvicorn.access": "WARNING",
    "uvicorn.error": "INFO",
    "httpx": "WARNING",
    "httpcore": "WARNING",
}


def resolve_level(level: str | None) -> str:
    """Explicit *level* beats the environment; unknown names fall back to INFO."""
    name = (level or os.environ.get("DEPSENTINEL_LOG_LEVEL") or "INFO").strip().upper()
    return name if name in _LEVELS else "INFO"


def build_renderer(log_format: str, stream: TextIO | None = None) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    stream = stream if stream is not None else sys.stderr
    # colours only for an interactive console; pipes and CI get plain text
    colors = log_format == "console" and hasattr(stream, "isatty") and stream.isatty()
    return structlog.dev.ConsoleRenderer(colors=colors)


def setup_logging(level: str | None = None) -> None:
    """Configure structlog and stdlib logging for the ``depsentinel`` loggers.

    ``level`` comes from the CLI ``--verbose`` flag; the server passes nothing.
    """
    log_level = resolve_level(level)
    log_format = os.environ.get("DEPSENTINEL_LOG_FORMAT", "console").strip().lower()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    loggers: dict[str, dict] = {"depsentinel": {"level": log_level}}
    for name, lvl in _THIRD_PARTY_LEVELS.items():
        loggers[name] = {"level": lvl}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared_processors,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        build_renderer(log_format),
                    ],
                },
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "structlog",
                },
            },
            # third-party records below WARNING stay out unless DEBUG is asked for
            "root": {
                "handlers": ["stderr"],
                "level": log_level if log_level == "DEBUG" else "WARNING",
            },
            "loggers": loggers,
        }
    )
