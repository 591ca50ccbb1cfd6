"""Structured logging setup using structlog.

docvault logs structured events only (``document_uploaded``,
``chunks_saved``, ``ingestion_job_failed`` ...).  :func:`configure_logging`
installs one processor chain for both structlog and the standard-library
``logging`` module, so ``httpx``, ``openai`` and ``aiosqlite`` records come
out in the same shape:

    contextvars → level → service name → secret redaction → stack/exc info
    → ISO timestamp → ConsoleRenderer (development) | JSONRenderer (production)

Background ingestion runs many documents at once on worker tasks.
:func:`ingestion_log_context` binds ``job_id`` and ``document_id`` to the
current task's context, so every event the pipeline, store and providers
emit while a job runs can be attributed to it without threading the ids
through each call.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import Any

import structlog

from docvault.utils.errors import ConfigurationError

SERVICE_NAME = "docvault"

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Chatty at INFO (one line per HTTP request / SQL thread hop).
_QUIET_LOGGERS = ("httpx", "httpcore", "openai", "aiosqlite")

# Event keys whose values must never reach a log sink.
_SECRET_KEYS = frozenset({"api_key", "openai_api_key", "authorization", "password"})
_REDACTED = "***"


def _add_service(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _redact_secrets(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    for key in _SECRET_KEYS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = _REDACTED
    return event_dict


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _add_service,
        _redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def _normalise_level(log_level: str) -> str:
    level = log_level.strip().upper()
    if level not in _LEVELS:
        raise ConfigurationError(
            message=f"Unknown log level '{log_level}'. Expected one of {list(_LEVELS)}",
            provider_name="logging",
        )
    return level


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    app_env: str | None = None,
) -> structlog.BoundLogger:
    """Configure structlog and route stdlib logging through it.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (any case).
            Below DEBUG the HTTP and SQLite client loggers are held at
            WARNING.
        json_output: Force JSON output regardless of environment.
        app_env: Deployment environment; ``"production"`` selects JSON.
            Defaults to the ``APP_ENV`` environment variable.

    Returns:
        A configured structlog BoundLogger.

    Raises:
        ConfigurationError: If *log_level* is not a known level name.
    """
    level = _normalise_level(log_level)
    env = app_env or os.environ.get("APP_ENV", "development")

    shared = _shared_processors()
    if json_output or env == "production":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*shared, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *shared,
                renderer,
            ],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    quiet_level = logging.DEBUG if level == "DEBUG" else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    return structlog.get_logger(logger_name=SERVICE_NAME)


def get_logger(name: str) -> structlog.BoundLogger:
    """Named logger; configures INFO console logging on first use if needed."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)


@contextmanager
def ingestion_log_context(job_id: str, document_id: str) -> Iterator[None]:
    """Bind *job_id* and *document_id* to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(job_id=job_id, document_id=document_id):
        yield
