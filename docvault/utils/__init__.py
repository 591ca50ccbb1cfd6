"""Utility modules for docvault.

- **errors** -- Domain exception hierarchy rooted at DocVaultError; each
  pipeline stage raises its own subclass so callers can handle failures
  granularly.
- **concurrency** -- semaphore + timeout helper that keeps embedding calls
  under provider rate limits and bounds their duration.
- **logging** -- structlog setup: coloured console output in development,
  structured JSON in production.
"""

from docvault.utils.concurrency import bounded_call
from docvault.utils.errors import (
    ConfigurationError,
    DocVaultError,
    ExtractionError,
    IntegrityViolationError,
    NotFoundError,
    ProviderError,
    ProviderUnavailableError,
    StorageError,
    UnsupportedFormatError,
)
from docvault.utils.logging import configure_logging, get_logger, ingestion_log_context

__all__ = [
    "ConfigurationError",
    "DocVaultError",
    "ExtractionError",
    "IntegrityViolationError",
    "NotFoundError",
    "ProviderError",
    "ProviderUnavailableError",
    "StorageError",
    "UnsupportedFormatError",
    "bounded_call",
    "configure_logging",
    "get_logger",
    "ingestion_log_context",
]
