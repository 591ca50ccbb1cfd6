"""Custom exception hierarchy for docvault.

All application exceptions inherit from :class:`DocVaultError`, which
carries an optional ``provider_name`` so error handlers can identify which
component (e.g. "openai_embedding", "sqlite_vector_store") raised it.

The hierarchy is organized by pipeline stage:

    DocVaultError  (base -- catch-all for any docvault error)
    +-- UnsupportedFormatError   (extraction: bytes are not text)
    +-- ExtractionError          (extraction: malformed PDF/DOCX/...)
    +-- ProviderUnavailableError (embedding: missing credential / endpoint)
    +-- ProviderError            (embedding: upstream failure or timeout)
    +-- NotFoundError            (store: unknown document or chunk)
    +-- IntegrityViolationError  (store: unique / dimension constraint)
    +-- StorageError             (store: disk or database I/O)
    +-- ConfigurationError       (startup / invalid settings)

Errors raised inside background ingestion are caught and logged by the
ingestion queue; errors raised by store operations called from the
external boundary propagate unchanged so that boundary can map them.
"""


class DocVaultError(Exception):
    """Base exception for all docvault errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name``.  ``__str__`` prefixes the provider name in brackets
    for structured log output, e.g. ``[openai_embedding] Request timed out``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Extraction errors
# ---------------------------------------------------------------------------

class UnsupportedFormatError(DocVaultError):
    """Raised when uploaded bytes of an unknown type cannot be read as text."""

    def __init__(
        self,
        message: str = "Unsupported file format",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionError(DocVaultError):
    """Raised when a supported format (PDF, DOCX) is malformed."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Embedding provider errors
# ---------------------------------------------------------------------------

class ProviderUnavailableError(DocVaultError):
    """Raised when an embedding provider lacks its credential or endpoint."""

    def __init__(
        self,
        message: str = "Embedding provider is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderError(DocVaultError):
    """Raised when an embedding call fails upstream or exceeds its time bound.

    There is no automatic retry; the failure is terminal for the ingestion
    job (or search request) that made the call.
    """

    def __init__(
        self,
        message: str = "Embedding provider call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Storage errors
# ---------------------------------------------------------------------------

class NotFoundError(DocVaultError):
    """Raised when a document (or a chunk referenced by a write) does not exist."""

    def __init__(
        self,
        message: str = "Resource not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IntegrityViolationError(DocVaultError):
    """Raised on unique-constraint collisions and vector dimension mismatches."""

    def __init__(
        self,
        message: str = "Integrity constraint violated",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StorageError(DocVaultError):
    """Raised when disk or database I/O fails."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigurationError(DocVaultError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
