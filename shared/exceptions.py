"""Exception hierarchy for the notes RAG bridge.

Stage failures (embedding, completion, vector index) propagate to the
orchestration layer, which turns them into degraded answers. Retrieval never
raises for missing or foreign notes; it returns empty results instead.
"""

from typing import Any


class BridgeError(Exception):
    """Base exception for all bridge errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(BridgeError, ValueError):
    """Raised when required configuration is missing or invalid. Fatal at startup."""

    def __init__(self, message: str, key: str | None = None, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        if key:
            details["key"] = key
        super().__init__(message, details)


class ClientRequestError(BridgeError):
    """Raised when a backend returns a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None, url: str | None = None) -> None:
        details: dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        if url:
            details["url"] = url
        self.status_code = status_code
        super().__init__(message, details)


class EmbeddingError(BridgeError):
    """Raised when embedding generation fails."""

    pass


class CompletionError(BridgeError):
    """Raised when a chat/completion request fails or returns no usable text."""

    pass


class VectorIndexError(BridgeError):
    """Raised when a vector index operation fails."""

    pass
