from __future__ import annotations

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .interfaces import HttpRequest


class ChromaError(RuntimeError):
    """Base class for failures surfaced by the client."""


class TransportError(ChromaError):
    """Raised when the request never produced an HTTP response (refused, timed out)."""

    def __init__(self, message: str, request: Optional["HttpRequest"] = None) -> None:
        super().__init__(message)
        self.request = request


class StatusError(ChromaError):
    """Raised when the server answers with a status outside 200-299."""

    def __init__(self, code: int, body: str, request: Optional["HttpRequest"] = None) -> None:
        super().__init__(f"Unsuccessful HTTP status code {code}")
        self.code = code
        self.body = body
        self.request = request


class ConfigurationError(ChromaError):
    """Raised when a required option is missing or an operation is not enabled."""


class ProtocolError(ChromaError):
    """Raised when a response does not have the expected shape."""


class ContractError(ValueError):
    """Raised when a call violates documented argument contract (e.g., no delete selector)."""
