"""Error taxonomy for a prompt turn.

ValidationError and StorageError are raised by the turn handler; the
CompletionError family comes out of :mod:`gemini_relay.completion`.
"""
from __future__ import annotations

from typing import Optional


class HandlerError(Exception):
    """Base class for every failure a turn can end with."""


class ValidationError(HandlerError):
    """Caller input was rejected before any I/O happened."""


class StorageError(HandlerError):
    """A message could not be persisted."""


class CompletionError(HandlerError):
    """The completion endpoint did not produce usable text."""


class RetriesExhausted(CompletionError):
    def __init__(self, attempts: int, status: Optional[int], body: str) -> None:
        self.attempts = attempts
        self.status = status
        self.body = body
        super().__init__(
            f"Gemini API call failed after {attempts} attempts. Status: {status}. Body: {body}"
        )


class ClientError(CompletionError):
    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self.body = body
        super().__init__(f"Gemini API Client Error: {status} - {body}")


class ContentMissing(CompletionError):
    def __init__(self, message: str = "") -> None:
        super().__init__(
            message
            or "Gemini API response successful but generated content text is missing or was blocked."
        )
