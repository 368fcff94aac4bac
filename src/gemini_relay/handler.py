"""One prompt turn: validate, store the user message, complete, store the reply."""
from __future__ import annotations

import logging
from typing import Any, Protocol

from .errors import StorageError, ValidationError
from .store import Message, MessageStore, Role

logger = logging.getLogger(__name__)


class Completer(Protocol):
    def complete(self, text: str) -> str:
        ...


class TurnHandler:
    """Runs a single prompt turn against a store and a completion client.

    Completion errors propagate unchanged. If the assistant message cannot
    be stored, the user message written earlier in the turn is left in
    place; there is no rollback.
    """

    def __init__(self, store: MessageStore, client: Completer) -> None:
        self.store = store
        self.client = client

    def handle_turn(self, user_id: str, content: Any) -> str:
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Prompt content is required")

        self._persist(user_id, "user", content)
        reply = self.client.complete(content)
        self._persist(user_id, "assistant", reply)
        return reply

    def _persist(self, user_id: str, role: Role, content: str) -> Message:
        try:
            return self.store.create(user_id, role, content)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to persist {role} message: {e}") from e
