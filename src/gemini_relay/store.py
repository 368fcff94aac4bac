"""Append-only per-user message store (thread-safe, one JSONL file per user)."""
from __future__ import annotations

import hashlib
import re
import threading
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal, Protocol

from .errors import StorageError
from .io import append_jsonl, ensure_dir, read_jsonl

Role = Literal["user", "assistant"]
ROLES = ("user", "assistant")


# -----------------------------
# Types
# -----------------------------
@dataclass(frozen=True)
class Message:
    """One persisted turn."""

    id: str
    user_id: str
    role: Role
    content: str
    created_at: str      # ISO-8601, UTC, assigned by the store

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class MessageStore(Protocol):
    def create(self, user_id: str, role: Role, content: str) -> Message:
        ...


# -----------------------------
# Helpers
# -----------------------------
def _safe_user_id(name: str) -> str:
    # Readable prefix for humans, digest of the exact id for uniqueness.
    prefix = re.sub(r"[^\w.\-@]+", "_", name.strip() or "default")[:64]
    digest = hashlib.sha256(name.encode("utf-8")).hexdigest()
    return f"{prefix}-{digest}"


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


# -----------------------------
# DiskMessageStore
# -----------------------------
class DiskMessageStore:
    """JSONL-backed message store.

    Layout:
        data_dir/
          <safe_prefix>-<sha256(user_id)>.jsonl   # one Message per line, in creation order

    Records are only ever appended; nothing here mutates or deletes them.
    """

    def __init__(self, data_dir: str) -> None:
        self.root = Path(data_dir)
        ensure_dir(self.root)
        self._lock = threading.Lock()

    def _path(self, user_id: str) -> Path:
        return self.root / f"{_safe_user_id(user_id)}.jsonl"

    def create(self, user_id: str, role: Role, content: str) -> Message:
        if role not in ROLES:
            raise ValueError(f"unsupported role: {role!r}")
        if not content:
            raise ValueError("content must be a non-empty string")

        msg = Message(
            id=uuid.uuid4().hex,
            user_id=str(user_id),
            role=role,
            content=content,
            created_at=_utc_iso(),
        )
        with self._lock:
            try:
                append_jsonl(self._path(msg.user_id), msg.to_dict())
            except (OSError, ValueError) as e:
                raise StorageError(f"Failed to persist {role} message: {e}") from e
        return msg

    def list(self, user_id: str) -> List[Message]:
        """All messages stored for ``user_id``, oldest first."""
        user_id = str(user_id)
        rows = read_jsonl(self._path(user_id))
        out: List[Message] = []
        for r in rows:
            try:
                out.append(Message(**r))
            except TypeError:
                # Foreign or truncated record; skip it rather than fail the read.
                continue
        return [m for m in out if m.user_id == user_id]
