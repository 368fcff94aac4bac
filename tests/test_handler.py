from __future__ import annotations

from pathlib import Path
from typing import List

import pytest

from gemini_relay.errors import ClientError, RetriesExhausted, StorageError, ValidationError
from gemini_relay.handler import TurnHandler
from gemini_relay.store import DiskMessageStore


class StubClient:
    """Records prompts and answers with a fixed reply (or raises)."""

    def __init__(self, reply: str = "ok", error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.prompts: List[str] = []

    def complete(self, text: str) -> str:
        self.prompts.append(text)
        if self.error is not None:
            raise self.error
        return self.reply


class FlakyStore(DiskMessageStore):
    """Fails the Nth create() call with a non-storage exception."""

    def __init__(self, data_dir: str, fail_on: int):
        super().__init__(data_dir)
        self.fail_on = fail_on
        self.calls = 0

    def create(self, user_id, role, content):
        self.calls += 1
        if self.calls == self.fail_on:
            raise RuntimeError("db down")
        return super().create(user_id, role, content)


def test_successful_turn_persists_user_then_assistant(tmp_data_dir: Path):
    store = DiskMessageStore(str(tmp_data_dir))
    client = StubClient(reply="Hello back")
    handler = TurnHandler(store, client)

    reply = handler.handle_turn("u1", "Hello")

    assert reply == "Hello back"
    assert client.prompts == ["Hello"]
    msgs = store.list("u1")
    assert [(m.role, m.content) for m in msgs] == [("user", "Hello"), ("assistant", "Hello back")]
    assert all(m.user_id == "u1" for m in msgs)
    assert msgs[-1].content == reply


@pytest.mark.parametrize("content", [None, "", "   ", "\n\t", 42])
def test_blank_content_is_rejected_without_io(tmp_data_dir: Path, content):
    store = DiskMessageStore(str(tmp_data_dir))
    client = StubClient()
    handler = TurnHandler(store, client)

    with pytest.raises(ValidationError):
        handler.handle_turn("u1", content)

    assert store.list("u1") == []
    assert client.prompts == []


def test_content_is_forwarded_untrimmed(tmp_data_dir: Path):
    store = DiskMessageStore(str(tmp_data_dir))
    client = StubClient()
    TurnHandler(store, client).handle_turn("u1", "  padded  ")

    assert client.prompts == ["  padded  "]
    assert store.list("u1")[0].content == "  padded  "


@pytest.mark.parametrize("error", [RetriesExhausted(5, 429, "quota"), ClientError(400, "bad")])
def test_completion_error_propagates_and_leaves_user_turn(tmp_data_dir: Path, error):
    store = DiskMessageStore(str(tmp_data_dir))
    handler = TurnHandler(store, StubClient(error=error))

    with pytest.raises(type(error)) as exc:
        handler.handle_turn("u1", "Hello")

    assert exc.value is error
    assert [m.role for m in store.list("u1")] == ["user"]


def test_user_turn_storage_failure_skips_completion(tmp_data_dir: Path):
    store = FlakyStore(str(tmp_data_dir), fail_on=1)
    client = StubClient()
    handler = TurnHandler(store, client)

    with pytest.raises(StorageError) as exc:
        handler.handle_turn("u1", "Hello")

    assert isinstance(exc.value.__cause__, RuntimeError)
    assert client.prompts == []
    assert store.list("u1") == []


def test_assistant_turn_storage_failure_leaves_orphan_user_turn(tmp_data_dir: Path):
    store = FlakyStore(str(tmp_data_dir), fail_on=2)
    client = StubClient(reply="lost")
    handler = TurnHandler(store, client)

    with pytest.raises(StorageError):
        handler.handle_turn("u1", "Hello")

    assert client.prompts == ["Hello"]
    assert [(m.role, m.content) for m in store.list("u1")] == [("user", "Hello")]
