"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable, Iterable, List, Union

import httpx
import pytest

# Ensure src/ is on the import path (for local imports without installing as package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from gemini_relay.completion import CompletionClient  # noqa: E402

Step = Union[httpx.Response, Exception]


def gemini_ok(text: str) -> httpx.Response:
    """A successful generateContent response carrying ``text``."""
    return httpx.Response(
        200,
        json={"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]},
    )


class ScriptedEndpoint:
    """Mock transport handler replaying a fixed sequence of responses/errors."""

    def __init__(self, steps: Iterable[Step]) -> None:
        self.steps: List[Step] = list(steps)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.steps:
            raise AssertionError("endpoint called more times than scripted")
        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        return step

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def make_client() -> Callable[..., tuple]:
    """Build a CompletionClient against a scripted endpoint, recording sleeps."""

    def _make(steps: Iterable[Step], **kwargs):
        endpoint = ScriptedEndpoint(steps)
        sleeps: List[float] = []
        kwargs.setdefault("random_fn", lambda: 0.5)
        client = CompletionClient(
            "https://gemini.test/v1beta/models/test:generateContent",
            "test-key",
            transport=httpx.MockTransport(endpoint),
            sleep=sleeps.append,
            **kwargs,
        )
        return client, endpoint, sleeps

    return _make


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return the root directory of the project."""
    return Path(__file__).resolve().parent.parent


@pytest.fixture(scope="function")
def tmp_data_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for stored messages during tests."""
    d = tmp_path / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


@pytest.fixture(scope="function")
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Ensure tests run with a clean environment (no leftover vars)."""
    for var in list(os.environ):
        if var.startswith("GEMINI_RELAY") or var == "GEMINI_API_KEY":
            monkeypatch.delenv(var, raising=False)
    yield
