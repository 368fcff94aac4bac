"""Relay service forwarding user prompts to the Gemini API.

Each prompt turn stores the user message, asks Gemini for a completion
(retrying rate limits and server errors with exponential backoff), stores
the reply and returns it.

Typical usage
-------------
from gemini_relay import create_app
app = create_app()

or, from the provided launcher:

python scripts/run_server.py --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

__all__ = ["create_app", "__version__", "get_version"]

__version__ = "0.1.0"


def get_version() -> str:
    """Return the package version."""
    return __version__


from .server import create_app  # noqa: E402
