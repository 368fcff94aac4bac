"""HTTP client for the Gemini ``generateContent`` endpoint with bounded retries."""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Dict, Optional

import httpx

from .errors import ClientError, ContentMissing, RetriesExhausted

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------
DEFAULT_ENDPOINT = (
    "https://generativelanguage.googleapis.com/v1beta/models/"
    "gemini-2.5-flash-preview-09-2025:generateContent"
)
MAX_ATTEMPTS = 5        # 1 initial request + 4 retries
BASE_DELAY = 1.0        # seconds, doubled per retry
MAX_JITTER = 0.5        # seconds, uniform [0, MAX_JITTER)
TIMEOUT = 30.0          # per request, not per turn


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def backoff_delay(
    attempt_index: int,
    *,
    base_delay: float = BASE_DELAY,
    max_jitter: float = MAX_JITTER,
    random_fn: Callable[[], float] = random.random,
) -> float:
    """Seconds to wait before retry number ``attempt_index`` (0 for the first retry)."""
    return (2 ** attempt_index) * base_delay + random_fn() * max_jitter


def is_transient(status: int) -> bool:
    return status == 429 or 500 <= status < 600


def build_payload(text: str) -> Dict[str, Any]:
    """Single user turn in the ``generateContent`` request shape."""
    return {"contents": [{"parts": [{"text": text}]}]}


def extract_text(result: Any) -> Optional[str]:
    """Pull ``candidates[0].content.parts[0].text`` out of a response body.

    Returns None when any level is missing, which is also what a blocked
    prompt looks like (no candidates, only ``promptFeedback``).
    """
    try:
        text = result["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    if not isinstance(text, str) or not text:
        return None
    return text


# -----------------------------------------------------------------------------
# Client
# -----------------------------------------------------------------------------
class CompletionClient:
    """Sends one user turn upstream and returns the generated text.

    Transport errors, 429 and 5xx are retried with exponential backoff and
    jitter, up to ``max_attempts`` requests in total. Any other non-2xx
    status raises :class:`ClientError` at once, and a 2xx without usable text
    raises :class:`ContentMissing` at once. When every attempt was transient
    the last status/body are reported through :class:`RetriesExhausted`.

    ``transport``, ``sleep`` and ``random_fn`` exist so tests can simulate
    the endpoint and the clock.
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        api_key: str = "",
        *,
        max_attempts: int = MAX_ATTEMPTS,
        base_delay: float = BASE_DELAY,
        max_jitter: float = MAX_JITTER,
        timeout: float = TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
        random_fn: Callable[[], float] = random.random,
    ) -> None:
        if int(max_attempts) < 1:
            raise ValueError("max_attempts must be >= 1")
        self.endpoint = endpoint
        self.api_key = str(api_key or "")
        self.max_attempts = int(max_attempts)
        self.base_delay = float(base_delay)
        self.max_jitter = float(max_jitter)
        self.timeout = httpx.Timeout(float(timeout))
        self._transport = transport
        self._sleep = sleep
        self._random = random_fn

    def complete(self, text: str) -> str:
        payload = build_payload(text)
        last_status: Optional[int] = None
        last_body = ""

        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            for attempt in range(self.max_attempts):
                if attempt:
                    delay = backoff_delay(
                        attempt - 1,
                        base_delay=self.base_delay,
                        max_jitter=self.max_jitter,
                        random_fn=self._random,
                    )
                    logger.warning(
                        "completion retry %d/%d after status=%s (sleep %.2fs)",
                        attempt + 1,
                        self.max_attempts,
                        last_status,
                        delay,
                    )
                    self._sleep(delay)

                try:
                    r = client.post(self.endpoint, params={"key": self.api_key}, json=payload)
                except httpx.RequestError as e:
                    last_status, last_body = None, str(e) or e.__class__.__name__
                    logger.warning("completion request failed: %s", last_body)
                    continue

                if is_transient(r.status_code):
                    last_status, last_body = r.status_code, r.text
                    continue

                if not r.is_success:
                    logger.error("completion rejected: status=%s body=%s", r.status_code, r.text[:500])
                    raise ClientError(r.status_code, r.text)

                try:
                    result = r.json()
                except ValueError:
                    result = None
                generated = extract_text(result)
                if generated is None:
                    logger.error("completion returned no text: %s", r.text[:500])
                    raise ContentMissing()
                return generated

        logger.error(
            "completion gave up after %d attempts: status=%s", self.max_attempts, last_status
        )
        raise RetriesExhausted(self.max_attempts, last_status, last_body)


# -----------------------------------------------------------------------------
# Convenience factory
# -----------------------------------------------------------------------------
def create_from_config(cfg: Dict[str, Any], **overrides: Any) -> CompletionClient:
    """Create a CompletionClient from the ``completion`` section of a config dict."""
    c = (cfg or {}).get("completion", {}) if isinstance(cfg, dict) else {}
    params: Dict[str, Any] = {
        "max_attempts": c.get("max_attempts"),
        "base_delay": c.get("base_delay"),
        "max_jitter": c.get("max_jitter"),
        "timeout": c.get("timeout"),
    }
    params = {k: v for k, v in params.items() if v is not None}
    params.update(overrides)
    return CompletionClient(
        c.get("endpoint") or DEFAULT_ENDPOINT,
        c.get("api_key") or "",
        **params,
    )
