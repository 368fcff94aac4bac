"""Configuration loading for the relay.

Layered configuration:
1. Explicit path argument (highest precedence)
2. Environment variable GEMINI_RELAY_CONFIG
3. Fallback to "config/default.yaml"

Nested keys can be overridden from environment variables with prefix
``GEMINI_RELAY__`` (e.g., GEMINI_RELAY__COMPLETION__MAX_ATTEMPTS=3). The API
key may also come from plain ``GEMINI_API_KEY`` when the file leaves it empty.
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

from .completion import BASE_DELAY, DEFAULT_ENDPOINT, MAX_ATTEMPTS, MAX_JITTER, TIMEOUT

logger = logging.getLogger(__name__)

ENV_PREFIX = "GEMINI_RELAY__"
API_KEY_ENV = "GEMINI_API_KEY"
# Leaves that stay strings even when the value looks numeric.
STRING_KEYS = {"api_key", "endpoint", "data_dir", "user_header"}

DEFAULTS: Dict[str, Any] = {
    "completion": {
        "endpoint": DEFAULT_ENDPOINT,
        "api_key": "",
        "max_attempts": MAX_ATTEMPTS,
        "base_delay": BASE_DELAY,
        "max_jitter": MAX_JITTER,
        "timeout": TIMEOUT,
    },
    "store": {"data_dir": "data/messages"},
    "server": {"cors_origins": ["*"], "user_header": "X-User-Id"},
}


def _coerce(value: str) -> Any:
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides with prefix GEMINI_RELAY__."""
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        # e.g., GEMINI_RELAY__STORE__DATA_DIR -> cfg["store"]["data_dir"]
        parts = key[len(ENV_PREFIX):].lower().split("__")
        sub = cfg
        for p in parts[:-1]:
            if p not in sub or not isinstance(sub[p], dict):
                sub[p] = {}
            sub = sub[p]
        leaf = parts[-1]
        sub[leaf] = value if leaf in STRING_KEYS else _coerce(value)

    completion = cfg.setdefault("completion", {})
    if not completion.get("api_key"):
        completion["api_key"] = os.environ.get(API_KEY_ENV, "")
    return cfg


def _merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in extra.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def load_config(path: str | None = None) -> Dict[str, Any]:
    """Load YAML configuration for the relay.

    Parameters
    ----------
    path : str | None
        Optional path to a configuration file. If not provided, the
        environment variable ``GEMINI_RELAY_CONFIG`` is consulted. As a
        last resort ``config/default.yaml`` is used.

    Returns
    -------
    Dict[str, Any]
        Built-in defaults, overlaid with the file, overlaid with the
        environment.
    """
    if path is None:
        path = os.environ.get("GEMINI_RELAY_CONFIG", "config/default.yaml")

    path_obj = Path(path)
    if not path_obj.exists():
        logger.warning("config file not found at %s, using defaults", path_obj)
        return _apply_env_overrides(copy.deepcopy(DEFAULTS))

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse config file {path_obj}: {e}") from e

    if not isinstance(loaded, dict):
        raise RuntimeError(f"Invalid config format in {path_obj}, expected dict.")

    return _apply_env_overrides(_merge(DEFAULTS, loaded))


def redacted(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of ``cfg`` that is safe to return from an endpoint."""
    out = copy.deepcopy(cfg)
    completion = out.get("completion")
    if isinstance(completion, dict) and completion.get("api_key"):
        completion["api_key"] = "***"
    return out
