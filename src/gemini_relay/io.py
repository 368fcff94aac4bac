from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Union

PathLike = Union[str, Path]

logger = logging.getLogger(__name__)


def ensure_dir(p: PathLike) -> Path:
    """Ensure that a directory exists, returning it as a Path."""
    p = Path(p)
    try:
        p.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OSError(f"Failed to create directory {p}: {e}") from e
    return p


def append_jsonl(path: PathLike, item: Dict[str, Any]) -> None:
    """Append a JSON-serializable dict as one fsynced line to a JSONL file."""
    try:
        line = json.dumps(item, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Failed to serialize item to JSON: {e}") from e

    try:
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        raise OSError(f"Failed to write to {path}: {e}") from e


def read_jsonl(path: PathLike) -> List[Dict[str, Any]]:
    """Read every entry of a JSONL file, skipping blank and corrupt lines."""
    p = Path(path)
    if not p.exists():
        return []

    out: List[Dict[str, Any]] = []
    with open(p, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                out.append(json.loads(line))
            except json.JSONDecodeError as e:
                logger.warning("Skipping corrupt line %d in %s: %s", line_no, p, e)
    return out
