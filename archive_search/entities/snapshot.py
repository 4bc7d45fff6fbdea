"""Persisted entity → recording-count snapshot (flat JSON object)."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from uuid import uuid4

logger = logging.getLogger(__name__)


def serialize_snapshot(counts: Mapping[str, int]) -> str:
    """Deterministic JSON text: sorted keys, one entry per line."""
    return json.dumps(dict(counts), indent=0, sort_keys=True, ensure_ascii=False) + "\n"


def write_snapshot(counts: Mapping[str, int], path: str | Path) -> Path:
    """Atomically replace the snapshot at ``path`` with ``counts``.

    The payload is written to a sibling temp file and renamed over the
    target, so readers see either the old or the new snapshot.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f".{path.name}.{uuid4().hex}.tmp")
    try:
        temp_path.write_text(serialize_snapshot(counts), encoding="utf-8")
        os.replace(temp_path, path)
    finally:
        temp_path.unlink(missing_ok=True)
    logger.info("Wrote %d entity recording counts to %s", len(counts), path)
    return path


def load_snapshot(path: str | Path) -> dict[str, int]:
    """Read the snapshot at ``path``.

    A missing, unreadable or non-object file is an empty cache. Entries
    whose value is not a non-negative integer are skipped.
    """
    path = Path(path)
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable entity counts snapshot %s: %s", path, exc)
        return {}

    if not isinstance(parsed, dict):
        logger.warning("Ignoring entity counts snapshot %s: not a JSON object", path)
        return {}

    counts: dict[str, int] = {}
    for key, value in parsed.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if value < 0 or value != int(value):
            continue
        counts[key] = int(value)
    return counts
