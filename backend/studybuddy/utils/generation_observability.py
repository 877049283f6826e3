"""Structured observability for model calls (plan and insight generation).

Every call becomes one line in `generation_events.jsonl`; a running summary
lives next to it in `generation_stats.json` and is served by `/ai/stats`.
Recording is best effort: a broken directory or stats file is logged and
skipped, never raised to the caller.
"""

from __future__ import annotations

import json
import logging
import math
import os
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict

_LOGGER = logging.getLogger("studybuddy.generation")

STAT_DEFAULTS: Dict[str, Any] = {
    "total_runs": 0,
    "failed_runs": 0,
    "slow_runs": 0,
    "avg_duration_ms": 0.0,
    "max_duration_ms": 0.0,
    "total_duration_ms": 0.0,
    "last_error": "",
}
DEFAULT_SLOW_MS = 20000.0


def _coerce(value: Any, default: Any) -> Any:
    """`value` converted to the type of `default`, or `default` when it does not fit."""
    if isinstance(default, str):
        return value if isinstance(value, str) else default
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return default
    return type(default)(value)


def _default_root() -> Path:
    configured = os.getenv("GENERATION_OBSERVABILITY_DIR", "").strip()
    if configured:
        return Path(configured).expanduser().resolve()
    return Path(__file__).resolve().parents[2] / "data" / "generation_observability"


class GenerationLog:
    """Event log and aggregate counters under one directory."""

    _lock = Lock()

    def __init__(self, root: Path, slow_ms: float = DEFAULT_SLOW_MS):
        self.root = root
        self.slow_ms = slow_ms

    @property
    def events_file(self) -> Path:
        return self.root / "generation_events.jsonl"

    @property
    def stats_file(self) -> Path:
        return self.root / "generation_stats.json"

    def stats(self) -> Dict[str, Any]:
        """Current counters; unreadable or malformed files count as empty."""
        try:
            stored = json.loads(self.stats_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            stored = {}
        except (OSError, ValueError):
            _LOGGER.warning("generation stats file unreadable: %s", self.stats_file)
            stored = {}
        if not isinstance(stored, dict):
            _LOGGER.warning("generation stats file is not an object: %s", self.stats_file)
            stored = {}
        merged = dict(stored)
        merged.update({key: _coerce(stored.get(key), default) for key, default in STAT_DEFAULTS.items()})
        return merged

    def record(self, event: Dict[str, Any]) -> None:
        payload = dict(event)
        payload.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        line = json.dumps(payload, ensure_ascii=True, default=str)
        try:
            with self._lock:
                self.root.mkdir(parents=True, exist_ok=True)
                with self.events_file.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
                self._fold(payload)
        except (OSError, TypeError, ValueError):
            _LOGGER.exception("could not persist generation event")
        _LOGGER.info("generation_event %s", line)

    def _fold(self, event: Dict[str, Any]) -> None:
        stats = self.stats()
        try:
            duration_ms = float(event.get("duration_ms") or 0.0)
        except (TypeError, ValueError):
            duration_ms = 0.0

        stats["total_runs"] += 1
        stats["total_duration_ms"] += duration_ms
        stats["max_duration_ms"] = max(stats["max_duration_ms"], duration_ms)
        stats["avg_duration_ms"] = stats["total_duration_ms"] / stats["total_runs"]
        if event.get("failed"):
            stats["failed_runs"] += 1
            stats["last_error"] = str(event.get("error", ""))
        if duration_ms >= self.slow_ms:
            stats["slow_runs"] += 1
        stats["updated_at"] = datetime.now(timezone.utc).isoformat()
        self.stats_file.write_text(json.dumps(stats, ensure_ascii=True, indent=2), encoding="utf-8")


def _current_log() -> GenerationLog:
    slow_ms = os.getenv("GENERATION_SLOW_MS", "").strip()
    try:
        threshold = float(slow_ms) if slow_ms else DEFAULT_SLOW_MS
    except ValueError:
        threshold = DEFAULT_SLOW_MS
    return GenerationLog(_default_root(), slow_ms=threshold)


def get_generation_stats() -> Dict[str, Any]:
    """Aggregate stats for the configured directory."""
    return _current_log().stats()


def record_generation_event(event: Dict[str, Any]) -> None:
    """Append `event` and fold it into the stats for the configured directory."""
    _current_log().record(event)
