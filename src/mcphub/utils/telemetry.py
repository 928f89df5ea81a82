"""Append-only JSONL log of CLI command events; ``MCPHUB_TELEMETRY=0`` turns it off."""

from __future__ import annotations

import json
import os
import time
from collections import Counter
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator

import jsonschema
from jsonschema.exceptions import best_match

from mcphub.settings import RuntimeSettings

TELEMETRY_FILENAME = "telemetry.jsonl"


class TelemetryRecordError(ValueError):
    """Raised when an event does not match the packaged telemetry schema."""


def telemetry_enabled() -> bool:
    return os.getenv("MCPHUB_TELEMETRY", "1").strip().lower() not in {"0", "false", "no", "off"}


def telemetry_path(settings: RuntimeSettings) -> Path:
    return settings.log_dir / TELEMETRY_FILENAME


def record_structured_event(
    settings: RuntimeSettings,
    event: str,
    *,
    payload: Dict[str, Any] | None = None,
    level: str = "info",
    status: str | None = None,
    component: str | None = None,
    duration_ms: float | None = None,
) -> None:
    """Validate one event and append it as a single JSON line."""

    if not telemetry_enabled():
        return
    optional = {"status": status, "component": component, "durationMs": duration_ms}
    record = {"ts": time.time(), "event": event, "payload": payload or {}, "level": level}
    record.update((key, value) for key, value in optional.items() if value is not None)
    error = best_match(_schema_validator().iter_errors(record))
    if error is not None:
        raise TelemetryRecordError(f"Invalid telemetry event {event!r}: {error.message}")
    target = telemetry_path(settings)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("a", encoding="utf-8") as fh:
        fh.write(json.dumps(record, ensure_ascii=False) + "\n")


def iter_events(settings: RuntimeSettings) -> Iterator[Dict[str, Any]]:
    """Yield recorded events in order; blank and truncated lines are skipped."""

    target = telemetry_path(settings)
    if not target.is_file():
        return
    with target.open("r", encoding="utf-8", errors="replace") as fh:
        for raw in fh:
            if not raw.strip():
                continue
            try:
                yield json.loads(raw)
            except json.JSONDecodeError:
                continue


def summarize(events: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    by_event: Counter[str] = Counter()
    by_status: Counter[str] = Counter()
    for evt in events:
        by_event[evt.get("event", "unknown")] += 1
        by_status[evt.get("status", "unknown")] += 1
    return {"total": sum(by_event.values()), "by_event": dict(by_event), "by_status": dict(by_status)}


def clear(settings: RuntimeSettings) -> None:
    telemetry_path(settings).unlink(missing_ok=True)


# ---- Internals ----


@lru_cache(maxsize=1)
def _schema_validator() -> jsonschema.Draft202012Validator:
    text = resources.files("mcphub.resources").joinpath("telemetry.schema.json").read_text(encoding="utf-8")
    return jsonschema.Draft202012Validator(json.loads(text))


__all__ = [
    "TelemetryRecordError",
    "clear",
    "iter_events",
    "record_structured_event",
    "summarize",
    "telemetry_enabled",
    "telemetry_path",
]
