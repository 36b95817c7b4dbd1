from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping

EventLog = Callable[[str, Mapping[str, Any]], None]


def log_event(event: str, payload: Mapping[str, Any], log_path: Path | None = None) -> None:
    record = {
        "event": event,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **payload,
    }
    line = json.dumps(record, default=_json_default)
    print(line, file=sys.stderr)
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with log_path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")


def file_event_log(log_path: Path | None) -> EventLog:
    """Bind ``log_event`` to a JSONL file so components can take a two-argument logger."""

    def _log(event: str, payload: Mapping[str, Any]) -> None:
        log_event(event, payload, log_path)

    return _log


def null_event_log(event: str, payload: Mapping[str, Any]) -> None:
    return None


def _json_default(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "__dict__"):
        return value.__dict__
    return str(value)
