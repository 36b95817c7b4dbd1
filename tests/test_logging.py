from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from article_cascade.reporting.logging import file_event_log, log_event


def test_log_event_writes_json(tmp_path: Path, capsys) -> None:
    log_path = tmp_path / "logs" / "run.jsonl"
    log_event("test", {"value": 1}, log_path)

    captured = capsys.readouterr()
    assert captured.out == ""
    assert json.loads(captured.err.strip())["event"] == "test"

    lines = log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    assert json.loads(lines[0])["value"] == 1


def test_file_event_log_serialises_datetimes(tmp_path: Path, capsys) -> None:
    log_path = tmp_path / "run.jsonl"
    log = file_event_log(log_path)

    log("cache.cleanup", {"at": datetime(2024, 1, 15, tzinfo=timezone.utc)})
    log("cache.cleanup", {"removed": 2})

    records = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert records[0]["at"] == "2024-01-15T00:00:00+00:00"
    assert records[1]["removed"] == 2
    assert len(capsys.readouterr().err.strip().splitlines()) == 2
