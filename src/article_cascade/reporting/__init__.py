"""Event logging and extraction analytics."""

from __future__ import annotations

__all__ = [
    "EventLog",
    "RuleEffectivenessTracker",
    "file_event_log",
    "log_event",
    "null_event_log",
]

from article_cascade.reporting.effectiveness import RuleEffectivenessTracker
from article_cascade.reporting.logging import EventLog, file_event_log, log_event, null_event_log
