"""Domain-agnostic article detection."""

from __future__ import annotations

__all__ = ["UniversalDetector", "extract_structured", "has_structured_data"]

from article_cascade.detectors.structured_data import extract_structured, has_structured_data
from article_cascade.detectors.universal import UniversalDetector
