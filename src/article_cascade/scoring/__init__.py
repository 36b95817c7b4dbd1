"""Content quality scoring and validation."""

from __future__ import annotations

__all__ = [
    "ContentValidator",
    "FrontpageThresholds",
    "PageQualityAnalyzer",
    "QualityAnalyzer",
    "ValidationThresholds",
    "basic_quality",
    "validate",
]

from article_cascade.scoring.quality import (
    FrontpageThresholds,
    PageQualityAnalyzer,
    QualityAnalyzer,
    basic_quality,
)
from article_cascade.scoring.validator import ContentValidator, ValidationThresholds, validate
