"""Bespoke-rule extraction and the cascade orchestrator."""

from __future__ import annotations

__all__ = ["ExtractionEngine", "RuleBasedExtractor", "adjust_confidence"]

from article_cascade.extractors.engine import ExtractionEngine, adjust_confidence
from article_cascade.extractors.rule_based import RuleBasedExtractor
