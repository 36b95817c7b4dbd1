"""Tiered article extraction: bespoke site rules first, universal detection otherwise."""

from __future__ import annotations

__all__ = [
    "ExtractionCache",
    "ExtractionEngine",
    "RuleCatalog",
    "SoupPage",
    "UniversalDetector",
]

__version__ = "0.1.0"

from article_cascade.caching import ExtractionCache
from article_cascade.detectors import UniversalDetector
from article_cascade.extractors import ExtractionEngine
from article_cascade.page import SoupPage
from article_cascade.rules import RuleCatalog
