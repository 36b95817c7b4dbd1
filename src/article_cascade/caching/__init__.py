"""In-memory extraction result cache with selector learning."""

from __future__ import annotations

__all__ = [
    "CacheConfig",
    "CacheEntry",
    "ExtractionCache",
    "FieldOptimization",
    "PatternCacheEntry",
    "RuleOptimizationRecord",
]

from article_cascade.caching.extraction_cache import (
    CacheConfig,
    CacheEntry,
    ExtractionCache,
    FieldOptimization,
    PatternCacheEntry,
    RuleOptimizationRecord,
)
