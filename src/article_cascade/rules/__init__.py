"""Bespoke per-site extraction rules."""

from __future__ import annotations

__all__ = [
    "RuleCatalog",
    "RuleLoadError",
    "RuleLoaderOptions",
    "TransformError",
    "apply_transforms",
    "parse_rule",
    "parse_transform",
]

from article_cascade.rules.catalog import RuleCatalog, RuleLoadError, RuleLoaderOptions, parse_rule
from article_cascade.rules.processing import TransformError, apply_transforms, parse_transform
