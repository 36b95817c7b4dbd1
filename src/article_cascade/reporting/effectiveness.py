from __future__ import annotations

import math
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from article_cascade.models import (
    FIELDS,
    EnhancedContentQuality,
    ExtractionResult,
    _utc_now,
)
from article_cascade.urls import extract_domain

HISTORY_LENGTH = 100
UNIVERSAL_METHODS = ("structured-data", "semantic-html5", "hybrid")


@dataclass(frozen=True)
class PerformanceDataPoint:
    timestamp: datetime
    success: bool
    quality_score: float
    extraction_time_ms: int
    frontpage_risk: float


@dataclass
class RunningMean:
    count: int = 0
    mean: float = 0.0

    def add(self, value: float) -> None:
        self.count += 1
        self.mean += (value - self.mean) / self.count


@dataclass
class RulePerformance:
    rule_id: str
    rule_name: str
    domain: str
    first_seen: datetime
    last_updated: datetime
    total_extractions: int = 0
    successful_extractions: int = 0
    frontpage_rejections: int = 0
    quality: RunningMean = field(default_factory=RunningMean)
    confidence: RunningMean = field(default_factory=RunningMean)
    extraction_time: RunningMean = field(default_factory=RunningMean)
    min_extraction_time_ms: float = math.inf
    max_extraction_time_ms: float = 0
    field_hits: dict[str, int] = field(default_factory=lambda: {name: 0 for name in FIELDS})
    recent: deque[PerformanceDataPoint] = field(
        default_factory=lambda: deque(maxlen=HISTORY_LENGTH)
    )

    @property
    def success_rate(self) -> float:
        if self.total_extractions <= 0:
            return 0.0
        return self.successful_extractions / self.total_extractions

    @property
    def field_success_rates(self) -> dict[str, float]:
        if self.total_extractions <= 0:
            return {name: 0.0 for name in FIELDS}
        return {name: hits / self.total_extractions for name, hits in self.field_hits.items()}


@dataclass
class DomainPerformance:
    extractions: int = 0
    successes: int = 0
    quality: RunningMean = field(default_factory=RunningMean)

    @property
    def success_rate(self) -> float:
        return self.successes / self.extractions if self.extractions else 0.0


@dataclass
class UniversalPerformance:
    total_extractions: int = 0
    successful_extractions: int = 0
    quality: RunningMean = field(default_factory=RunningMean)
    confidence: RunningMean = field(default_factory=RunningMean)
    extraction_time: RunningMean = field(default_factory=RunningMean)
    methods: dict[str, deque[PerformanceDataPoint]] = field(
        default_factory=lambda: {
            method: deque(maxlen=HISTORY_LENGTH) for method in UNIVERSAL_METHODS
        }
    )
    domains: dict[str, DomainPerformance] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        if self.total_extractions <= 0:
            return 0.0
        return self.successful_extractions / self.total_extractions


class RuleEffectivenessTracker:
    """In-process tally of how well bespoke rules and the universal tier perform."""

    def __init__(self) -> None:
        self.rules: dict[str, RulePerformance] = {}
        self.universal = UniversalPerformance()

    def record(
        self,
        url: str,
        result: ExtractionResult,
        quality: EnhancedContentQuality,
        rule_id: str | None = None,
        rule_name: str | None = None,
    ) -> None:
        now = _utc_now()
        point = PerformanceDataPoint(
            timestamp=now,
            success=result.success,
            quality_score=quality.score,
            extraction_time_ms=result.metadata.extraction_time_ms,
            frontpage_risk=quality.frontpage_risk.risk_score,
        )
        domain = extract_domain(url)
        if rule_id and rule_name:
            self._record_rule(rule_id, rule_name, domain, result, quality, point, now)
        else:
            self._record_universal(domain, result, quality, point)

    def rule_metrics(self, rule_id: str) -> RulePerformance | None:
        return self.rules.get(rule_id)

    def export_metrics(self) -> dict[str, Any]:
        return {
            "rules": {
                rule_id: {
                    **_summary(metrics),
                    "success_rate": metrics.success_rate,
                    "field_success_rates": metrics.field_success_rates,
                }
                for rule_id, metrics in self.rules.items()
            },
            "universal": {
                "total_extractions": self.universal.total_extractions,
                "successful_extractions": self.universal.successful_extractions,
                "success_rate": self.universal.success_rate,
                "average_quality_score": self.universal.quality.mean,
                "average_confidence": self.universal.confidence.mean,
                "average_extraction_time_ms": self.universal.extraction_time.mean,
                "methods": {
                    method: [asdict(point) for point in points]
                    for method, points in self.universal.methods.items()
                },
                "domains": {
                    domain: {
                        "extractions": perf.extractions,
                        "success_rate": perf.success_rate,
                        "average_quality": perf.quality.mean,
                    }
                    for domain, perf in self.universal.domains.items()
                },
            },
        }

    def reset(self) -> None:
        self.rules = {}
        self.universal = UniversalPerformance()

    def _record_rule(
        self,
        rule_id: str,
        rule_name: str,
        domain: str,
        result: ExtractionResult,
        quality: EnhancedContentQuality,
        point: PerformanceDataPoint,
        now: datetime,
    ) -> None:
        metrics = self.rules.get(rule_id)
        if metrics is None:
            metrics = RulePerformance(
                rule_id=rule_id,
                rule_name=rule_name,
                domain=domain,
                first_seen=now,
                last_updated=now,
            )
            self.rules[rule_id] = metrics

        metrics.total_extractions += 1
        if result.success:
            metrics.successful_extractions += 1
        if quality.frontpage_risk.recommendation == "reject":
            metrics.frontpage_rejections += 1
        metrics.quality.add(quality.score)
        metrics.confidence.add(result.confidence)
        elapsed = result.metadata.extraction_time_ms
        metrics.extraction_time.add(elapsed)
        metrics.min_extraction_time_ms = min(metrics.min_extraction_time_ms, elapsed)
        metrics.max_extraction_time_ms = max(metrics.max_extraction_time_ms, elapsed)
        for name in FIELDS:
            value = getattr(result.data, name)
            if value and value.strip():
                metrics.field_hits[name] += 1
        metrics.recent.append(point)
        metrics.last_updated = now

    def _record_universal(
        self,
        domain: str,
        result: ExtractionResult,
        quality: EnhancedContentQuality,
        point: PerformanceDataPoint,
    ) -> None:
        universal = self.universal
        universal.total_extractions += 1
        if result.success:
            universal.successful_extractions += 1
        universal.quality.add(quality.score)
        universal.confidence.add(result.confidence)
        universal.extraction_time.add(result.metadata.extraction_time_ms)
        if result.method in universal.methods:
            universal.methods[result.method].append(point)

        perf = universal.domains.setdefault(domain, DomainPerformance())
        perf.extractions += 1
        if result.success:
            perf.successes += 1
        perf.quality.add(quality.score)


def _summary(metrics: RulePerformance) -> dict[str, Any]:
    return {
        "rule_name": metrics.rule_name,
        "domain": metrics.domain,
        "total_extractions": metrics.total_extractions,
        "successful_extractions": metrics.successful_extractions,
        "average_quality_score": metrics.quality.mean,
        "average_confidence": metrics.confidence.mean,
        "frontpage_rejections": metrics.frontpage_rejections,
        "average_extraction_time_ms": metrics.extraction_time.mean,
        "min_extraction_time_ms": (
            metrics.min_extraction_time_ms if metrics.total_extractions else 0
        ),
        "max_extraction_time_ms": metrics.max_extraction_time_ms,
        "recent": [asdict(point) for point in metrics.recent],
        "first_seen": metrics.first_seen,
        "last_updated": metrics.last_updated,
    }
