from __future__ import annotations

import time
from dataclasses import dataclass, field

from article_cascade.caching.extraction_cache import ExtractionCache
from article_cascade.detectors.universal import UniversalDetector
from article_cascade.extractors.rule_based import RuleBasedExtractor, RuleExtraction
from article_cascade.models import (
    EnhancedContentQuality,
    ExtractionMetadata,
    ExtractionResult,
    RuleMatch,
    ValidationResult,
    error_result,
)
from article_cascade.page import Page
from article_cascade.reporting.effectiveness import RuleEffectivenessTracker
from article_cascade.reporting.logging import EventLog, log_event
from article_cascade.rules.catalog import RuleCatalog
from article_cascade.scoring.quality import PageQualityAnalyzer, QualityAnalyzer
from article_cascade.scoring.validator import ContentValidator


@dataclass
class ExtractionEngine:
    """Bespoke rule first, universal detection otherwise, then score, validate and cache.

    ``extract`` never raises: an unexpected failure is retried once with the
    universal detector and, if that fails too, reported as a ``method="error"``
    result with zero confidence.
    """

    catalog: RuleCatalog
    cache: ExtractionCache | None = None
    detector: UniversalDetector = field(default_factory=UniversalDetector)
    rule_extractor: RuleBasedExtractor = field(default_factory=RuleBasedExtractor)
    analyzer: QualityAnalyzer = field(default_factory=PageQualityAnalyzer)
    validator: ContentValidator = field(default_factory=ContentValidator)
    tracker: RuleEffectivenessTracker | None = None
    log: EventLog = log_event
    owns_cache: bool = False

    def __enter__(self) -> "ExtractionEngine":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Destroy the cache when the engine owns it, as ``build_engine`` arranges."""
        if self.owns_cache and self.cache is not None:
            self.cache.destroy()

    async def extract(self, page: Page) -> ExtractionResult:
        started = time.perf_counter()
        try:
            return await self._extract(page, started)
        except Exception as exc:
            self._report_failure("engine.failed", page, exc)
            try:
                result = await self.detector.extract(page)
            except Exception as fallback_exc:
                self._report_failure("engine.fallback_failed", page, fallback_exc)
                return error_result(exc, _elapsed_ms(started))
            result.metadata.retry_count = 1
            return result

    def _report_failure(self, event: str, page: Page, exc: Exception) -> None:
        # Runs inside the backstop, so neither the page nor the logger may raise out of it.
        try:
            url = page.url
        except Exception:
            url = None
        try:
            self.log(event, {"level": "error", "url": url, "error": str(exc)})
        except Exception:
            return

    async def _extract(self, page: Page, started: float) -> ExtractionResult:
        self.catalog.reload_if_changed()
        url = page.url

        cached = self._cached(url)
        if cached is not None:
            return cached

        match = self.catalog.find_best_rule_for_url(url)
        rule_extraction: RuleExtraction | None = None
        if match is not None:
            rule = match.rule
            self.log(
                "engine.rule_selected",
                {"level": "info", "url": url, "rule_id": rule.id, "reason": match.match_reason},
            )
            rule_extraction = await self.rule_extractor.extract(page, rule)
            data = rule_extraction.data
            method = f"bespoke-{rule.id}"
            confidence = self.rule_extractor.confidence
            selectors_used = rule_extraction.selectors_used
        else:
            universal = await self.detector.extract(page)
            data = universal.data
            method = universal.method
            confidence = universal.confidence
            selectors_used = universal.metadata.selectors_used

        elapsed_ms = _elapsed_ms(started)
        quality = await self.analyzer.analyze(
            page, data, method=method, confidence=confidence, extraction_time_ms=elapsed_ms
        )
        validation = self.validator.validate(data, quality)
        self._log_validation(url, validation, quality)
        confidence = adjust_confidence(confidence, validation.is_valid, match is not None, quality)

        result = ExtractionResult(
            success=validation.is_valid,
            confidence=confidence,
            method=method,
            data=data,
            metadata=ExtractionMetadata(
                selectors_used=selectors_used,
                extraction_time_ms=elapsed_ms,
                content_quality=quality,
                rule_id=match.rule.id if match else None,
                rule_name=match.rule.name if match else None,
                rule_domain_match=match is not None,
                cache_key=self.cache.cache_key(url) if self.cache is not None else None,
            ),
        )

        self._store(url, result, quality, match, rule_extraction)
        if self.tracker is not None:
            self.tracker.record(
                url,
                result,
                quality,
                rule_id=match.rule.id if match else None,
                rule_name=match.rule.name if match else None,
            )
        return result

    def _cached(self, url: str) -> ExtractionResult | None:
        if self.cache is None:
            return None
        try:
            entry = self.cache.get(url)
        except Exception as exc:
            self.log("engine.cache_read_failed", {"level": "warning", "url": url, "error": str(exc)})
            return None
        if entry is None:
            return None
        result = entry.result
        result.metadata.cache_hit = True
        result.metadata.cache_key = self.cache.cache_key(url)
        result.metadata.hit_count = entry.hit_count
        self.log("engine.cache_hit", {"level": "info", "url": url, "hit_count": entry.hit_count})
        return result

    def _store(
        self,
        url: str,
        result: ExtractionResult,
        quality: EnhancedContentQuality,
        match: RuleMatch | None,
        rule_extraction: RuleExtraction | None,
    ) -> None:
        if self.cache is None:
            return
        rule_id = match.rule.id if match else None
        try:
            self.cache.store(url, result, quality, rule_id)
        except Exception as exc:
            self.log("engine.cache_write_failed", {"level": "warning", "url": url, "error": str(exc)})
            return
        if rule_extraction is None or rule_id is None:
            return
        try:
            for outcome in rule_extraction.outcomes:
                for selector in outcome.missed:
                    self.cache.record_selector_performance(url, outcome.name, selector, False, rule_id)
                if outcome.selector:
                    self.cache.record_selector_performance(url, outcome.name, outcome.selector, True, rule_id)
        except Exception as exc:
            self.log("engine.learning_failed", {"level": "warning", "url": url, "error": str(exc)})

    def _log_validation(
        self, url: str, validation: ValidationResult, quality: EnhancedContentQuality
    ) -> None:
        if validation.warnings:
            self.log(
                "engine.validation_warnings",
                {"level": "warning", "url": url, "warnings": validation.warnings},
            )
        if not validation.is_valid:
            self.log(
                "engine.validation_failed",
                {"level": "warning", "url": url, "issues": validation.issues, "score": validation.score},
            )
        risk = quality.frontpage_risk
        if risk.recommendation != "extract":
            self.log(
                "engine.frontpage_risk",
                {
                    "level": "error" if risk.recommendation == "reject" else "warning",
                    "url": url,
                    "risk_score": round(risk.risk_score, 2),
                    "recommendation": risk.recommendation,
                },
            )


def adjust_confidence(
    confidence: float, success: bool, bespoke: bool, quality: EnhancedContentQuality
) -> float:
    if not success:
        return 0.0
    if bespoke:
        confidence *= max(quality.score, 0.5)
        return confidence * max(quality.article_indicators.single_article_score, 0.7)
    confidence *= max(quality.score, 0.3)
    return confidence * (1 - quality.frontpage_risk.risk_score * 0.5)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
