from __future__ import annotations

import re
from dataclasses import dataclass

from article_cascade.models import EnhancedContentQuality, ExtractedContent, ValidationResult
from article_cascade.scoring.quality import NAVIGATION_TEXT_RE, SITE_SECTION_TITLE_RE


@dataclass(frozen=True)
class ValidationThresholds:
    min_title_length: int = 3
    min_content_length: int = 50
    min_word_count: int = 20
    min_quality_score: float = 0.3
    frontpage_warn: float = 0.4
    frontpage_reject: float = 0.7


@dataclass(frozen=True)
class ContentValidator:
    """Pure accept/reject decision over extracted fields and quality metrics.

    Four independent checks (title, content, quality, frontpage risk) each
    contribute a sub-score; the result is valid only when no check reported an
    issue and the summed score reaches ``min_quality_score``.
    """

    thresholds: ValidationThresholds = ValidationThresholds()

    def validate(self, data: ExtractedContent, quality: EnhancedContentQuality) -> ValidationResult:
        checks = (
            self.validate_title(data.title),
            self.validate_content(data.content),
            self.validate_quality(quality),
            self.validate_frontpage_risk(quality),
        )
        issues = [issue for check in checks for issue in check.issues]
        warnings = [warning for check in checks for warning in check.warnings]
        score = sum(check.score for check in checks)
        return ValidationResult(
            is_valid=not issues and score >= self.thresholds.min_quality_score,
            score=min(score, 1.0),
            issues=issues,
            warnings=warnings,
        )

    def is_extraction_successful(self, data: ExtractedContent, quality: EnhancedContentQuality) -> bool:
        return self.validate(data, quality).is_valid

    def validate_title(self, title: str | None) -> ValidationResult:
        if not title:
            return _invalid("Title is missing")
        trimmed = title.strip()
        if not trimmed:
            return _invalid("Title is empty")
        minimum = self.thresholds.min_title_length
        if len(trimmed) < minimum:
            return _invalid(f"Title too short ({len(trimmed)} < {minimum})")

        warnings: list[str] = []
        score = 0.3
        if 10 < len(trimmed) < 200:
            score += 0.1
        if trimmed[0] == trimmed[0].upper():
            score += 0.05
        if SITE_SECTION_TITLE_RE.match(trimmed):
            warnings.append("Title may be navigation/category text")
            score -= 0.1
        if "|" in trimmed or "-" in trimmed:
            warnings.append("Title may include site name/navigation")
        return ValidationResult(is_valid=True, score=max(score, 0.0), warnings=warnings)

    def validate_content(self, content: str | None) -> ValidationResult:
        if not content:
            return _invalid("Content is missing")
        trimmed = content.strip()
        if not trimmed:
            return _invalid("Content is empty")
        minimum = self.thresholds.min_content_length
        if len(trimmed) < minimum:
            return _invalid(f"Content too short ({len(trimmed)} < {minimum})")

        warnings: list[str] = []
        score = 0.4
        if len(trimmed) > 200:
            score += 0.1
        if len(re.split(r"\n\s*\n", trimmed)) > 2:
            score += 0.1
        if len(re.split(r"[.!?]", trimmed)) > 5:
            score += 0.1
        if NAVIGATION_TEXT_RE.search(trimmed):
            warnings.append("Content may contain navigation text")
            score -= 0.1
        return ValidationResult(is_valid=True, score=max(score, 0.0), warnings=warnings)

    def validate_quality(self, quality: EnhancedContentQuality) -> ValidationResult:
        thresholds = self.thresholds
        if quality.word_count < thresholds.min_word_count:
            return _invalid(f"Word count too low ({quality.word_count} < {thresholds.min_word_count})")
        if quality.score < thresholds.min_quality_score:
            return _invalid(
                f"Quality score too low ({quality.score:.2f} < {thresholds.min_quality_score})"
            )

        warnings: list[str] = []
        if quality.text_density < 0.25:
            warnings.append("Low text density - page may have too much markup")
        if quality.link_density > 0.3:
            warnings.append("High link density - may be navigation page")
        return ValidationResult(is_valid=True, score=min(quality.score, 0.3), warnings=warnings)

    def validate_frontpage_risk(self, quality: EnhancedContentQuality) -> ValidationResult:
        risk = quality.frontpage_risk
        if risk.recommendation == "reject":
            return _invalid(
                f"High frontpage risk detected ({risk.risk_score:.2f} >= {self.thresholds.frontpage_reject})"
            )
        warnings: list[str] = []
        if risk.recommendation == "warn":
            warnings.append(
                f"Medium frontpage risk detected ({risk.risk_score:.2f} >= {self.thresholds.frontpage_warn})"
            )
        return ValidationResult(
            is_valid=True, score=max(0.0, 0.3 * (1 - risk.risk_score)), warnings=warnings
        )


def validate(
    data: ExtractedContent,
    quality: EnhancedContentQuality,
    thresholds: ValidationThresholds | None = None,
) -> ValidationResult:
    return ContentValidator(thresholds or ValidationThresholds()).validate(data, quality)


def _invalid(issue: str) -> ValidationResult:
    return ValidationResult(is_valid=False, score=0.0, issues=[issue])
