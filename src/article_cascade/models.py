from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

FIELDS = ("title", "content", "author", "date", "summary")

Scope = Literal["content", "title", "author", "date", "all"]
Recommendation = Literal["extract", "warn", "reject"]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RuleSelectors:
    title: tuple[str, ...]
    content: tuple[str, ...]
    container: tuple[str, ...] = ()
    author: tuple[str, ...] = ()
    date: tuple[str, ...] = ()
    summary: tuple[str, ...] = ()

    def for_field(self, name: str) -> tuple[str, ...]:
        return getattr(self, name, ())


@dataclass(frozen=True)
class ContentTransform:
    type: str
    scope: Scope = "content"
    pattern: str | None = None
    find: str | None = None
    replace: str | None = None
    format: str | None = None
    selector: str | None = None

    def describe(self) -> str:
        if self.type == "removePhrase":
            return f"removePhrase: {self.pattern}"
        if self.type == "replaceText":
            return f"replaceText: {self.find} -> {self.replace}"
        if self.type == "normalizeDate":
            return f"normalizeDate: {self.format or 'norwegian'}"
        return self.type


@dataclass(frozen=True)
class SegmentRule:
    name: str
    selector: str
    type: str = "supplementary"
    priority: int = 0
    extract_as: str = "text"


@dataclass(frozen=True)
class RuleMetadata:
    language: str | None = None
    charset: str | None = None
    category: str | None = None
    paywall: bool | None = None
    subscription: str | None = None
    source: str | None = None
    last_updated: str | None = None
    region: str | None = None
    platform: str | None = None
    version: str | None = None


@dataclass(frozen=True)
class SiteRule:
    id: str
    name: str
    domains: tuple[str, ...]
    selectors: RuleSelectors
    priority: float = 0
    url_patterns: tuple[str, ...] = ()
    exclusions: tuple[str, ...] = ()
    content_processing: tuple[ContentTransform, ...] = ()
    segments: tuple[SegmentRule, ...] = ()
    metadata: RuleMetadata = field(default_factory=RuleMetadata)
    description: str | None = None


@dataclass(frozen=True)
class RuleMatch:
    rule: SiteRule
    match_score: float
    match_reason: str


@dataclass
class Segment:
    content: str
    type: str
    extract_as: str = "text"


@dataclass
class ExtractionProvenance:
    rule_used: str | None
    extraction_method: str
    confidence: float
    processing_applied: list[str] = field(default_factory=list)


@dataclass
class ExtractedContent:
    title: str | None = None
    content: str | None = None
    author: str | None = None
    date: str | None = None
    summary: str | None = None
    segments: dict[str, Segment] = field(default_factory=dict)
    provenance: ExtractionProvenance | None = None

    def fill_missing(self, other: "ExtractedContent") -> None:
        """Copy fields from ``other`` that are still empty here."""
        for name in FIELDS:
            if not getattr(self, name) and getattr(other, name):
                setattr(self, name, getattr(other, name))

    def has_field(self, name: str) -> bool:
        return bool(getattr(self, name, None))


@dataclass
class ContentQuality:
    content_length: int = 0
    word_count: int = 0
    paragraph_count: int = 0
    text_density: float = 0.0
    link_density: float = 0.0
    metadata_complete: bool = False
    clean_content: bool = False
    score: float = 0.0


@dataclass
class ArticleIndicators:
    has_structured_data: bool = False
    has_article_schema: bool = False
    has_open_graph_article: bool = False
    has_canonical_url: bool = False
    has_publish_date: bool = False
    has_author_info: bool = False
    has_date_info: bool = False
    single_article_score: float = 0.0


@dataclass
class ContentStructure:
    has_main_content: bool = False
    header_hierarchy: list[int] = field(default_factory=lambda: [0] * 6)
    images: int = 0
    videos: int = 0
    embeds: int = 0
    navigation_elements: int = 0
    advertising_elements: int = 0


@dataclass
class ReadabilityMetrics:
    average_words_per_sentence: float = 0.0
    average_syllables_per_word: float = 0.0
    grade_level: float = 0.0
    complexity: str = "simple"
    has_long_paragraphs: bool = False


@dataclass
class FrontpageIndicators:
    multiple_headlines: bool = False
    navigation_heavy: bool = False
    category_links: bool = False
    article_list_structure: bool = False
    no_single_article_content: bool = False


@dataclass
class FrontpageRisk:
    risk: str = "low"
    risk_score: float = 0.0
    recommendation: Recommendation = "extract"
    indicators: FrontpageIndicators = field(default_factory=FrontpageIndicators)


@dataclass
class ExtractionQuality:
    title_quality: float = 0.0
    content_quality: float = 0.0
    metadata_quality: float = 0.0
    extraction_method: str = ""
    confidence: float = 0.0
    bespoke_rule_used: bool = False
    extraction_time_ms: int = 0


@dataclass
class EnhancedContentQuality(ContentQuality):
    article_indicators: ArticleIndicators = field(default_factory=ArticleIndicators)
    content_structure: ContentStructure = field(default_factory=ContentStructure)
    readability: ReadabilityMetrics = field(default_factory=ReadabilityMetrics)
    frontpage_risk: FrontpageRisk = field(default_factory=FrontpageRisk)
    extraction_quality: ExtractionQuality = field(default_factory=ExtractionQuality)
    language: str | None = None


@dataclass
class ValidationResult:
    is_valid: bool
    score: float
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ExtractionMetadata:
    selectors_used: dict[str, str] = field(default_factory=dict)
    extraction_time_ms: int = 0
    content_quality: ContentQuality = field(default_factory=ContentQuality)
    rule_id: str | None = None
    rule_name: str | None = None
    rule_domain_match: bool = False
    cache_hit: bool = False
    cache_key: str | None = None
    retry_count: int = 0
    hit_count: int | None = None


@dataclass
class ExtractionResult:
    success: bool
    confidence: float
    method: str
    data: ExtractedContent = field(default_factory=ExtractedContent)
    metadata: ExtractionMetadata = field(default_factory=ExtractionMetadata)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def error_result(error: BaseException | str, extraction_time_ms: int = 0) -> ExtractionResult:
    return ExtractionResult(
        success=False,
        confidence=0.0,
        method="error",
        data=ExtractedContent(),
        metadata=ExtractionMetadata(
            selectors_used={"error": str(error)},
            extraction_time_ms=extraction_time_ms,
        ),
    )


@dataclass
class FetchResult:
    url: str
    status_code: int | None = None
    fetched_at: datetime = field(default_factory=_utc_now)
    content: str | None = None
    error: str | None = None
    elapsed_ms: int | None = None
