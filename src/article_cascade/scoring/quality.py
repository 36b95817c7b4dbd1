from __future__ import annotations

import re
from dataclasses import dataclass, fields
from typing import Protocol

from article_cascade.detectors.structured_data import (
    OG_ARTICLE_SELECTOR,
    JSON_LD_SELECTOR,
    find_article_item,
)
from article_cascade.models import (
    ArticleIndicators,
    ContentQuality,
    ContentStructure,
    EnhancedContentQuality,
    ExtractedContent,
    ExtractionQuality,
    FrontpageIndicators,
    FrontpageRisk,
    ReadabilityMetrics,
)
from article_cascade.page import Page, count, first_attribute, query_first
from article_cascade.utils import paragraph_breaks, word_count

DENSITY_CONTAINERS = ("article", "main", '[role="article"]', "body")
NAVIGATION_SELECTOR = "nav, .nav, .navigation, .menu"
ADVERTISING_SELECTOR = ".ad, .advertisement, [data-ad], .banner"
NAVIGATION_TEXT_RE = re.compile(r"click here|read more|continue reading", re.IGNORECASE)
SITE_SECTION_TITLE_RE = re.compile(r"^(home|news|category|section)", re.IGNORECASE)


@dataclass(frozen=True)
class FrontpageThresholds:
    warn: float = 0.4
    reject: float = 0.7


class QualityAnalyzer(Protocol):
    async def analyze(
        self,
        page: Page,
        data: ExtractedContent,
        *,
        method: str,
        confidence: float,
        extraction_time_ms: int = 0,
    ) -> EnhancedContentQuality:
        ...


async def page_densities(page: Page) -> tuple[float, float]:
    """Text/HTML ratio and link-text/text ratio of the main content container."""
    container = None
    for selector in DENSITY_CONTAINERS:
        container = await query_first(page, selector)
        if container is not None:
            break
    if container is None:
        return 0.0, 0.0

    text_length = len(await container.text_content())
    html_length = len(await container.inner_html()) or 1
    link_length = 0
    for link in await container.query_selector_all("a"):
        link_length += len(await link.text_content())
    link_density = link_length / text_length if text_length > 0 else 0.0
    return text_length / html_length, link_density


def basic_score(
    words: int,
    paragraphs: int,
    text_density: float,
    link_density: float,
    metadata_complete: bool,
) -> float:
    score = 0.25 * min(words / 100, 1)
    score += 0.2 * min(paragraphs / 2, 1)
    score += 0.2 * min(text_density * 4, 1)
    score += 0.15 * (1 if link_density < 0.3 else max(0.0, (0.3 - link_density) / 0.3))
    score += 0.2 if metadata_complete else 0
    if words > 5:
        score = max(score, 0.25)
    return min(score, 1.0)


async def basic_quality(page: Page, data: ExtractedContent) -> ContentQuality:
    content = data.content or ""
    words = word_count(content)
    paragraphs = paragraph_breaks(content) + 1
    text_density, link_density = await page_densities(page)
    metadata_complete = bool(data.title and (data.author or data.date))
    return ContentQuality(
        content_length=len(content),
        word_count=words,
        paragraph_count=paragraphs,
        text_density=text_density,
        link_density=link_density,
        metadata_complete=metadata_complete,
        clean_content=link_density < 0.3 and text_density > 0.25,
        score=basic_score(words, paragraphs, text_density, link_density, metadata_complete),
    )


@dataclass
class PageQualityAnalyzer:
    """Default quality analyzer: page-level article signals plus text metrics.

    The overall score weighs article indicators and extraction quality most,
    then frontpage risk, content structure, the basic text score and whether
    the page declares its language.
    """

    thresholds: FrontpageThresholds = FrontpageThresholds()

    async def analyze(
        self,
        page: Page,
        data: ExtractedContent,
        *,
        method: str,
        confidence: float,
        extraction_time_ms: int = 0,
    ) -> EnhancedContentQuality:
        basic = await basic_quality(page, data)
        indicators = await article_indicators(page)
        structure = await content_structure(page)
        risk = await frontpage_risk(page, data, self.thresholds)
        readability = readability_metrics(data.content or "")
        extraction = extraction_quality(data, method, confidence, extraction_time_ms)
        language = await first_attribute(page, "html", "lang")

        quality = EnhancedContentQuality(
            **{f.name: getattr(basic, f.name) for f in fields(ContentQuality)},
        )
        quality.article_indicators = indicators
        quality.content_structure = structure
        quality.readability = readability
        quality.frontpage_risk = risk
        quality.extraction_quality = extraction
        quality.language = language
        quality.score = enhanced_score(quality)
        return quality


async def article_indicators(page: Page) -> ArticleIndicators:
    has_json_ld = await count(page, JSON_LD_SELECTOR) > 0
    has_article_schema = await find_article_item(page) is not None
    has_og_article = await count(page, OG_ARTICLE_SELECTOR) > 0
    has_canonical = await count(page, 'link[rel="canonical"]') > 0
    has_publish_date = await count(
        page,
        'time[datetime], [itemprop="datePublished"], meta[property="article:published_time"]',
    ) > 0
    has_author = await count(
        page, '[itemprop="author"], meta[property="article:author"], [rel="author"]'
    ) > 0

    score = 0.0
    if has_article_schema:
        score += 0.3
    if has_og_article:
        score += 0.2
    if has_publish_date:
        score += 0.2
    if has_author:
        score += 0.2
    if await count(page, "h1") == 1:
        score += 0.1

    return ArticleIndicators(
        has_structured_data=has_json_ld,
        has_article_schema=has_article_schema,
        has_open_graph_article=has_og_article,
        has_canonical_url=has_canonical,
        has_publish_date=has_publish_date,
        has_author_info=has_author,
        has_date_info=has_publish_date or await count(page, "time, .date, .published") > 0,
        single_article_score=min(score, 1.0),
    )


async def content_structure(page: Page) -> ContentStructure:
    return ContentStructure(
        has_main_content=await count(page, 'article, main, [role="main"]') > 0,
        header_hierarchy=[await count(page, f"h{level}") for level in range(1, 7)],
        images=await count(page, "img"),
        videos=await count(page, 'video, iframe[src*="youtube"], iframe[src*="vimeo"]'),
        embeds=await count(page, "embed, object, iframe"),
        navigation_elements=await count(page, NAVIGATION_SELECTOR),
        advertising_elements=await count(page, ADVERTISING_SELECTOR),
    )


async def frontpage_risk(
    page: Page,
    data: ExtractedContent,
    thresholds: FrontpageThresholds = FrontpageThresholds(),
) -> FrontpageRisk:
    h1_count = await count(page, "h1")
    h2_count = await count(page, "h2")
    nav_count = await count(page, NAVIGATION_SELECTOR)
    total_elements = await count(page, "*") or 1
    category_links = await count(
        page, 'a[href*="/category/"], a[href*="/section/"], a[href*="/topic/"]'
    )
    list_elements = await count(page, "ul, ol, .article-list, .news-list")
    article_links = await count(
        page, 'a[href*="/article/"], a[href*="/story/"], a[href*="/news/"]'
    )
    has_main_article = await count(
        page, f'article, [itemtype*="Article"], {OG_ARTICLE_SELECTOR}'
    ) > 0

    indicators = FrontpageIndicators(
        multiple_headlines=h1_count > 1 or h2_count > 5,
        navigation_heavy=nav_count > 3 or nav_count / total_elements > 0.1,
        category_links=category_links > 3,
        article_list_structure=list_elements > 2 and article_links > 5,
        no_single_article_content=not has_main_article,
    )

    score = 0.0
    if indicators.multiple_headlines:
        score += 0.3
    if indicators.navigation_heavy:
        score += 0.2
    if indicators.category_links:
        score += 0.2
    if indicators.article_list_structure:
        score += 0.2
    if indicators.no_single_article_content:
        score += 0.1
    if not data.content or len(data.content) < 200:
        score += 0.1
    if not data.author and not data.date:
        score += 0.1

    if score >= thresholds.reject:
        return FrontpageRisk(risk="high", risk_score=score, recommendation="reject", indicators=indicators)
    if score >= thresholds.warn:
        return FrontpageRisk(risk="medium", risk_score=score, recommendation="warn", indicators=indicators)
    return FrontpageRisk(risk="low", risk_score=score, recommendation="extract", indicators=indicators)


def readability_metrics(content: str) -> ReadabilityMetrics:
    if not content:
        return ReadabilityMetrics()
    sentences = [s for s in re.split(r"[.!?]+", content) if s.strip()]
    words = content.split()
    paragraphs = [p for p in re.split(r"\n\s*\n", content) if p.strip()]

    words_per_sentence = len(words) / len(sentences) if sentences else 0.0
    syllables_per_word = (
        sum(_syllables(word) for word in words) / len(words) if words else 0.0
    )
    grade = (
        0.39 * words_per_sentence + 11.8 * syllables_per_word - 15.59 if sentences else 0.0
    )
    complexity = "complex" if grade > 13 else "moderate" if grade > 9 else "simple"
    return ReadabilityMetrics(
        average_words_per_sentence=words_per_sentence,
        average_syllables_per_word=syllables_per_word,
        grade_level=grade,
        complexity=complexity,
        has_long_paragraphs=any(len(p.split()) > 100 for p in paragraphs),
    )


def extraction_quality(
    data: ExtractedContent, method: str, confidence: float, extraction_time_ms: int
) -> ExtractionQuality:
    title = data.title or ""
    title_quality = 0.0
    if 10 < len(title) < 200:
        title_quality += 0.4
    if title and title[0] == title[0].upper():
        title_quality += 0.2
    if "|" not in title and "-" not in title:
        title_quality += 0.2
    if not SITE_SECTION_TITLE_RE.match(title):
        title_quality += 0.2

    content = data.content or ""
    content_quality = 0.0
    if len(content) > 200:
        content_quality += 0.3
    if len(re.split(r"\n\s*\n", content)) > 2:
        content_quality += 0.2
    if len(re.split(r"[.!?]", content)) > 5:
        content_quality += 0.2
    if not NAVIGATION_TEXT_RE.search(content):
        content_quality += 0.3

    metadata_quality = 0.0
    if data.author:
        metadata_quality += 0.4
    if data.date:
        metadata_quality += 0.4
    if data.summary:
        metadata_quality += 0.2

    return ExtractionQuality(
        title_quality=title_quality,
        content_quality=content_quality,
        metadata_quality=metadata_quality,
        extraction_method=method,
        confidence=confidence,
        bespoke_rule_used=method.startswith("bespoke-"),
        extraction_time_ms=extraction_time_ms,
    )


def enhanced_score(quality: EnhancedContentQuality) -> float:
    extraction = quality.extraction_quality
    structure = quality.content_structure

    score = quality.article_indicators.single_article_score * 0.25
    score += (
        (extraction.title_quality + extraction.content_quality + extraction.metadata_quality) / 3
    ) * 0.25
    score += max(0.0, 1 - quality.frontpage_risk.risk_score) * 0.20

    structure_score = 0.0
    if structure.has_main_content:
        structure_score += 0.3
    if structure.header_hierarchy[0] == 1:
        structure_score += 0.2
    if structure.images > 0:
        structure_score += 0.1
    if structure.navigation_elements < 3:
        structure_score += 0.2
    if structure.advertising_elements < 2:
        structure_score += 0.2
    score += min(structure_score, 1.0) * 0.15

    score += basic_score(
        quality.word_count,
        quality.paragraph_count,
        quality.text_density,
        quality.link_density,
        quality.metadata_complete,
    ) * 0.10
    score += (1.0 if quality.language else 0.5) * 0.05
    return min(score, 1.0)


def _syllables(word: str) -> int:
    word = word.lower()
    if len(word) <= 3:
        return 1
    vowels = len(re.findall(r"[aeiouyæøå]", word)) or 1
    if word.endswith(("e", "ed", "es")):
        return max(1, vowels - 1)
    return max(1, vowels)
