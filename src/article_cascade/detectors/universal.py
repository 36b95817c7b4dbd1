from __future__ import annotations

import time
from dataclasses import dataclass

from article_cascade.detectors.structured_data import extract_structured, has_structured_data
from article_cascade.models import (
    FIELDS,
    ContentQuality,
    ExtractedContent,
    ExtractionMetadata,
    ExtractionProvenance,
    ExtractionResult,
    error_result,
)
from article_cascade.page import Element, Page, first_attribute, first_text, query_first
from article_cascade.reporting.logging import EventLog, log_event
from article_cascade.scoring.quality import basic_quality

SEMANTIC_CONTAINERS = ("article", "main", '[role="article"]', '[role="main"]')
AUTHOR_SELECTORS = ('address[rel="author"]', '[rel="author"]', ".author", ".byline")
DATE_SELECTOR = "time[datetime]"

STRUCTURED_CONFIDENCE = 0.9
HYBRID_CONFIDENCE = 0.8
SEMANTIC_CONFIDENCE = 0.7

MIN_PARAGRAPH_CHARS = 20
MIN_CONTAINER_CONTENT_CHARS = 100


@dataclass
class UniversalDetector:
    """Domain-agnostic extraction from structured metadata and semantic HTML.

    Structured data (JSON-LD, Microdata, OpenGraph) is read first; the
    semantic-HTML pass only fills fields that are still empty.
    """

    log: EventLog = log_event

    async def extract(self, page: Page) -> ExtractionResult:
        started = time.perf_counter()
        try:
            return await self._extract(page, started)
        except Exception as exc:
            self.log(
                "universal.failed",
                {"level": "error", "url": getattr(page, "url", None), "error": str(exc)},
            )
            return error_result(exc, _elapsed_ms(started))

    async def _extract(self, page: Page, started: float) -> ExtractionResult:
        data = await extract_structured(page)
        sources = {name: "structured-data" for name in FIELDS if data.has_field(name)}

        if data.title and data.content:
            method, confidence = "structured-data", STRUCTURED_CONFIDENCE
        else:
            semantic, semantic_sources = await semantic_pass(page)
            for name in FIELDS:
                if not data.has_field(name) and semantic.has_field(name):
                    setattr(data, name, getattr(semantic, name))
                    sources[name] = semantic_sources[name]
            if await has_structured_data(page):
                method, confidence = "hybrid", HYBRID_CONFIDENCE
            else:
                method, confidence = "semantic-html5", SEMANTIC_CONFIDENCE

        quality = await basic_quality(page, data)
        success = is_successful(data, quality)
        confidence = confidence * max(quality.score, 0.3) if success else 0.0
        data.provenance = ExtractionProvenance(
            rule_used=None, extraction_method=method, confidence=confidence
        )
        return ExtractionResult(
            success=success,
            confidence=confidence,
            method=method,
            data=data,
            metadata=ExtractionMetadata(
                selectors_used=sources,
                extraction_time_ms=_elapsed_ms(started),
                content_quality=quality,
            ),
        )


async def semantic_pass(page: Page) -> tuple[ExtractedContent, dict[str, str]]:
    """Read title/content/date/author from the first useful semantic container."""
    for selector in SEMANTIC_CONTAINERS:
        container = await query_first(page, selector)
        if container is None:
            continue
        data, sources = await _read_semantic(container, selector)
        if data.title or len(data.content or "") > MIN_CONTAINER_CONTENT_CHARS:
            return data, sources
    return await _read_semantic(page, "")


async def _read_semantic(root: Page | Element, prefix: str) -> tuple[ExtractedContent, dict[str, str]]:
    data = ExtractedContent()
    sources: dict[str, str] = {}

    def _source(selector: str) -> str:
        return f"{prefix} {selector}".strip()

    data.title = await first_text(root, "h1")
    if data.title:
        sources["title"] = _source("h1")

    paragraphs: list[str] = []
    for element in await root.query_selector_all("p"):
        text = (await element.text_content()).strip()
        if len(text) > MIN_PARAGRAPH_CHARS:
            paragraphs.append(text)
    if paragraphs:
        data.content = "\n\n".join(paragraphs)
        sources["content"] = _source("p")

    data.date = await first_attribute(root, DATE_SELECTOR, "datetime") or await first_text(
        root, DATE_SELECTOR
    )
    if data.date:
        sources["date"] = _source(DATE_SELECTOR)

    for selector in AUTHOR_SELECTORS:
        author = await first_text(root, selector)
        if author:
            data.author = author
            sources["author"] = _source(selector)
            break
    return data, sources


def is_successful(data: ExtractedContent, quality: ContentQuality) -> bool:
    valid_title = len(data.title or "") > 3
    valid_content = len(data.content or "") > 50
    return (valid_title or valid_content) and (quality.word_count > 20 or quality.score > 0.3)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
