"""Structured metadata readers: JSON-LD, Microdata and OpenGraph.

Sources are tried in order of reliability and merged field by field, so a
value found by an earlier source is never overwritten by a later one.
"""

from __future__ import annotations

import json
from typing import Any, Iterator

from article_cascade.models import ExtractedContent
from article_cascade.page import Page, count, first_attribute, first_text, query_first

JSON_LD_SELECTOR = 'script[type="application/ld+json"]'
MICRODATA_SELECTOR = '[itemscope][itemtype*="Article"]'
OG_ARTICLE_SELECTOR = 'meta[property="og:type"][content="article"]'

ARTICLE_TYPES = frozenset({"Article", "NewsArticle"})


async def json_ld_documents(page: Page) -> list[Any]:
    documents: list[Any] = []
    for script in await page.query_selector_all(JSON_LD_SELECTOR):
        raw = (await script.text_content()).strip()
        if not raw:
            continue
        try:
            documents.append(json.loads(raw))
        except ValueError:
            continue
    return documents


def iter_json_ld_items(document: Any) -> Iterator[dict[str, Any]]:
    if isinstance(document, list):
        for item in document:
            yield from iter_json_ld_items(item)
    elif isinstance(document, dict):
        yield document
        graph = document.get("@graph")
        if isinstance(graph, list):
            for item in graph:
                yield from iter_json_ld_items(item)


def is_article_item(item: dict[str, Any]) -> bool:
    kind = item.get("@type")
    if isinstance(kind, list):
        return any(value in ARTICLE_TYPES for value in kind)
    return kind in ARTICLE_TYPES


async def find_article_item(page: Page) -> dict[str, Any] | None:
    for document in await json_ld_documents(page):
        for item in iter_json_ld_items(document):
            if is_article_item(item):
                return item
    return None


def content_from_json_ld(item: dict[str, Any]) -> ExtractedContent:
    return ExtractedContent(
        title=_text(item.get("headline")) or _text(item.get("name")),
        content=_text(item.get("articleBody")),
        author=_author_name(item.get("author")),
        date=_text(item.get("datePublished")) or _text(item.get("dateCreated")),
        summary=_text(item.get("description")),
    )


async def extract_json_ld(page: Page) -> ExtractedContent | None:
    item = await find_article_item(page)
    return content_from_json_ld(item) if item is not None else None


async def extract_microdata(page: Page) -> ExtractedContent | None:
    article = await query_first(page, MICRODATA_SELECTOR)
    if article is None:
        return None
    date = await first_attribute(article, '[itemprop="datePublished"]', "datetime")
    return ExtractedContent(
        title=await first_text(article, '[itemprop="headline"]')
        or await first_text(article, '[itemprop="name"]'),
        content=await first_text(article, '[itemprop="articleBody"]'),
        author=await first_text(article, '[itemprop="author"]'),
        date=date or await first_text(article, '[itemprop="datePublished"]'),
        summary=await first_text(article, '[itemprop="description"]'),
    )


async def extract_open_graph(page: Page) -> ExtractedContent:
    return ExtractedContent(
        title=await first_attribute(page, 'meta[property="og:title"]', "content"),
        summary=await first_attribute(page, 'meta[property="og:description"]', "content"),
        author=await first_attribute(page, 'meta[property="article:author"]', "content"),
        date=await first_attribute(page, 'meta[property="article:published_time"]', "content"),
    )


async def extract_structured(page: Page) -> ExtractedContent:
    """JSON-LD first, Microdata while title/content are missing, OpenGraph while title is."""
    result = ExtractedContent()
    json_ld = await extract_json_ld(page)
    if json_ld is not None:
        result.fill_missing(json_ld)
    if not result.title or not result.content:
        microdata = await extract_microdata(page)
        if microdata is not None:
            result.fill_missing(microdata)
    if not result.title:
        result.fill_missing(await extract_open_graph(page))
    return result


async def has_structured_data(page: Page) -> bool:
    for selector in (JSON_LD_SELECTOR, MICRODATA_SELECTOR, OG_ARTICLE_SELECTOR):
        if await count(page, selector):
            return True
    return False


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _author_name(value: Any) -> str | None:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        return _text(value.get("name"))
    return _text(value)
