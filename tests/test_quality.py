from __future__ import annotations

import asyncio

import pytest

from article_cascade.models import ExtractedContent
from article_cascade.page import SoupPage
from article_cascade.scoring.quality import (
    PageQualityAnalyzer,
    basic_score,
    extraction_quality,
    frontpage_risk,
    readability_metrics,
)

ARTICLE_HTML = """
<html lang="en"><head>
<meta property="og:type" content="article">
<title>Harbour budget approved</title>
</head><body>
<article>
<h1>Harbour budget approved</h1>
<span class="byline">Kari Nordmann</span>
<time datetime="2024-01-15T10:00:00Z">15. januar 2024</time>
<p>The harbour authority approved the new budget on Monday after a long debate.</p>
<p>Work on the northern pier starts in spring and should finish next year.</p>
<p>Local fishermen welcomed the decision but asked for more berths.</p>
</article>
</body></html>
"""

FRONTPAGE_HTML = """
<html><body>
<nav><a href="/category/news">News</a></nav>
<nav><a href="/category/sport">Sport</a></nav>
<nav><a href="/category/culture">Culture</a></nav>
<nav><a href="/category/money">Money</a></nav>
<h1>Today</h1><h1>Latest</h1>
<ul><li><a href="/news/1">One</a></li><li><a href="/news/2">Two</a></li></ul>
<ul><li><a href="/news/3">Three</a></li><li><a href="/news/4">Four</a></li></ul>
<ul><li><a href="/news/5">Five</a></li><li><a href="/news/6">Six</a></li></ul>
</body></html>
"""


def test_basic_score_floor_for_short_text() -> None:
    assert basic_score(6, 1, 0.0, 1.0, False) == pytest.approx(0.25)
    assert basic_score(0, 1, 0.0, 1.0, False) == pytest.approx(0.1)
    assert basic_score(200, 3, 0.5, 0.0, True) == pytest.approx(1.0)


def test_frontpage_is_rejected() -> None:
    page = SoupPage(FRONTPAGE_HTML, "https://news.example/")

    risk = asyncio.run(frontpage_risk(page, ExtractedContent(title="Today")))

    assert risk.recommendation == "reject"
    assert risk.risk == "high"
    assert risk.indicators.multiple_headlines is True
    assert risk.indicators.navigation_heavy is True
    assert risk.indicators.category_links is True
    assert risk.indicators.article_list_structure is True
    assert risk.indicators.no_single_article_content is True
    assert risk.risk_score == pytest.approx(1.2)


def test_article_page_has_low_risk_and_good_score() -> None:
    page = SoupPage(ARTICLE_HTML, "https://news.example/a/1")
    data = ExtractedContent(
        title="Harbour budget approved",
        content="The harbour authority approved the new budget.\n\nWork starts in spring.",
        date="2024-01-15T10:00:00Z",
    )

    quality = asyncio.run(
        PageQualityAnalyzer().analyze(page, data, method="bespoke-test", confidence=0.95)
    )

    assert quality.frontpage_risk.recommendation == "extract"
    assert quality.article_indicators.has_open_graph_article is True
    assert quality.article_indicators.has_publish_date is True
    assert quality.content_structure.has_main_content is True
    assert quality.extraction_quality.bespoke_rule_used is True
    assert quality.language == "en"
    assert quality.paragraph_count == 2
    assert 0.3 < quality.score <= 1.0


def test_extraction_quality_penalises_site_titles() -> None:
    clean = extraction_quality(ExtractedContent(title="Harbour budget approved"), "hybrid", 0.8, 0)
    noisy = extraction_quality(ExtractedContent(title="News | Example"), "hybrid", 0.8, 0)

    assert clean.title_quality == pytest.approx(1.0)
    assert noisy.title_quality == pytest.approx(0.6)
    assert clean.bespoke_rule_used is False


def test_readability_metrics() -> None:
    metrics = readability_metrics("The cat sat. The dog ran.")

    assert metrics.average_words_per_sentence == pytest.approx(3.0)
    assert metrics.complexity == "simple"
    assert readability_metrics("").grade_level == 0.0
