from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from article_cascade.cli import app

RULES_YAML = """
rules:
  - id: news
    name: News Example
    domains: [news.example]
    priority: 80
    urlPatterns: ['/a/\\d+']
    selectors:
      container: [article]
      title: [h1]
      content: [".article-body p"]
      author: [.byline]
      date: [time]
  - id: news-fallback
    name: News Example fallback
    domains: [news.example]
    priority: 20
    selectors:
      title: [h1]
      content: [p]
"""

ARTICLE_HTML = """
<html lang="en"><head><meta property="og:type" content="article"></head><body>
<article>
<h1>Harbour budget approved after long debate</h1>
<span class="byline">Kari Nordmann</span>
<time datetime="2024-01-15T10:00:00Z">15. januar 2024</time>
<div class="article-body">
<p>The harbour authority approved the new budget on Monday. The vote followed a long debate in the council chamber.</p>
<p>Work on the northern pier starts in spring. It should finish next year, the port director said.</p>
<p>Local fishermen welcomed the decision. They still asked for more berths at the quay.</p>
</div>
</article>
</body></html>
"""

runner = CliRunner()


@pytest.fixture
def rules_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "site-rules.yaml"
    path.write_text(RULES_YAML, encoding="utf-8")
    return path


def test_match_marks_best_rule(rules_path: Path) -> None:
    result = runner.invoke(app, ["match", "https://www.news.example/a/42", "--rules", str(rules_path)])

    assert result.exit_code == 0
    assert "Domain: news.example" in result.output
    assert "* news (News Example) priority=80" in result.output
    assert "  news-fallback (News Example fallback) priority=20" in result.output
    assert "Match score: 0.80" in result.output


def test_match_without_rule(rules_path: Path) -> None:
    result = runner.invoke(app, ["match", "https://other.example/a/42", "--rules", str(rules_path)])

    assert result.exit_code == 0
    assert "No bespoke rule matches" in result.output


def test_rules_stats(rules_path: Path) -> None:
    result = runner.invoke(app, ["rules-stats", "--rules", str(rules_path)])

    assert result.exit_code == 0
    assert '"total_rules": 2' in result.output
    assert '"news.example": 2' in result.output


def test_extract_file_runs_cascade(rules_path: Path, tmp_path: Path) -> None:
    html_path = tmp_path / "article.html"
    html_path.write_text(ARTICLE_HTML, encoding="utf-8")

    result = runner.invoke(
        app,
        [
            "extract-file",
            str(html_path),
            "--url",
            "https://news.example/a/42",
            "--rules",
            str(rules_path),
        ],
    )

    assert result.exit_code == 0
    assert '"method": "bespoke-news"' in result.output
    assert '"title": "Harbour budget approved after long debate"' in result.output
