from __future__ import annotations

import asyncio
from pathlib import Path

from article_cascade.caching.extraction_cache import ExtractionCache
from article_cascade.config import AppConfig
from article_cascade.detectors.universal import UniversalDetector
from article_cascade.extractors.engine import ExtractionEngine
from article_cascade.extractors.rule_based import RuleBasedExtractor
from article_cascade.fetchers.http import HttpFetcher
from article_cascade.models import ExtractionResult, error_result
from article_cascade.page import SoupPage
from article_cascade.reporting.effectiveness import RuleEffectivenessTracker
from article_cascade.reporting.logging import EventLog, file_event_log
from article_cascade.rules.catalog import RuleCatalog
from article_cascade.scoring.validator import ContentValidator


def build_catalog(
    config: AppConfig, rules_path: Path | None = None, log: EventLog | None = None
) -> RuleCatalog:
    logger = log or file_event_log(config.log_path)
    return RuleCatalog(
        rules_path or config.rules.path,
        options=config.rules.loader_options(),
        watch=config.rules.watch,
        log=logger,
    )


def build_engine(
    config: AppConfig,
    *,
    rules_path: Path | None = None,
    log: EventLog | None = None,
    cache: ExtractionCache | None = None,
    tracker: RuleEffectivenessTracker | None = None,
) -> ExtractionEngine:
    """Wire catalog, cache, detectors and validator from one config and one event log.

    A cache created here is owned by the engine; use the engine as a context
    manager (or call ``close()``) to stop its cleanup thread.
    """
    logger = log or file_event_log(config.log_path)
    owns_cache = cache is None
    return ExtractionEngine(
        catalog=build_catalog(config, rules_path, logger),
        cache=ExtractionCache(config.cache, log=logger) if owns_cache else cache,
        detector=UniversalDetector(log=logger),
        rule_extractor=RuleBasedExtractor(
            log=logger,
            confidence=config.extraction.bespoke_confidence,
            min_fragment_chars=config.extraction.min_fragment_chars,
        ),
        validator=ContentValidator(config.validation),
        tracker=tracker,
        log=logger,
        owns_cache=owns_cache,
    )


def extract_html(engine: ExtractionEngine, html: str, url: str) -> ExtractionResult:
    return asyncio.run(engine.extract(SoupPage(html, url)))


def extract_url(
    url: str,
    config: AppConfig,
    *,
    rules_path: Path | None = None,
    use_browser: bool | None = None,
    log: EventLog | None = None,
) -> ExtractionResult:
    """Fetch ``url`` (plain HTTP or a live browser) and run it through the cascade."""
    logger = log or file_event_log(config.log_path)
    browser = config.fetch.use_browser if use_browser is None else use_browser
    with build_engine(config, rules_path=rules_path, log=logger) as engine:
        if browser:
            return asyncio.run(_extract_with_browser(engine, url, config))

        fetched = HttpFetcher(
            timeout=config.fetch.timeout,
            max_attempts=config.fetch.max_attempts,
            user_agent=config.fetch.user_agent,
        ).fetch(url)
        if fetched.error or not fetched.content:
            logger(
                "pipeline.fetch_failed",
                {"level": "error", "url": url, "error": fetched.error or "empty response"},
            )
            return error_result(fetched.error or "empty response")
        if fetched.status_code is not None and fetched.status_code >= 400:
            logger(
                "pipeline.fetch_status",
                {"level": "warning", "url": url, "status_code": fetched.status_code},
            )
        logger(
            "pipeline.fetched",
            {"level": "info", "url": fetched.url, "elapsed_ms": fetched.elapsed_ms},
        )
        return extract_html(engine, fetched.content, fetched.url)


async def _extract_with_browser(
    engine: ExtractionEngine, url: str, config: AppConfig
) -> ExtractionResult:
    from article_cascade.fetchers.playwright_page import open_page

    async with open_page(
        url, timeout_s=config.fetch.timeout, user_agent=config.fetch.user_agent
    ) as page:
        return await engine.extract(page)
