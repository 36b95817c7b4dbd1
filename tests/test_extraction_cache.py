from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from article_cascade.caching import CacheConfig, ExtractionCache
from article_cascade.models import ContentQuality, ExtractedContent, ExtractionResult


class FakeClock:
    def __init__(self, step: float = 0.0) -> None:
        self.now = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        self.step = timedelta(seconds=step)

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class EventRecorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, event: str, payload: Any) -> None:
        self.events.append((event, dict(payload)))


def _result(title: str = "Harbour budget approved", **fields: str) -> ExtractionResult:
    return ExtractionResult(
        success=True,
        confidence=0.8,
        method="bespoke-news",
        data=ExtractedContent(title=title, content="Body text " * 20, **fields),
    )


def _cache(clock: FakeClock, **config: Any) -> ExtractionCache:
    config.setdefault("cleanup_interval_seconds", 0)
    return ExtractionCache(CacheConfig(**config), clock=clock, log=EventRecorder())


def test_entries_expire_after_max_age() -> None:
    clock = FakeClock()
    cache = _cache(clock, max_age_seconds=1.0)
    cache.store("https://news.example/a/1", _result(), ContentQuality(score=0.7))

    clock.advance(0.5)
    assert cache.get("https://news.example/a/1") is not None

    clock.advance(0.501)
    assert cache.get("https://news.example/a/1") is None
    assert len(cache) == 0
    assert cache.stats()["misses"] == 1


def test_cached_values_are_isolated_from_callers() -> None:
    cache = _cache(FakeClock())
    result = _result()
    cache.store("https://news.example/a/1", result, ContentQuality(score=0.7))

    result.data.title = "changed after store"
    entry = cache.get("https://news.example/a/1")
    assert entry is not None
    assert entry.result.data.title == "Harbour budget approved"

    entry.result.data.title = "changed after get"
    again = cache.get("https://news.example/a/1")
    assert again is not None
    assert again.result.data.title == "Harbour budget approved"


def test_hit_count_increments_per_get() -> None:
    cache = _cache(FakeClock())
    cache.store("https://news.example/a/1", _result(), ContentQuality(score=0.7), rule_id="news")

    first = cache.get("https://news.example/a/1")
    second = cache.get("https://news.example/a/1")

    assert first is not None and second is not None
    assert (first.hit_count, second.hit_count) == (1, 2)
    assert second.rule_id == "news"
    assert cache.get("https://news.example/a/2") is None
    assert (cache.hits, cache.misses) == (2, 1)


def test_least_recently_accessed_entries_are_evicted() -> None:
    clock = FakeClock(step=1.0)
    cache = _cache(clock, max_entries=5)
    urls = [f"https://news.example/story-{index}" for index in range(6)]
    for url in urls[:5]:
        cache.store(url, _result(), ContentQuality(score=0.5))
    assert cache.get(urls[0]) is not None

    cache.store(urls[5], _result(), ContentQuality(score=0.5))

    assert len(cache) == 5
    assert cache.get(urls[1]) is None
    assert cache.get(urls[0]) is not None
    assert cache.get(urls[5]) is not None
    assert cache.log.events[-1][0] == "cache.evicted"


def test_eviction_removes_a_fraction_of_entries() -> None:
    cache = _cache(FakeClock(step=1.0), max_entries=20, eviction_fraction=0.25)
    for index in range(21):
        cache.store(f"https://news.example/story-{index}", _result(), ContentQuality(score=0.5))

    assert len(cache) == 16


def test_pattern_table_drops_one_oldest_pattern_when_full() -> None:
    cache = _cache(FakeClock(step=1.0), pattern_cache_size=2)
    cache.store("https://a.example/story", _result(), ContentQuality(score=0.5))
    cache.store("https://b.example/story", _result(), ContentQuality(score=0.5))
    cache.store("https://a.example/story", _result(), ContentQuality(score=0.6))

    cache.store("https://c.example/story", _result(), ContentQuality(score=0.5))

    patterns = [row["url_pattern"] for row in cache.export()["pattern_cache"]]
    assert sorted(patterns) == ["a.example/story", "c.example/story"]
    assert len(cache) == 3


def test_optimization_table_drops_one_oldest_rule_when_full() -> None:
    cache = _cache(FakeClock(step=1.0), optimization_cache_size=2)
    cache.store("https://news.example/a/1", _result(), ContentQuality(score=0.5), rule_id="first")
    cache.store("https://news.example/a/2", _result(), ContentQuality(score=0.5), rule_id="second")
    cache.store("https://news.example/a/3", _result(), ContentQuality(score=0.5), rule_id="first")

    cache.store("https://news.example/a/4", _result(), ContentQuality(score=0.5), rule_id="third")

    rule_ids = [row["rule_id"] for row in cache.export()["optimization_cache"]]
    assert sorted(rule_ids) == ["first", "third"]


def test_urls_with_ids_share_a_pattern() -> None:
    cache = _cache(FakeClock())
    cache.store("https://www.news.example/a/123456/", _result(), ContentQuality(score=0.6))
    cache.store("https://news.example/a/654321/", _result(), ContentQuality(score=0.9))
    cache.store("https://news.example/b/111111/", _result(), ContentQuality(score=0.9))

    assert cache.cache_key("https://news.example/a/123456/") == "news.example/a/*/"
    similar = cache.find_similar("https://news.example/a/999999/")
    assert [entry.url for entry in similar] == [
        "https://news.example/a/654321/",
        "https://www.news.example/a/123456/",
    ]
    assert [entry.url for entry in cache.find_similar("https://news.example/a/654321/")] == [
        "https://www.news.example/a/123456/"
    ]
    pattern = next(
        row for row in cache.export()["pattern_cache"] if row["url_pattern"] == "news.example/a/*/"
    )
    assert pattern["sample_count"] == 2
    assert pattern["average_quality"] == pytest.approx(0.75)


def test_selector_learning_adjusts_confidence() -> None:
    cache = _cache(FakeClock())
    cache.store("https://news.example/a/1", _result(), ContentQuality(score=0.7), rule_id="news")

    assert cache.get_optimized_selectors("news.example", "news") is None
    for _ in range(8):
        cache.record_selector_performance("https://news.example/a/1", "title", "h1.headline", True, "news")

    assert cache.get_optimized_selectors("news.example", "news") == {"title": ["h1.headline"]}

    for _ in range(3):
        cache.record_selector_performance("https://news.example/a/1", "title", "h1.headline", False, "news")
    record = cache.export()["optimization_cache"][0]
    assert record["fields"]["title"]["confidence"] == pytest.approx(0.65)
    assert record["fields"]["title"]["attempts"] == 11
    assert record["fields"]["title"]["success_rate"] == pytest.approx(8 / 11)


def test_confidence_is_clamped_at_zero() -> None:
    cache = _cache(FakeClock())
    cache.store("https://news.example/a/1", _result(), ContentQuality(score=0.7), rule_id="news")

    for _ in range(5):
        cache.record_selector_performance("https://news.example/a/1", "content", ".body p", False, "news")

    record = cache.export()["optimization_cache"][0]
    assert record["fields"]["content"]["confidence"] == 0.0


def test_domain_pattern_fallback_for_optimized_selectors() -> None:
    cache = _cache(FakeClock())
    assert cache.get_optimized_selectors("news.example") is None

    cache.record_selector_performance("https://www.news.example/a/1", "title", "h1", True)
    cache.record_selector_performance("https://news.example/a/2", "title", ".headline", False)

    assert cache.get_optimized_selectors("news.example") == {"title": ["h1"]}
    assert cache.get_optimized_selectors("news.example", "unknown-rule") == {"title": ["h1"]}


def test_stats_and_clear() -> None:
    clock = FakeClock()
    cache = _cache(clock)
    cache.store("https://news.example/a/1", _result(), ContentQuality(score=0.7))
    cache.store("https://other.example/b/2", _result(), ContentQuality(score=0.7))
    cache.get("https://news.example/a/1")
    clock.advance(10)

    stats = cache.stats()

    assert stats["total_entries"] == 2
    assert stats["hit_rate"] == pytest.approx(1 / 3)
    assert stats["average_age_seconds"] == pytest.approx(10.0)
    assert {row["domain"] for row in stats["top_domains"]} == {"news.example", "other.example"}
    assert stats["pattern_cache_size"] == 2

    cache.clear()
    assert cache.stats()["total_entries"] == 0
    assert cache.stats()["pattern_cache_size"] == 0


def test_cleanup_removes_only_expired_entries() -> None:
    clock = FakeClock()
    cache = _cache(clock, max_age_seconds=60.0)
    cache.store("https://news.example/a/1", _result(), ContentQuality(score=0.7))
    clock.advance(45)
    cache.store("https://news.example/a/2", _result(), ContentQuality(score=0.7))
    clock.advance(30)

    assert cache.cleanup() == 1
    assert len(cache) == 1
    assert cache.log.events[-1] == ("cache.cleanup", {"level": "info", "removed": 1})


def test_context_manager_stops_cleanup_thread() -> None:
    with ExtractionCache(CacheConfig(cleanup_interval_seconds=3600.0), log=EventRecorder()) as cache:
        thread = cache._cleanup
        assert thread is not None and thread.is_alive()

    thread.join(timeout=1.0)
    assert not thread.is_alive()
    assert cache._cleanup is None
