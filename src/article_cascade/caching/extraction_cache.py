from __future__ import annotations

import copy
import math
import threading
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from article_cascade.models import ContentQuality, ExtractionResult, FIELDS, _utc_now
from article_cascade.reporting.logging import EventLog, log_event
from article_cascade.urls import domain_pattern, extract_domain, url_pattern
from article_cascade.utils import clamp

Clock = Callable[[], datetime]

CONFIDENCE_GAIN = 0.1
CONFIDENCE_LOSS = 0.05
OPTIMIZED_CONFIDENCE = 0.7


@dataclass(frozen=True)
class CacheConfig:
    max_entries: int = 1000
    max_age_seconds: float = 24 * 60 * 60.0
    pattern_cache_size: int = 500
    optimization_cache_size: int = 100
    eviction_fraction: float = 0.1
    cleanup_interval_seconds: float = 60 * 60.0


@dataclass
class CacheEntry:
    url: str
    url_pattern: str
    result: ExtractionResult
    quality: ContentQuality
    timestamp: datetime
    last_accessed: datetime
    rule_id: str | None = None
    hit_count: int = 0


@dataclass
class PatternCacheEntry:
    url_pattern: str
    domain: str
    last_updated: datetime
    successful_selectors: dict[str, list[str]] = field(default_factory=dict)
    failed_selectors: dict[str, list[str]] = field(default_factory=dict)
    average_quality: float = 0.0
    sample_count: int = 0


@dataclass
class FieldOptimization:
    last_tested: datetime
    selectors: list[str] = field(default_factory=list)
    confidence: float = 0.0
    attempts: int = 0
    successes: int = 0
    success_rate: float = 0.0

    def record(self, selector: str, success: bool, now: datetime) -> None:
        self.attempts += 1
        if success:
            self.successes += 1
            if selector not in self.selectors:
                self.selectors.append(selector)
        self.success_rate = self.successes / self.attempts
        delta = CONFIDENCE_GAIN if success else -CONFIDENCE_LOSS
        self.confidence = clamp(self.confidence + delta)
        self.last_tested = now


@dataclass
class RuleOptimizationRecord:
    rule_id: str
    last_optimized: datetime
    fields: dict[str, FieldOptimization] = field(default_factory=dict)


class CleanupThread(threading.Thread):
    """Periodically drops expired entries until stopped."""

    def __init__(self, cache: "ExtractionCache", interval: float) -> None:
        super().__init__(name="extraction-cache-cleanup", daemon=True)
        self.cache = cache
        self.interval = interval
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.cache.cleanup()

    def stop(self) -> None:
        self._stop_event.set()


class ExtractionCache:
    """In-memory result cache keyed by exact URL, with pattern-level learning.

    Three tables are kept: final results per URL, selector outcomes per
    generalised URL pattern, and learned selector confidence per rule. Values
    are deep-copied on the way in and out so callers never share cached state.
    Call ``destroy()`` (or use the instance as a context manager) to stop the
    background cleanup thread.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        clock: Clock = _utc_now,
        log: EventLog = log_event,
    ) -> None:
        self.config = config or CacheConfig()
        self.clock = clock
        self.log = log
        self.hits = 0
        self.misses = 0
        self._entries: dict[str, CacheEntry] = {}
        self._patterns: dict[str, PatternCacheEntry] = {}
        self._optimizations: dict[str, RuleOptimizationRecord] = {}
        self._lock = threading.RLock()
        self._cleanup: CleanupThread | None = None
        if self.config.cleanup_interval_seconds > 0:
            self._cleanup = CleanupThread(self, self.config.cleanup_interval_seconds)
            self._cleanup.start()

    def __enter__(self) -> "ExtractionCache":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.destroy()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def max_age(self) -> timedelta:
        return timedelta(seconds=self.config.max_age_seconds)

    def store(
        self,
        url: str,
        result: ExtractionResult,
        quality: ContentQuality,
        rule_id: str | None = None,
    ) -> None:
        pattern = url_pattern(url)
        now = self.clock()
        entry = CacheEntry(
            url=url,
            url_pattern=pattern,
            result=copy.deepcopy(result),
            quality=copy.deepcopy(quality),
            timestamp=now,
            last_accessed=now,
            rule_id=rule_id,
        )
        with self._lock:
            self._entries[url] = entry
            self._update_pattern(pattern, quality.score, now)
            if rule_id:
                self._touch_optimization(rule_id, result, now)
            self._evict_if_needed()

    def get(self, url: str) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(url)
            if entry is None:
                self.misses += 1
                return None
            now = self.clock()
            if self._expired(entry, now):
                del self._entries[url]
                self.misses += 1
                return None
            entry.hit_count += 1
            entry.last_accessed = now
            self.hits += 1
            return copy.deepcopy(entry)

    def find_similar(self, url: str, max_results: int = 5) -> list[CacheEntry]:
        pattern = url_pattern(url)
        now = self.clock()
        with self._lock:
            similar = [
                copy.deepcopy(entry)
                for entry in self._entries.values()
                if entry.url_pattern == pattern
                and entry.url != url
                and not self._expired(entry, now)
            ]
        similar.sort(key=lambda entry: entry.quality.score * (1 + entry.hit_count * 0.1), reverse=True)
        return similar[:max_results]

    def get_optimized_selectors(
        self, domain: str, rule_id: str | None = None
    ) -> dict[str, list[str]] | None:
        """Learned selectors per field for a rule, else for the whole domain."""
        with self._lock:
            if rule_id:
                record = self._optimizations.get(rule_id)
                if record is not None:
                    learned = {
                        name: list(data.selectors)
                        for name, data in record.fields.items()
                        if data.confidence > OPTIMIZED_CONFIDENCE
                    }
                    if learned:
                        return learned
            entry = self._patterns.get(domain_pattern(domain))
            if entry is not None and entry.successful_selectors:
                return copy.deepcopy(entry.successful_selectors)
        return None

    def record_selector_performance(
        self,
        url: str,
        field_name: str,
        selector: str,
        success: bool,
        rule_id: str | None = None,
    ) -> None:
        domain = extract_domain(url)
        pattern = domain_pattern(domain)
        now = self.clock()
        with self._lock:
            entry = self._patterns.get(pattern)
            if entry is None:
                entry = PatternCacheEntry(url_pattern=pattern, domain=domain, last_updated=now)
                self._patterns[pattern] = entry
                self._evict_oldest_pattern()
            bucket = entry.successful_selectors if success else entry.failed_selectors
            selectors = bucket.setdefault(field_name, [])
            if selector not in selectors:
                selectors.append(selector)
            entry.last_updated = now

            if rule_id:
                record = self._optimizations.get(rule_id)
                if record is not None:
                    data = record.fields.get(field_name)
                    if data is None:
                        data = FieldOptimization(last_tested=now)
                        record.fields[field_name] = data
                    data.record(selector, success, now)

    def cache_key(self, url: str) -> str:
        return url_pattern(url)

    def stats(self) -> dict[str, Any]:
        now = self.clock()
        with self._lock:
            entries = list(self._entries.values())
            pattern_count = len(self._patterns)
            optimization_count = len(self._optimizations)
        total_hits = sum(entry.hit_count for entry in entries)
        total_requests = total_hits + len(entries)
        total_age = sum((now - entry.timestamp).total_seconds() for entry in entries)
        domains = Counter(extract_domain(entry.url) for entry in entries)
        return {
            "total_entries": len(entries),
            "hit_rate": total_hits / total_requests if total_requests else 0.0,
            "average_age_seconds": total_age / len(entries) if entries else 0.0,
            "top_domains": [
                {"domain": domain, "count": count} for domain, count in domains.most_common(10)
            ],
            "pattern_cache_size": pattern_count,
            "optimization_cache_size": optimization_count,
            "hits": self.hits,
            "misses": self.misses,
        }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._patterns.clear()
            self._optimizations.clear()

    def cleanup(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [url for url, entry in self._entries.items() if self._expired(entry, now)]
            for url in expired:
                del self._entries[url]
        self.log("cache.cleanup", {"level": "info", "removed": len(expired)})
        return len(expired)

    def export(self) -> dict[str, Any]:
        with self._lock:
            return {
                "cache": [asdict(entry) for entry in self._entries.values()],
                "pattern_cache": [asdict(entry) for entry in self._patterns.values()],
                "optimization_cache": [asdict(record) for record in self._optimizations.values()],
                "timestamp": self.clock(),
            }

    def destroy(self) -> None:
        if self._cleanup is not None:
            self._cleanup.stop()
            self._cleanup = None

    def _expired(self, entry: CacheEntry, now: datetime) -> bool:
        return now - entry.timestamp > self.max_age

    def _update_pattern(self, pattern: str, score: float, now: datetime) -> None:
        entry = self._patterns.get(pattern)
        if entry is None:
            self._patterns[pattern] = PatternCacheEntry(
                url_pattern=pattern,
                domain=pattern.split("/", 1)[0],
                last_updated=now,
                average_quality=score,
                sample_count=1,
            )
            self._evict_oldest_pattern()
            return
        entry.average_quality = (entry.average_quality * entry.sample_count + score) / (
            entry.sample_count + 1
        )
        entry.sample_count += 1
        entry.last_updated = now

    def _touch_optimization(self, rule_id: str, result: ExtractionResult, now: datetime) -> None:
        record = self._optimizations.get(rule_id)
        if record is None:
            record = RuleOptimizationRecord(rule_id=rule_id, last_optimized=now)
            self._optimizations[rule_id] = record
        for name in FIELDS:
            if result.data.has_field(name) and name not in record.fields:
                record.fields[name] = FieldOptimization(last_tested=now)
        record.last_optimized = now
        if len(self._optimizations) > self.config.optimization_cache_size:
            oldest = min(self._optimizations.values(), key=lambda item: item.last_optimized)
            del self._optimizations[oldest.rule_id]

    def _evict_oldest_pattern(self) -> None:
        if len(self._patterns) > self.config.pattern_cache_size:
            oldest = min(self._patterns.values(), key=lambda item: item.last_updated)
            del self._patterns[oldest.url_pattern]

    def _evict_if_needed(self) -> None:
        overflow = len(self._entries) - self.config.max_entries
        if overflow <= 0:
            return
        batch = max(1, math.floor(self.config.max_entries * self.config.eviction_fraction), overflow)
        oldest = sorted(self._entries.values(), key=lambda entry: entry.last_accessed)[:batch]
        for entry in oldest:
            del self._entries[entry.url]
        self.log("cache.evicted", {"level": "info", "removed": len(oldest)})
