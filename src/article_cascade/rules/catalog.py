from __future__ import annotations

import math
import re
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml

from article_cascade.models import (
    ContentTransform,
    RuleMatch,
    RuleMetadata,
    RuleSelectors,
    SegmentRule,
    SiteRule,
)
from article_cascade.reporting.logging import EventLog, log_event
from article_cascade.rules.processing import IGNORED_TYPES, TransformError, parse_transform
from article_cascade.urls import extract_domain, strip_www
from article_cascade.utils import coerce_bool

_METADATA_KEYS = {
    "lastUpdated": "last_updated",
}
_METADATA_FIELDS = {f.name for f in fields(RuleMetadata)}


class RuleLoadError(Exception):
    """The rule source is missing or structurally invalid."""


@dataclass(frozen=True)
class RuleLoaderOptions:
    enable_rule_validation: bool = True
    enable_rule_caching: bool = True
    hot_reload_in_development: bool = False
    default_timeout: int | None = None

    def merged(self, raw: Any) -> "RuleLoaderOptions":
        """Overlay a YAML ``config`` block, raising ``ValueError`` on bad values."""
        if not isinstance(raw, Mapping):
            return self
        updates: dict[str, Any] = {}
        for key, name in (
            ("enableRuleValidation", "enable_rule_validation"),
            ("enableRuleCaching", "enable_rule_caching"),
            ("hotReloadInDevelopment", "hot_reload_in_development"),
            ("defaultTimeout", "default_timeout"),
        ):
            if key in raw:
                value = raw[key]
            elif name in raw:
                value = raw[name]
            else:
                continue
            if name == "default_timeout":
                updates[name] = _timeout(value)
            else:
                updates[name] = coerce_bool(value)
        return replace(self, **updates)


class RuleCatalog:
    """Per-domain bespoke extraction rules, indexed for URL lookup.

    Loading never raises: a broken source leaves the catalog empty so the
    cascade degrades to universal detection.
    """

    def __init__(
        self,
        path: Path | str | None = None,
        *,
        options: RuleLoaderOptions | None = None,
        watch: bool = False,
        log: EventLog = log_event,
    ) -> None:
        self.options = options or RuleLoaderOptions()
        self.path = Path(path) if path is not None else None
        self.watch = watch
        self.log = log
        self._rules: list[SiteRule] = []
        self._by_domain: dict[str, list[SiteRule]] = {}
        self._compiled: dict[str, re.Pattern[str] | None] = {}
        self._mtime: float | None = None
        if self.path is not None:
            self.load_file(self.path)

    def load_file(self, path: Path | str) -> None:
        rules_path = Path(path)
        self.path = rules_path
        try:
            data = _read_rules_file(rules_path)
            self._mtime = rules_path.stat().st_mtime
        except (OSError, yaml.YAMLError, RuleLoadError) as exc:
            self.log(
                "rule_catalog.load_failed",
                {"level": "warning", "path": str(rules_path), "error": str(exc)},
            )
            self._reset()
            return
        self.load_rules(data)

    def load_rules(self, source: Mapping[str, Any] | Sequence[Any] | None) -> None:
        if isinstance(source, Mapping):
            self._merge_options(source.get("config"))
            raw_rules = source.get("rules")
        else:
            raw_rules = source
        if not isinstance(raw_rules, Sequence) or isinstance(raw_rules, (str, bytes)):
            self.log(
                "rule_catalog.load_failed",
                {"level": "warning", "error": "rule source has no rules list"},
            )
            self._reset()
            return

        self._reset()
        for raw in raw_rules:
            rule = self._parse(raw)
            if rule is None:
                continue
            self._rules.append(rule)
            for domain in rule.domains:
                self._by_domain.setdefault(domain, []).append(rule)

        for domain, domain_rules in self._by_domain.items():
            self._by_domain[domain] = sorted(domain_rules, key=lambda rule: -rule.priority)

        self.log(
            "rule_catalog.loaded",
            {
                "level": "info",
                "rules": len(self._rules),
                "domains": len(self._by_domain),
                "source": str(self.path) if self.path else "memory",
            },
        )

    def reload_if_changed(self) -> bool:
        if not (self.watch and self.options.hot_reload_in_development and self.path):
            return False
        try:
            mtime = self.path.stat().st_mtime
        except OSError:
            return False
        if self._mtime is not None and mtime == self._mtime:
            return False
        self.log("rule_catalog.reloading", {"level": "info", "path": str(self.path)})
        self.load_file(self.path)
        return True

    def find_rules_for_domain(self, domain: str) -> list[SiteRule]:
        return list(self._by_domain.get(strip_www(domain), []))

    def find_rules_for_url(self, url: str) -> list[SiteRule]:
        domain = extract_domain(url)
        if not domain:
            self.log("rule_catalog.invalid_url", {"level": "warning", "url": url})
            return []
        return [rule for rule in self.find_rules_for_domain(domain) if self._url_matches(rule, url)]

    def find_best_rule_for_url(self, url: str) -> RuleMatch | None:
        rules = self.find_rules_for_url(url)
        if not rules:
            return None
        best = rules[0]
        return RuleMatch(
            rule=best,
            match_score=best.priority / 100,
            match_reason=f"Domain match for {extract_domain(url)} with priority {_fmt(best.priority)}",
        )

    def all_rules(self) -> list[SiteRule]:
        return list(self._rules)

    def get_rule_by_id(self, rule_id: str) -> SiteRule | None:
        return next((rule for rule in self._rules if rule.id == rule_id), None)

    def domain_coverage(self) -> dict[str, int]:
        return {domain: len(rules) for domain, rules in self._by_domain.items()}

    def test_url_match(self, url: str) -> dict[str, Any]:
        matched = self.find_rules_for_url(url)
        return {
            "has_match": bool(matched),
            "matched_rules": [rule.id for rule in matched],
            "domain": extract_domain(url),
        }

    def stats(self) -> dict[str, Any]:
        distribution: dict[str, int] = {}
        for rule in self._rules:
            low = int(math.floor(rule.priority / 10) * 10)
            bucket = f"{low}-{low + 9}"
            distribution[bucket] = distribution.get(bucket, 0) + 1
        domains = len(self._by_domain)
        return {
            "total_rules": len(self._rules),
            "domains_with_rules": domains,
            "average_rules_per_domain": len(self._rules) / domains if domains else 0.0,
            "priority_distribution": distribution,
        }

    def __len__(self) -> int:
        return len(self._rules)

    def _reset(self) -> None:
        self._rules = []
        self._by_domain = {}
        self._compiled = {}

    def _url_matches(self, rule: SiteRule, url: str) -> bool:
        if not rule.url_patterns:
            return True
        for pattern in rule.url_patterns:
            regex = self._compile(rule, pattern)
            if regex is not None and regex.search(url):
                return True
        return False

    def _compile(self, rule: SiteRule, pattern: str) -> re.Pattern[str] | None:
        if self.options.enable_rule_caching and pattern in self._compiled:
            return self._compiled[pattern]
        try:
            regex: re.Pattern[str] | None = re.compile(pattern)
        except re.error as exc:
            self.log(
                "rule_catalog.invalid_pattern",
                {"level": "warning", "rule_id": rule.id, "pattern": pattern, "error": str(exc)},
            )
            regex = None
        if self.options.enable_rule_caching:
            self._compiled[pattern] = regex
        return regex

    def _merge_options(self, raw: Any) -> None:
        if raw is None:
            return
        if not isinstance(raw, Mapping):
            self.log(
                "rule_catalog.config_ignored",
                {"level": "warning", "error": f"config must be a mapping, got {type(raw).__name__}"},
            )
            return
        try:
            self.options = self.options.merged(raw)
        except ValueError as exc:
            self.log("rule_catalog.config_ignored", {"level": "warning", "error": str(exc)})

    def _parse(self, raw: Any) -> SiteRule | None:
        try:
            return parse_rule(raw, validate=self.options.enable_rule_validation, log=self.log)
        except (ValueError, TypeError, KeyError) as exc:
            rule_id = raw.get("id") if isinstance(raw, Mapping) else None
            self.log(
                "rule_catalog.rule_skipped",
                {"level": "warning", "rule_id": rule_id, "reason": str(exc)},
            )
            return None


def parse_rule(raw: Any, validate: bool = True, log: EventLog = log_event) -> SiteRule:
    """Build a ``SiteRule`` from a mapping, raising ``ValueError`` if unusable."""
    if not isinstance(raw, Mapping):
        raise ValueError("rule must be a mapping")

    rule_id = _required_str(raw, "id")
    name = _required_str(raw, "name")
    domains = tuple(strip_www(domain) for domain in _str_list(raw.get("domains")))
    if not domains:
        raise ValueError("rule has no domains")

    raw_selectors = raw.get("selectors")
    if not isinstance(raw_selectors, Mapping):
        raise ValueError("rule has no selectors")
    selectors = RuleSelectors(
        title=tuple(_str_list(raw_selectors.get("title"))),
        content=tuple(_str_list(raw_selectors.get("content"))),
        container=tuple(_str_list(raw_selectors.get("container"))),
        author=tuple(_str_list(raw_selectors.get("author"))),
        date=tuple(_str_list(raw_selectors.get("date"))),
        summary=tuple(_str_list(raw_selectors.get("summary"))),
    )
    if not selectors.title or not selectors.content:
        raise ValueError("rule requires title and content selectors")

    priority = _priority(raw.get("priority"), validate)

    transforms: list[ContentTransform] = []
    raw_processing = raw.get("contentProcessing") or raw.get("content_processing")
    for entry in _list(raw_processing, "contentProcessing"):
        if not isinstance(entry, Mapping):
            continue
        try:
            transform = parse_transform(entry)
        except TransformError as exc:
            log(
                "rule_catalog.transform_dropped",
                {"level": "warning", "rule_id": rule_id, "reason": str(exc)},
            )
            continue
        if transform.type in IGNORED_TYPES:
            log(
                "rule_catalog.transform_ignored",
                {"level": "info", "rule_id": rule_id, "type": transform.type},
            )
            continue
        transforms.append(transform)

    segments = tuple(
        SegmentRule(
            name=str(segment["name"]),
            selector=str(segment["selector"]),
            type=str(segment.get("type", "supplementary")),
            priority=int(segment.get("priority", 0) or 0),
            extract_as=str(segment.get("extractAs", segment.get("extract_as", "text"))),
        )
        for segment in _list(raw.get("segments"), "segments")
        if isinstance(segment, Mapping) and segment.get("name") and segment.get("selector")
    )

    return SiteRule(
        id=rule_id,
        name=name,
        domains=domains,
        selectors=selectors,
        priority=priority,
        url_patterns=tuple(_str_list(raw.get("urlPatterns", raw.get("url_patterns")))),
        exclusions=tuple(_str_list(raw.get("exclusions"))),
        content_processing=tuple(transforms),
        segments=segments,
        metadata=_metadata(raw.get("metadata")),
        description=raw.get("description"),
    )


def _read_rules_file(path: Path) -> Any:
    if not path.exists():
        raise RuleLoadError(f"rules file not found: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, Mapping) or not isinstance(data.get("rules"), list):
        raise RuleLoadError("Invalid YAML structure: missing rules array")
    return data


def _required_str(raw: Mapping[str, Any], key: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"rule is missing {key}")
    return value.strip()


def _str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item).strip() for item in value if str(item).strip()]


def _list(value: Any, key: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{key} must be a list, got {type(value).__name__}")
    return value


def _timeout(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"Invalid defaultTimeout: {value!r}")
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Invalid defaultTimeout: {value!r}") from exc


def _priority(value: Any, validate: bool) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        if validate:
            raise ValueError(f"priority must be a number, got {value!r}")
        return 0
    if validate and not 0 <= value <= 1000:
        raise ValueError(f"priority {value} outside 0-1000")
    return value


def _metadata(raw: Any) -> RuleMetadata:
    if not isinstance(raw, Mapping):
        return RuleMetadata()
    values: dict[str, Any] = {}
    for key, value in raw.items():
        name = _METADATA_KEYS.get(key, key)
        if name in _METADATA_FIELDS:
            values[name] = value if isinstance(value, bool) or value is None else str(value)
    return RuleMetadata(**values)


def _fmt(priority: float) -> str:
    return str(int(priority)) if float(priority).is_integer() else str(priority)
