from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from article_cascade.rules.catalog import RuleCatalog, RuleLoaderOptions


class EventRecorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, event: str, payload: Any) -> None:
        self.events.append((event, dict(payload)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def _rule(rule_id: str, priority: float, **extra: Any) -> dict[str, Any]:
    rule = {
        "id": rule_id,
        "name": f"Rule {rule_id}",
        "domains": ["news.example"],
        "priority": priority,
        "selectors": {"title": ["h1"], "content": ["article p"]},
    }
    rule.update(extra)
    return rule


RULES_YAML = """
config:
  enableRuleValidation: true
  hotReloadInDevelopment: true
rules:
  - id: vg
    name: VG
    domains: [www.vg.no]
    priority: 100
    urlPatterns: ['^https://www\\.vg\\.no/nyheter/']
    selectors:
      title: [h1]
      content: [".article-body p"]
    contentProcessing:
      - type: removePhrase
        pattern: "Les også:"
      - type: removeElement
        selector: .video-embed
      - type: handlePaywall
    metadata:
      language: "no"
      lastUpdated: "2025-01-11"
  - id: broken
    name: Missing selectors
    domains: [vg.no]
"""


def test_best_rule_is_highest_priority() -> None:
    catalog = RuleCatalog(log=EventRecorder())
    catalog.load_rules([_rule("low", 10), _rule("high", 80), _rule("mid", 50)])

    match = catalog.find_best_rule_for_url("https://news.example/a/1")

    assert match is not None
    assert match.rule.id == "high"
    assert match.match_score == 0.8
    assert match.match_reason == "Domain match for news.example with priority 80"
    assert [rule.id for rule in catalog.find_rules_for_domain("news.example")] == [
        "high",
        "mid",
        "low",
    ]


def test_equal_priorities_keep_load_order() -> None:
    catalog = RuleCatalog(log=EventRecorder())
    catalog.load_rules([_rule("first", 50), _rule("second", 50)])

    match = catalog.find_best_rule_for_url("https://news.example/story")

    assert match is not None
    assert match.rule.id == "first"


def test_incomplete_rules_are_skipped_with_warning() -> None:
    events = EventRecorder()
    catalog = RuleCatalog(log=events)
    no_content = _rule("no-content", 10)
    no_content["selectors"] = {"title": ["h1"]}
    no_domains = _rule("no-domains", 10, domains=[])

    catalog.load_rules([no_content, no_domains, _rule("ok", 10), "not a rule"])

    assert [rule.id for rule in catalog.all_rules()] == ["ok"]
    assert events.names().count("rule_catalog.rule_skipped") == 3


def test_priority_validation_can_be_disabled() -> None:
    strict = RuleCatalog(log=EventRecorder())
    strict.load_rules([_rule("too-high", 5000)])
    assert len(strict) == 0

    lenient = RuleCatalog(
        options=RuleLoaderOptions(enable_rule_validation=False), log=EventRecorder()
    )
    lenient.load_rules([_rule("too-high", 5000)])
    assert len(lenient) == 1


def test_find_rules_for_domain_strips_www_and_never_raises() -> None:
    catalog = RuleCatalog(log=EventRecorder())
    catalog.load_rules([_rule("a", 10)])

    assert [rule.id for rule in catalog.find_rules_for_domain("www.news.example")] == ["a"]
    assert catalog.find_rules_for_domain("unknown.example") == []
    assert catalog.find_rules_for_url("not a url") == []


def test_invalid_url_pattern_only_disqualifies_that_rule() -> None:
    events = EventRecorder()
    catalog = RuleCatalog(log=events)
    catalog.load_rules(
        [
            _rule("bad-regex", 90, urlPatterns=["(unclosed"]),
            _rule("articles", 50, urlPatterns=[r"/article/\d+"]),
            _rule("fallback", 10),
        ]
    )

    matched = catalog.find_rules_for_url("https://news.example/article/42")
    assert [rule.id for rule in matched] == ["articles", "fallback"]
    assert "rule_catalog.invalid_pattern" in events.names()

    other = catalog.find_rules_for_url("https://news.example/video/42")
    assert [rule.id for rule in other] == ["fallback"]


def test_multi_domain_rule_is_indexed_under_each_domain() -> None:
    catalog = RuleCatalog(log=EventRecorder())
    catalog.load_rules([_rule("bbc", 90, domains=["bbc.co.uk", "www.bbc.com"])])

    assert catalog.domain_coverage() == {"bbc.co.uk": 1, "bbc.com": 1}
    assert catalog.test_url_match("https://www.bbc.com/news/1") == {
        "has_match": True,
        "matched_rules": ["bbc"],
        "domain": "bbc.com",
    }


def test_load_file_parses_yaml_rules(tmp_path: Path) -> None:
    rules_path = tmp_path / "site-rules.yaml"
    rules_path.write_text(RULES_YAML, encoding="utf-8")
    events = EventRecorder()

    catalog = RuleCatalog(rules_path, log=events)

    assert [rule.id for rule in catalog.all_rules()] == ["vg"]
    rule = catalog.get_rule_by_id("vg")
    assert rule is not None
    assert rule.domains == ("vg.no",)
    assert rule.metadata.language == "no"
    assert rule.metadata.last_updated == "2025-01-11"
    assert [transform.type for transform in rule.content_processing] == [
        "removePhrase",
        "removeElement",
    ]
    assert catalog.options.hot_reload_in_development is True
    assert "rule_catalog.transform_ignored" in events.names()
    assert catalog.find_best_rule_for_url("https://www.vg.no/nyheter/i/abc") is not None
    assert catalog.find_best_rule_for_url("https://www.vg.no/sport/i/abc") is None


def test_missing_or_malformed_file_degrades_to_empty_catalog(tmp_path: Path) -> None:
    events = EventRecorder()
    missing = RuleCatalog(tmp_path / "missing.yaml", log=events)
    assert len(missing) == 0
    assert events.names() == ["rule_catalog.load_failed"]

    malformed = tmp_path / "bad.yaml"
    malformed.write_text("rules: [unclosed", encoding="utf-8")
    assert len(RuleCatalog(malformed, log=EventRecorder())) == 0

    no_rules = tmp_path / "empty.yaml"
    no_rules.write_text("config: {}\n", encoding="utf-8")
    assert len(RuleCatalog(no_rules, log=EventRecorder())) == 0


def test_reload_if_changed_picks_up_edits(tmp_path: Path) -> None:
    rules_path = tmp_path / "site-rules.yaml"
    rules_path.write_text(RULES_YAML, encoding="utf-8")
    catalog = RuleCatalog(rules_path, watch=True, log=EventRecorder())
    assert catalog.reload_if_changed() is False

    rules_path.write_text(RULES_YAML.replace("id: vg", "id: vg2"), encoding="utf-8")
    stat = rules_path.stat()
    os.utime(rules_path, (stat.st_atime, stat.st_mtime + 5))

    assert catalog.reload_if_changed() is True
    assert [rule.id for rule in catalog.all_rules()] == ["vg2"]


def test_stats_bucket_priorities() -> None:
    catalog = RuleCatalog(log=EventRecorder())
    catalog.load_rules(
        [_rule("a", 10), _rule("b", 15), _rule("c", 80, domains=["other.example"])]
    )

    stats = catalog.stats()

    assert stats["total_rules"] == 3
    assert stats["domains_with_rules"] == 2
    assert stats["average_rules_per_domain"] == 1.5
    assert stats["priority_distribution"] == {"10-19": 2, "80-89": 1}


def test_rule_with_non_list_sections_is_dropped_alone() -> None:
    events = EventRecorder()
    catalog = RuleCatalog(log=events)

    catalog.load_rules(
        [
            _rule("bad-processing", 90, contentProcessing=5),
            _rule("bad-segments", 90, segments=True),
            _rule("ok", 10),
        ]
    )

    assert [rule.id for rule in catalog.all_rules()] == ["ok"]
    skipped = [payload["rule_id"] for name, payload in events.events if name == "rule_catalog.rule_skipped"]
    assert skipped == ["bad-processing", "bad-segments"]


def test_non_mapping_config_block_is_ignored(tmp_path: Path) -> None:
    rules_path = tmp_path / "site-rules.yaml"
    rules_path.write_text("config: 5\nrules: []\n", encoding="utf-8")
    events = EventRecorder()

    catalog = RuleCatalog(rules_path, log=events)

    assert len(catalog) == 0
    assert catalog.options == RuleLoaderOptions()
    assert "rule_catalog.config_ignored" in events.names()
    assert "rule_catalog.loaded" in events.names()


def test_config_flags_are_coerced_from_strings() -> None:
    catalog = RuleCatalog(log=EventRecorder())

    catalog.load_rules(
        {
            "config": {"enableRuleValidation": "false", "defaultTimeout": "30"},
            "rules": [_rule("too-high", 5000)],
        }
    )

    assert catalog.options.enable_rule_validation is False
    assert catalog.options.default_timeout == 30
    assert len(catalog) == 1


def test_invalid_config_value_keeps_previous_options() -> None:
    events = EventRecorder()
    catalog = RuleCatalog(log=events)

    catalog.load_rules({"config": {"enableRuleValidation": "sometimes"}, "rules": [_rule("ok", 10)]})

    assert catalog.options.enable_rule_validation is True
    assert len(catalog) == 1
    assert "rule_catalog.config_ignored" in events.names()
