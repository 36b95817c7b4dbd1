from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from article_cascade.caching.extraction_cache import CacheConfig
from article_cascade.rules.catalog import RuleLoaderOptions
from article_cascade.scoring.validator import ValidationThresholds
from article_cascade.utils import coerce_bool


def _coerce_number(value: Any, kind: type, name: str) -> Any:
    if isinstance(value, bool):
        raise ValueError(f"Invalid {kind.__name__} for {name}: {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid {kind.__name__} for {name}: {value!r}") from exc


def _coerced(cls: type, data: Mapping[str, Any] | None, section: str) -> dict[str, Any]:
    """Keyword arguments for ``cls`` with YAML/env strings coerced to field types."""
    known = {f.name: f for f in fields(cls)}
    values: dict[str, Any] = {}
    for key, value in (data or {}).items():
        if key not in known:
            raise ValueError(f"Unknown {section} setting: {key}")
        default = known[key].default
        name = f"{section}.{key}"
        if isinstance(default, bool):
            values[key] = coerce_bool(value)
        elif isinstance(default, int):
            values[key] = _coerce_number(value, int, name)
        elif isinstance(default, float):
            values[key] = _coerce_number(value, float, name)
        else:
            values[key] = value
    return values


@dataclass
class RulesConfig:
    path: Path | None = Path("site-rules.yaml")
    watch: bool = False
    enable_rule_validation: bool = True
    enable_rule_caching: bool = True
    hot_reload_in_development: bool = False

    def __post_init__(self) -> None:
        if self.path is not None:
            self.path = Path(self.path)

    def loader_options(self) -> RuleLoaderOptions:
        return RuleLoaderOptions(
            enable_rule_validation=self.enable_rule_validation,
            enable_rule_caching=self.enable_rule_caching,
            hot_reload_in_development=self.hot_reload_in_development,
        )


@dataclass
class ExtractionConfig:
    bespoke_confidence: float = 0.95
    min_fragment_chars: int = 10

    def validate(self) -> None:
        if not 0 <= self.bespoke_confidence <= 1:
            raise ValueError("extraction.bespoke_confidence must be within [0, 1]")
        if self.min_fragment_chars < 0:
            raise ValueError("extraction.min_fragment_chars must not be negative")


@dataclass
class FetchConfig:
    timeout: float = 20.0
    max_attempts: int = 3
    user_agent: str = "article-cascade/0.1"
    use_browser: bool = False

    def validate(self) -> None:
        if self.timeout <= 0:
            raise ValueError("fetch.timeout must be positive")
        if self.max_attempts < 1:
            raise ValueError("fetch.max_attempts must be at least 1")


@dataclass
class AppConfig:
    rules: RulesConfig = field(default_factory=RulesConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    validation: ValidationThresholds = field(default_factory=ValidationThresholds)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    log_path: Path | None = None

    def validate(self) -> None:
        if self.cache.max_entries < 1:
            raise ValueError("cache.max_entries must be at least 1")
        if self.cache.max_age_seconds <= 0:
            raise ValueError("cache.max_age_seconds must be positive")
        if not 0 < self.cache.eviction_fraction <= 1:
            raise ValueError("cache.eviction_fraction must be within (0, 1]")
        self.extraction.validate()
        self.fetch.validate()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AppConfig":
        log_path = data.get("log_path")
        config = cls(
            rules=RulesConfig(**_coerced(RulesConfig, data.get("rules"), "rules")),
            cache=CacheConfig(**_coerced(CacheConfig, data.get("cache"), "cache")),
            validation=ValidationThresholds(
                **_coerced(ValidationThresholds, data.get("validation"), "validation")
            ),
            extraction=ExtractionConfig(
                **_coerced(ExtractionConfig, data.get("extraction"), "extraction")
            ),
            fetch=FetchConfig(**_coerced(FetchConfig, data.get("fetch"), "fetch")),
            log_path=Path(log_path) if log_path else None,
        )
        config.validate()
        return config


DEFAULT_CONFIG_PATH = Path("config.yaml")
ENV_PREFIX = "ARTICLE_CASCADE__"


def _deep_set(target: dict[str, Any], keys: list[str], value: Any) -> None:
    current = target
    for key in keys[:-1]:
        current = current.setdefault(key, {})
    current[keys[-1]] = value


def _parse_env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for key, value in env.items():
        if not key.startswith(ENV_PREFIX):
            continue
        path = key[len(ENV_PREFIX) :].lower().split("__")
        if not path or any(not part for part in path):
            continue
        _deep_set(overrides, path, value)
    return overrides


def _merge_dicts(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    path: Path | str = DEFAULT_CONFIG_PATH,
    env: Mapping[str, str] | None = None,
) -> AppConfig:
    config_path = Path(path)
    data: dict[str, Any] = {}
    if config_path.exists():
        raw = config_path.read_text(encoding="utf-8")
        loaded = yaml.safe_load(raw) or {}
        if not isinstance(loaded, dict):
            raise ValueError("config.yaml must define a mapping at the top level")
        data = loaded

    env_overrides = _parse_env_overrides(env if env is not None else os.environ)
    merged = _merge_dicts(data, env_overrides)
    return AppConfig.from_dict(merged)
