from __future__ import annotations

import re
from typing import Any, Callable, Mapping

from article_cascade.models import ContentTransform, ExtractedContent
from article_cascade.registry import ComponentRegistry
from article_cascade.reporting.logging import EventLog, null_event_log
from article_cascade.utils import collapse_whitespace

TransformHandler = Callable[[ExtractedContent, ContentTransform], None]

TRANSFORMS: ComponentRegistry[TransformHandler] = ComponentRegistry(kind="transform")

SCOPES = ("content", "title", "author", "date", "all")
DEFAULT_SCOPES = {"normalizeWhitespace": "all", "normalizeDate": "date"}
# Applied during element selection rather than on extracted text.
STRUCTURAL_TYPES = frozenset({"removeElement"})
IGNORED_TYPES = frozenset({"preserveCodeBlocks", "preserveElement", "handlePaywall"})

MONTH_TABLES: dict[str, dict[str, int]] = {
    "norwegian": {
        "januar": 1, "februar": 2, "mars": 3, "april": 4, "mai": 5, "juni": 6,
        "juli": 7, "august": 8, "september": 9, "oktober": 10, "november": 11,
        "desember": 12,
    },
    "danish": {
        "januar": 1, "februar": 2, "marts": 3, "april": 4, "maj": 5, "juni": 6,
        "juli": 7, "august": 8, "september": 9, "oktober": 10, "november": 11,
        "december": 12,
    },
    "swedish": {
        "januari": 1, "februari": 2, "mars": 3, "april": 4, "maj": 5, "juni": 6,
        "juli": 7, "augusti": 8, "september": 9, "oktober": 10, "november": 11,
        "december": 12,
    },
    "german": {
        "januar": 1, "februar": 2, "märz": 3, "april": 4, "mai": 5, "juni": 6,
        "juli": 7, "august": 8, "september": 9, "oktober": 10, "november": 11,
        "dezember": 12,
    },
    "english": {
        "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
        "july": 7, "august": 8, "september": 9, "october": 10, "november": 11,
        "december": 12,
    },
}

_DAY_MONTH_YEAR_RE = re.compile(r"(\d{1,2})\.?\s*([^\W\d_]+)\.?,?\s*(\d{4})")


class TransformError(ValueError):
    """A content-processing entry that cannot be interpreted."""


def parse_transform(raw: Mapping[str, Any]) -> ContentTransform:
    kind = raw.get("type")
    if not isinstance(kind, str) or not kind:
        raise TransformError("transform is missing a type")
    if kind not in TRANSFORMS and kind not in STRUCTURAL_TYPES and kind not in IGNORED_TYPES:
        raise TransformError(f"unknown transform type: {kind}")

    scope = raw.get("scope") or DEFAULT_SCOPES.get(kind, "content")
    if scope not in SCOPES:
        raise TransformError(f"{kind}: invalid scope {scope!r}")

    pattern = _optional_str(raw.get("pattern"))
    find = _optional_str(raw.get("find"))
    replace = raw.get("replace")
    date_format = _optional_str(raw.get("format"))
    selector = _optional_str(raw.get("selector"))

    if kind == "removePhrase":
        if not pattern:
            raise TransformError("removePhrase requires a pattern")
        _compile(pattern, kind)
    elif kind == "replaceText":
        find = find or pattern
        if not find:
            raise TransformError("replaceText requires find")
        _compile(find, kind)
        replace = "" if replace is None else str(replace)
    elif kind == "normalizeDate":
        if pattern:
            _compile(pattern, kind)
        if date_format and date_format.lower() not in MONTH_TABLES:
            raise TransformError(f"normalizeDate: unknown format {date_format!r}")
    elif kind == "removeElement" and not selector:
        raise TransformError("removeElement requires a selector")

    return ContentTransform(
        type=kind,
        scope=scope,
        pattern=pattern,
        find=find,
        replace=None if replace is None else str(replace),
        format=date_format.lower() if date_format else None,
        selector=selector,
    )


def apply_transforms(
    content: ExtractedContent,
    transforms: tuple[ContentTransform, ...],
    log: EventLog = null_event_log,
) -> list[str]:
    """Run text transforms in declared order; a failing transform is skipped."""
    applied: list[str] = []
    for transform in transforms:
        if transform.type not in TRANSFORMS:
            continue
        try:
            TRANSFORMS.get(transform.type)(content, transform)
        except Exception as exc:
            log(
                "transform.failed",
                {"level": "warning", "type": transform.type, "error": str(exc)},
            )
            continue
        applied.append(transform.describe())
    if content.provenance is not None:
        content.provenance.processing_applied.extend(applied)
    return applied


def scoped_fields(scope: str) -> tuple[str, ...]:
    if scope == "all":
        return ("content", "title", "author")
    return (scope,)


@TRANSFORMS.decorator("removePhrase")
def remove_phrase(content: ExtractedContent, transform: ContentTransform) -> None:
    regex = _compile(transform.pattern or "", transform.type)
    for name in scoped_fields(transform.scope):
        value = getattr(content, name)
        if value:
            setattr(content, name, regex.sub("", value).strip())


@TRANSFORMS.decorator("replaceText")
def replace_text(content: ExtractedContent, transform: ContentTransform) -> None:
    regex = _compile(transform.find or "", transform.type)
    for name in scoped_fields(transform.scope):
        value = getattr(content, name)
        if value:
            setattr(content, name, regex.sub(transform.replace or "", value))


@TRANSFORMS.decorator("normalizeDate")
def normalize_date(content: ExtractedContent, transform: ContentTransform) -> None:
    if not content.date:
        return
    if transform.pattern and not re.search(transform.pattern, content.date):
        return
    content.date = to_iso_date(content.date, transform.format or "norwegian")


@TRANSFORMS.decorator("normalizeWhitespace")
def normalize_whitespace(content: ExtractedContent, transform: ContentTransform) -> None:
    for name in scoped_fields(transform.scope):
        value = getattr(content, name)
        if value:
            setattr(content, name, collapse_whitespace(value))


def to_iso_date(value: str, table: str = "norwegian") -> str:
    """Convert ``"15. januar 2024"`` style dates to ``"2024-01-15"``.

    Input that does not match, or names an unknown month, is returned unchanged.
    """
    months = MONTH_TABLES.get(table, {})
    match = _DAY_MONTH_YEAR_RE.search(value)
    if not match:
        return value
    day, month_name, year = match.groups()
    month = months.get(month_name.lower())
    if month is None:
        return value
    return f"{year}-{month:02d}-{int(day):02d}"


def _compile(pattern: str, kind: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        raise TransformError(f"{kind}: invalid pattern {pattern!r}: {exc}") from exc


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None
