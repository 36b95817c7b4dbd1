from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from article_cascade.models import (
    FIELDS,
    ExtractedContent,
    ExtractionProvenance,
    Segment,
    SiteRule,
)
from article_cascade.page import Element, Page, query_first
from article_cascade.reporting.logging import EventLog, log_event
from article_cascade.rules.processing import STRUCTURAL_TYPES, apply_transforms

BESPOKE_CONFIDENCE = 0.95
MIN_FRAGMENT_CHARS = 10


@dataclass
class FieldOutcome:
    """Which selector produced a field, and which ones were tried for it."""

    name: str
    tried: tuple[str, ...]
    selector: str | None = None

    @property
    def missed(self) -> tuple[str, ...]:
        """Selectors tried before the winner, or all of them when none matched."""
        if self.selector is None:
            return self.tried
        if self.selector not in self.tried:
            return ()
        return self.tried[: self.tried.index(self.selector)]


@dataclass
class RuleExtraction:
    data: ExtractedContent
    outcomes: list[FieldOutcome] = field(default_factory=list)

    @property
    def selectors_used(self) -> dict[str, str]:
        return {outcome.name: outcome.selector for outcome in self.outcomes if outcome.selector}


@dataclass
class RuleBasedExtractor:
    """Extract fields with a bespoke rule's ordered selector lists."""

    log: EventLog = log_event
    confidence: float = BESPOKE_CONFIDENCE
    min_fragment_chars: int = MIN_FRAGMENT_CHARS

    async def extract(self, page: Page, rule: SiteRule) -> RuleExtraction:
        data = ExtractedContent(
            provenance=ExtractionProvenance(
                rule_used=rule.id,
                extraction_method="bespoke",
                confidence=self.confidence,
            )
        )
        extraction = RuleExtraction(data=data)
        exclusions = exclusion_selectors(rule)
        content_root = await self._content_root(page, rule)

        for name in FIELDS:
            selectors = rule.selectors.for_field(name)
            if not selectors:
                continue
            outcome = FieldOutcome(name=name, tried=selectors)
            extraction.outcomes.append(outcome)
            # Content is looked up inside the rule's container first, then page-wide.
            roots = (content_root, page) if name == "content" and content_root is not page else (page,)
            try:
                for root in roots:
                    value, outcome.selector = await self.extract_field(root, name, selectors, exclusions)
                    if value:
                        break
            except Exception as exc:
                self.log(
                    "rule_extractor.field_failed",
                    {"level": "warning", "rule_id": rule.id, "field": name, "error": str(exc)},
                )
                continue
            setattr(data, name, value)

        for segment in rule.segments:
            try:
                value, _ = await self.extract_field(
                    page,
                    f"segment:{segment.name}",
                    (segment.selector,),
                    exclusions,
                    segment.extract_as,
                )
            except Exception as exc:
                self.log(
                    "rule_extractor.segment_failed",
                    {"level": "warning", "rule_id": rule.id, "segment": segment.name, "error": str(exc)},
                )
                continue
            if value:
                data.segments[segment.name] = Segment(
                    content=value, type=segment.type, extract_as=segment.extract_as
                )

        apply_transforms(data, rule.content_processing, self.log)
        return extraction

    async def extract_field(
        self,
        root: Page | Element,
        name: str,
        selectors: Sequence[str],
        exclusions: Sequence[str] = (),
        extract_as: str = "text",
    ) -> tuple[str | None, str | None]:
        """Try selectors in order; return the first non-empty value and its selector."""
        for selector in selectors:
            try:
                elements = await kept_elements(root, selector, exclusions)
            except Exception as exc:
                self.log(
                    "rule_extractor.selector_failed",
                    {"level": "warning", "field": name, "selector": selector, "error": str(exc)},
                )
                continue
            if not elements:
                continue
            if name == "content":
                parts: list[str] = []
                for element in elements:
                    text = (await element.text_content()).strip()
                    if len(text) > self.min_fragment_chars:
                        parts.append(text)
                value = "\n\n".join(parts)
            elif name == "date":
                value = await elements[0].get_attribute("datetime") or await elements[0].text_content()
            elif extract_as == "html":
                value = await elements[0].inner_html()
            else:
                value = await elements[0].text_content()
            value = (value or "").strip()
            if value:
                return value, selector
        return None, None

    async def _content_root(self, page: Page, rule: SiteRule) -> Page | Element:
        for selector in rule.selectors.container:
            try:
                container = await query_first(page, selector)
            except Exception as exc:
                self.log(
                    "rule_extractor.selector_failed",
                    {"level": "warning", "field": "container", "selector": selector, "error": str(exc)},
                )
                continue
            if container is not None:
                return container
        return page


def exclusion_selectors(rule: SiteRule) -> tuple[str, ...]:
    structural = tuple(
        transform.selector
        for transform in rule.content_processing
        if transform.type in STRUCTURAL_TYPES and transform.selector
    )
    return rule.exclusions + structural


async def kept_elements(
    root: Page | Element, selector: str, exclusions: Sequence[str]
) -> list[Element]:
    """Elements matching ``selector`` that are not inside an excluded element."""
    kept: list[Element] = []
    for element in await root.query_selector_all(selector):
        if await _is_excluded(element, exclusions):
            continue
        kept.append(element)
    return kept


async def _is_excluded(element: Element, exclusions: Sequence[str]) -> bool:
    for exclusion in exclusions:
        if await element.within(exclusion):
            return True
    return False
