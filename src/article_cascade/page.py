"""Page capability consumed by the detectors.

The extraction core only needs CSS queries, element text and attributes and
the current URL. ``SoupPage`` implements that over static HTML with
BeautifulSoup; ``fetchers.playwright_page.PlaywrightPage`` does the same for a
live browser page.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from bs4 import BeautifulSoup
from bs4.element import Tag


class Element(Protocol):
    async def text_content(self) -> str:
        ...

    async def get_attribute(self, name: str) -> str | None:
        ...

    async def inner_html(self) -> str:
        ...

    async def query_selector_all(self, selector: str) -> Sequence["Element"]:
        ...

    async def within(self, selector: str) -> bool:
        """True when this element or one of its ancestors matches ``selector``."""
        ...


class Page(Protocol):
    @property
    def url(self) -> str:
        ...

    async def query_selector_all(self, selector: str) -> Sequence[Element]:
        ...


async def query_first(root: Page | Element, selector: str) -> Element | None:
    elements = await root.query_selector_all(selector)
    return elements[0] if elements else None


async def first_text(root: Page | Element, selector: str) -> str | None:
    element = await query_first(root, selector)
    if element is None:
        return None
    text = (await element.text_content()).strip()
    return text or None


async def first_attribute(root: Page | Element, selector: str, name: str) -> str | None:
    element = await query_first(root, selector)
    if element is None:
        return None
    value = await element.get_attribute(name)
    return value.strip() if value and value.strip() else None


async def count(root: Page | Element, selector: str) -> int:
    return len(await root.query_selector_all(selector))


class SoupElement:
    __slots__ = ("tag",)

    def __init__(self, tag: Tag) -> None:
        self.tag = tag

    async def text_content(self) -> str:
        text = self.tag.get_text()
        if not text and self.tag.string is not None:
            text = str(self.tag.string)
        return text

    async def get_attribute(self, name: str) -> str | None:
        value = self.tag.get(name)
        if value is None:
            return None
        if isinstance(value, list):
            return " ".join(value)
        return str(value)

    async def inner_html(self) -> str:
        return self.tag.decode_contents()

    async def query_selector_all(self, selector: str) -> list["SoupElement"]:
        return [SoupElement(tag) for tag in self.tag.select(selector)]

    async def within(self, selector: str) -> bool:
        return self.tag.css.closest(selector) is not None

    def __repr__(self) -> str:
        return f"SoupElement(<{self.tag.name}>)"


class SoupPage:
    """Static HTML page backed by BeautifulSoup's CSS selector support."""

    def __init__(self, html: str, url: str, parser: str = "html.parser") -> None:
        self.soup = BeautifulSoup(html, parser)
        self._url = url

    @property
    def url(self) -> str:
        return self._url

    async def query_selector_all(self, selector: str) -> list[SoupElement]:
        return [SoupElement(tag) for tag in self.soup.select(selector)]
