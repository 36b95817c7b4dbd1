"""Live browser pages for JS-rendered sites.

Requires the ``playwright`` package and an installed browser
(``playwright install chromium``). No stealth or fingerprint evasion is
attempted.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from playwright.async_api import async_playwright

HEADLESS_ENV = "ARTICLE_CASCADE_PLAYWRIGHT_HEADLESS"


class PlaywrightElement:
    __slots__ = ("handle",)

    def __init__(self, handle: Any) -> None:
        self.handle = handle

    async def text_content(self) -> str:
        return await self.handle.text_content() or ""

    async def get_attribute(self, name: str) -> str | None:
        return await self.handle.get_attribute(name)

    async def inner_html(self) -> str:
        return await self.handle.inner_html()

    async def query_selector_all(self, selector: str) -> list["PlaywrightElement"]:
        return [PlaywrightElement(handle) for handle in await self.handle.query_selector_all(selector)]

    async def within(self, selector: str) -> bool:
        return await self.handle.evaluate("(el, sel) => el.closest(sel) !== null", selector)


class PlaywrightPage:
    def __init__(self, page: Any) -> None:
        self.page = page

    @property
    def url(self) -> str:
        return self.page.url

    async def query_selector_all(self, selector: str) -> list[PlaywrightElement]:
        return [PlaywrightElement(handle) for handle in await self.page.query_selector_all(selector)]


def resolve_headless(default: bool, env: dict[str, str] | None = None) -> bool:
    value = (env if env is not None else os.environ).get(HEADLESS_ENV)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"0", "false", "no", "off"}:
        return False
    if normalized in {"1", "true", "yes", "on"}:
        return True
    return default


@asynccontextmanager
async def open_page(
    url: str,
    *,
    browser: str = "chromium",
    headless: bool = True,
    timeout_s: float = 30.0,
    user_agent: str | None = None,
) -> AsyncIterator[PlaywrightPage]:
    async with async_playwright() as playwright:
        browser_type = getattr(playwright, browser)
        instance = await browser_type.launch(headless=resolve_headless(headless))
        try:
            page = await instance.new_page(user_agent=user_agent)
            await page.goto(url, wait_until="domcontentloaded", timeout=int(timeout_s * 1000))
            # Some sites hydrate content after domcontentloaded.
            await page.wait_for_timeout(750)
            yield PlaywrightPage(page)
        finally:
            await instance.close()
