# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Playwright browser session for live page capture.

Launches Chromium, navigates or loads raw HTML, and captures the current
page into a PageDocument: serialized HTML plus each element's bounding rect
and the computed style properties the snapshot reads.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from .config import DEFAULT_NAV_TIMEOUT_MS, DEFAULT_VIEWPORT, Settings
from .document import CAPTURE_INDEX_ATTR, PageDocument
from .errors import CaptureError

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en-US"
MAX_CAPTURE_ELEMENTS = 20_000

# Stamps a capture index on every element (document order, capped), reads
# geometry and computed style by index, serializes, then removes the stamps.
_CAPTURE_JS = """([attr, maxElements]) => {
  const props = ['color', 'backgroundColor', 'borderColor', 'fontFamily', 'fontSize', 'lineHeight', 'display'];
  const elements = Array.from(document.querySelectorAll('*')).slice(0, maxElements);
  const rects = [];
  const styles = [];
  elements.forEach((el, idx) => {
    el.setAttribute(attr, String(idx));
    const r = el.getBoundingClientRect();
    rects.push([r.x, r.y, r.width, r.height]);
    const cs = getComputedStyle(el);
    const style = {};
    for (const p of props) style[p] = cs[p] || '';
    styles.push(style);
  });
  const html = document.documentElement ? document.documentElement.outerHTML : '';
  elements.forEach((el) => el.removeAttribute(attr));
  return {
    html,
    url: window.location.href,
    title: document.title,
    viewport: {width: window.innerWidth, height: window.innerHeight},
    rects,
    styles,
  };
}"""


@dataclass
class BrowserConfig:
    """Browser launch configuration."""

    headless: bool = True
    locale: str = DEFAULT_LOCALE
    viewport_width: int = DEFAULT_VIEWPORT[0]
    viewport_height: int = DEFAULT_VIEWPORT[1]
    timeout_ms: int = DEFAULT_NAV_TIMEOUT_MS
    wait_until: str = "load"

    @classmethod
    def from_settings(cls, settings: Settings) -> BrowserConfig:
        return cls(
            headless=settings.headless,
            viewport_width=settings.viewport_width,
            viewport_height=settings.viewport_height,
            timeout_ms=settings.nav_timeout_ms,
        )


def chromium_launch_args(config: BrowserConfig) -> list[str]:
    return [
        "--disable-blink-features=AutomationControlled",
        f"--lang={config.locale}",
        "--disable-extensions",
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--no-first-run",
    ]


async def capture_document(page: Page, *, max_elements: int = MAX_CAPTURE_ELEMENTS) -> PageDocument:
    """Capture *page* into a PageDocument.

    Raises:
        CaptureError: the page could not be evaluated or returned no HTML.
    """
    try:
        payload: Any = await page.evaluate(_CAPTURE_JS, [CAPTURE_INDEX_ATTR, max_elements])
    except Exception as exc:
        raise CaptureError(f"Page capture failed: {exc}") from exc
    if not isinstance(payload, dict) or not payload.get("html"):
        raise CaptureError("Page capture returned no HTML")
    document = PageDocument.from_capture(payload)
    logger.debug(
        "Captured %s: %d chars HTML, %d elements",
        document.location.href,
        len(payload["html"]),
        len(payload.get("rects") or []),
    )
    return document


class BrowserSession:
    """Owns one Chromium instance, one context and one page."""

    def __init__(self, config: BrowserConfig | None = None):
        self.config = config or BrowserConfig()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session not started. Use async with or call start().")
        return self._page

    async def start(self) -> None:
        """Launch browser and create the initial page."""
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=chromium_launch_args(self.config),
            )
        except Exception as exc:
            await self.stop()
            if "executable doesn't exist" in str(exc).lower():
                raise CaptureError("Chromium is not installed. Please run: playwright install chromium") from exc
            raise CaptureError(f"Could not launch Chromium: {exc}") from exc
        self._context = await self._browser.new_context(
            viewport={"width": self.config.viewport_width, "height": self.config.viewport_height},
            locale=self.config.locale,
            service_workers="block",
            accept_downloads=False,
        )
        self._page = await self._context.new_page()
        logger.info("Browser session started (headless=%s)", self.config.headless)

    async def stop(self) -> None:
        """Close everything. Safe to call on a crashed or half-started session."""
        if self._context:
            with suppress(Exception):
                await self._context.close()
            self._context = None
        self._page = None
        if self._browser:
            with suppress(Exception):
                await self._browser.close()
            self._browser = None
        if self._playwright:
            with suppress(Exception):
                await self._playwright.stop()
            self._playwright = None
        logger.info("Browser session stopped")

    async def __aenter__(self) -> BrowserSession:
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()

    async def navigate(self, url: str) -> int | None:
        """Navigate to *url*; returns the HTTP status when there is a response."""
        try:
            response = await self.page.goto(url, wait_until=self.config.wait_until, timeout=self.config.timeout_ms)
        except Exception as exc:
            raise CaptureError(f"Navigation to {url} failed: {exc}") from exc
        status = response.status if response else None
        logger.info("Navigated to %s (status=%s)", url, status)
        return status

    async def load_html(self, html: str) -> None:
        """Load raw HTML content directly (offline mode)."""
        await self.page.set_content(html, wait_until="domcontentloaded")

    async def capture(self) -> PageDocument:
        return await capture_document(self.page)


@asynccontextmanager
async def create_session(config: BrowserConfig | None = None) -> AsyncGenerator[BrowserSession, None]:
    """Context manager to create and manage a browser session."""
    session = BrowserSession(config)
    await session.start()
    try:
        yield session
    finally:
        await session.stop()
