# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for browser session configuration and page capture.

Uses mocked Playwright objects; does not require a running browser.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from pagecontext.browser_session import (
    DEFAULT_LOCALE,
    MAX_CAPTURE_ELEMENTS,
    BrowserConfig,
    BrowserSession,
    capture_document,
    chromium_launch_args,
    create_session,
)
from pagecontext.config import Settings
from pagecontext.document import CAPTURE_INDEX_ATTR
from pagecontext.errors import CaptureError

CAPTURED_HTML = (
    f'<html {CAPTURE_INDEX_ATTR}="0"><head {CAPTURE_INDEX_ATTR}="1"><title>Live</title></head>'
    f'<body {CAPTURE_INDEX_ATTR}="2"><main {CAPTURE_INDEX_ATTR}="3">Hello</main></body></html>'
)

PAYLOAD = {
    "html": CAPTURED_HTML,
    "url": "https://example.com/live",
    "title": "Live page",
    "viewport": {"width": 1024, "height": 768},
    "rects": [[0, 0, 1024, 2000], [0, 0, 0, 0], [0, 0, 1024, 2000], [10, 20, 800, 600]],
    "styles": [{}, {}, {"color": "rgb(0, 0, 0)"}, {"display": "block"}],
}


def _mock_page(payload=None, *, error=None):
    page = MagicMock()
    if error is not None:
        page.evaluate = AsyncMock(side_effect=error)
    else:
        page.evaluate = AsyncMock(return_value=payload)
    page.goto = AsyncMock()
    page.set_content = AsyncMock()
    return page


def _started_session(page) -> BrowserSession:
    session = BrowserSession()
    session._page = page
    return session


# ── BrowserConfig ──────────────────────────────────────────────────


class TestBrowserConfig:
    def test_defaults(self):
        cfg = BrowserConfig()
        assert cfg.headless is True
        assert cfg.locale == DEFAULT_LOCALE == "en-US"
        assert (cfg.viewport_width, cfg.viewport_height) == (1280, 800)
        assert cfg.timeout_ms == 30000
        assert cfg.wait_until == "load"

    def test_from_settings(self):
        settings = Settings(headless=False, viewport_width=1440, viewport_height=900, nav_timeout_ms=5000)
        cfg = BrowserConfig.from_settings(settings)
        assert cfg.headless is False
        assert (cfg.viewport_width, cfg.viewport_height) == (1440, 900)
        assert cfg.timeout_ms == 5000
        assert cfg.locale == DEFAULT_LOCALE

    def test_launch_args(self):
        args = chromium_launch_args(BrowserConfig(locale="de-DE"))
        assert "--lang=de-DE" in args
        assert "--disable-extensions" in args
        assert "--disable-blink-features=AutomationControlled" in args


# ── Property guards ────────────────────────────────────────────────


class TestPropertyGuards:
    def test_page_raises_before_start(self):
        with pytest.raises(RuntimeError, match="not started"):
            _ = BrowserSession().page

    def test_default_config(self):
        assert isinstance(BrowserSession().config, BrowserConfig)


# ── Capture ────────────────────────────────────────────────────────


class TestCaptureDocument:
    async def test_payload_becomes_document(self):
        page = _mock_page(PAYLOAD)
        doc = await capture_document(page)

        page.evaluate.assert_awaited_once()
        assert page.evaluate.await_args.args[1] == [CAPTURE_INDEX_ATTR, MAX_CAPTURE_ELEMENTS]
        assert doc.location.href == "https://example.com/live"
        assert doc.title == "Live page"
        assert (doc.viewport_width, doc.viewport_height) == (1024, 768)
        main = doc.query_selector("main")
        assert doc.area(main) == 480000
        assert doc.computed_style(main) == {"display": "block"}
        assert doc.computed_style(doc.body)["color"] == "rgb(0, 0, 0)"
        # Capture stamps do not leak into the document.
        assert CAPTURE_INDEX_ATTR not in doc.outer_html(doc.root)

    async def test_custom_element_cap(self):
        page = _mock_page(PAYLOAD)
        await capture_document(page, max_elements=10)
        assert page.evaluate.await_args.args[1] == [CAPTURE_INDEX_ATTR, 10]

    async def test_evaluate_failure(self):
        page = _mock_page(error=RuntimeError("Execution context was destroyed"))
        with pytest.raises(CaptureError, match="Execution context was destroyed"):
            await capture_document(page)

    @pytest.mark.parametrize("payload", [None, {}, {"html": ""}, "not a dict"])
    async def test_empty_payload(self, payload):
        with pytest.raises(CaptureError, match="no HTML"):
            await capture_document(_mock_page(payload))

    async def test_session_capture_uses_page(self):
        session = _started_session(_mock_page(PAYLOAD))
        doc = await session.capture()
        assert doc.text_of(doc.query_selector("main")) == "Hello"


# ── Navigation ─────────────────────────────────────────────────────


class TestNavigation:
    async def test_navigate_returns_status(self):
        page = _mock_page()
        page.goto.return_value = MagicMock(status=200)
        session = _started_session(page)

        assert await session.navigate("https://example.com/") == 200
        page.goto.assert_awaited_once_with("https://example.com/", wait_until="load", timeout=30000)

    async def test_navigate_without_response(self):
        page = _mock_page()
        page.goto.return_value = None
        assert await _started_session(page).navigate("about:blank") is None

    async def test_navigate_failure(self):
        page = _mock_page()
        page.goto.side_effect = TimeoutError("Timeout 30000ms exceeded")
        with pytest.raises(CaptureError, match="Navigation to https://slow.example failed"):
            await _started_session(page).navigate("https://slow.example")

    async def test_load_html(self):
        page = _mock_page()
        await _started_session(page).load_html("<p>x</p>")
        page.set_content.assert_awaited_once_with("<p>x</p>", wait_until="domcontentloaded")


# ── Lifecycle ──────────────────────────────────────────────────────


def _mock_playwright(*, launch_error=None):
    page = _mock_page(PAYLOAD)
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()
    pw = MagicMock()
    if launch_error is not None:
        pw.chromium.launch = AsyncMock(side_effect=launch_error)
    else:
        pw.chromium.launch = AsyncMock(return_value=browser)
    pw.stop = AsyncMock()
    starter = MagicMock()
    starter.start = AsyncMock(return_value=pw)
    return starter, pw, browser, context, page


class TestLifecycle:
    async def test_stop_before_start_is_safe(self):
        session = BrowserSession()
        await session.stop()
        await session.stop()

    async def test_start_and_stop(self, monkeypatch):
        starter, pw, browser, context, page = _mock_playwright()
        monkeypatch.setattr("pagecontext.browser_session.async_playwright", lambda: starter)

        async with BrowserSession(BrowserConfig(viewport_width=1024, viewport_height=600)) as session:
            assert session.page is page

        launch_kwargs = pw.chromium.launch.await_args.kwargs
        assert launch_kwargs["headless"] is True
        assert "--lang=en-US" in launch_kwargs["args"]
        context_kwargs = browser.new_context.await_args.kwargs
        assert context_kwargs["viewport"] == {"width": 1024, "height": 600}
        assert context_kwargs["locale"] == "en-US"
        context.close.assert_awaited_once()
        browser.close.assert_awaited_once()
        pw.stop.assert_awaited_once()
        with pytest.raises(RuntimeError):
            _ = session.page

    async def test_missing_chromium(self, monkeypatch):
        starter, pw, _, _, _ = _mock_playwright(
            launch_error=Exception("Executable doesn't exist at /ms-playwright/chromium/chrome")
        )
        monkeypatch.setattr("pagecontext.browser_session.async_playwright", lambda: starter)

        session = BrowserSession()
        with pytest.raises(CaptureError, match="playwright install chromium"):
            await session.start()
        pw.stop.assert_awaited_once()

    async def test_other_launch_failure(self, monkeypatch):
        starter, _, _, _, _ = _mock_playwright(launch_error=Exception("sandbox crashed"))
        monkeypatch.setattr("pagecontext.browser_session.async_playwright", lambda: starter)

        with pytest.raises(CaptureError, match="Could not launch Chromium: sandbox crashed"):
            await BrowserSession().start()

    async def test_create_session_stops_on_error(self, monkeypatch):
        starter, pw, browser, _, _ = _mock_playwright()
        monkeypatch.setattr("pagecontext.browser_session.async_playwright", lambda: starter)

        with pytest.raises(ValueError):
            async with create_session() as session:
                assert session.page is not None
                raise ValueError("boom")
        browser.close.assert_awaited_once()
        pw.stop.assert_awaited_once()
