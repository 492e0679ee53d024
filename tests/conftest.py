# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import pagecontext  # noqa: F401
except ImportError:
    raise ImportError("pagecontext is not installed. Run: pip install -e '.[dev]'") from None

import logging

import pytest
import structlog

from pagecontext.logging_config import NOISY_LOGGERS
from pagecontext.scripts import ScriptRegistry


@pytest.fixture(autouse=True)
def _block_real_browser(request, monkeypatch):
    """Safety net: prevent real Chromium launches in unit tests.

    Tests that drive a real browser opt out with ``@pytest.mark.network``.
    """
    if "network" in request.keywords:
        return

    def _no_real_playwright():
        raise RuntimeError(
            "Test tried to start a real Playwright. Patch 'pagecontext.browser_session.async_playwright'."
        )

    monkeypatch.setattr("pagecontext.browser_session.async_playwright", _no_real_playwright)


@pytest.fixture
def registry() -> ScriptRegistry:
    """Isolated custom script registry."""
    return ScriptRegistry()


@pytest.fixture
def reset_logging():
    """Restore root logger and structlog state after a test reconfigures them."""
    root = logging.getLogger()
    old_handlers = root.handlers[:]
    old_level = root.level
    noisy = {name: logging.getLogger(name).level for name in NOISY_LOGGERS}
    yield
    root.handlers = old_handlers
    root.setLevel(old_level)
    for name, level in noisy.items():
        logging.getLogger(name).setLevel(level)
    structlog.reset_defaults()
