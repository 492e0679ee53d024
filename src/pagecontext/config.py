# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Runtime settings resolved from ``PAGECONTEXT_*`` environment variables.

Leaf module. Malformed values fall back to defaults with a warning rather
than failing startup.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_SCRIPT_TIMEOUT = 2.0
DEFAULT_VIEWPORT = (1280, 800)
DEFAULT_NAV_TIMEOUT_MS = 30_000

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True, slots=True)
class Settings:
    """Process-wide settings. Construct via :meth:`from_env`."""

    script_timeout: float = DEFAULT_SCRIPT_TIMEOUT
    log_level: str = "INFO"
    log_json: bool = False
    headless: bool = True
    viewport_width: int = DEFAULT_VIEWPORT[0]
    viewport_height: int = DEFAULT_VIEWPORT[1]
    nav_timeout_ms: int = DEFAULT_NAV_TIMEOUT_MS

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        width, height = _parse_viewport(env.get("PAGECONTEXT_VIEWPORT", ""))
        return cls(
            script_timeout=_parse_float(env.get("PAGECONTEXT_SCRIPT_TIMEOUT", ""), DEFAULT_SCRIPT_TIMEOUT),
            log_level=env.get("PAGECONTEXT_LOG_LEVEL", "").strip().upper() or "INFO",
            log_json=_parse_bool(env.get("PAGECONTEXT_LOG_JSON", ""), False),
            headless=_parse_bool(env.get("PAGECONTEXT_HEADLESS", ""), True),
            viewport_width=width,
            viewport_height=height,
            nav_timeout_ms=int(_parse_float(env.get("PAGECONTEXT_NAV_TIMEOUT_MS", ""), DEFAULT_NAV_TIMEOUT_MS)),
        )


def _parse_bool(raw: str, default: bool) -> bool:
    value = raw.strip().lower()
    if not value:
        return default
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    logger.warning("Ignoring unrecognised boolean setting %r", raw)
    return default


def _parse_float(raw: str, default: float) -> float:
    value = raw.strip()
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        logger.warning("Ignoring non-numeric setting %r", raw)
        return default
    if parsed <= 0:
        logger.warning("Ignoring non-positive setting %r", raw)
        return default
    return parsed


def _parse_viewport(raw: str) -> tuple[int, int]:
    """Parse ``WIDTHxHEIGHT`` (e.g. ``1440x900``)."""
    value = raw.strip().lower()
    if not value:
        return DEFAULT_VIEWPORT
    width, sep, height = value.partition("x")
    if sep and width.isdigit() and height.isdigit() and int(width) > 0 and int(height) > 0:
        return int(width), int(height)
    logger.warning("Ignoring malformed viewport %r (expected WIDTHxHEIGHT)", raw)
    return DEFAULT_VIEWPORT
