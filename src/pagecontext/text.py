# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""String post-processing shared by extraction and snapshot building.

- post_process_text(): the fixed cleanup pass applied to all extracted content
- truncate_text(): uniform size bound with a literal truncation marker
- normalize_color(): drops fully transparent colour values
- split_selectors(): comma-list parsing for rule selector fields
"""

from __future__ import annotations


TRUNCATION_MARKER = "\n...[truncated]"

# Removed literally, in this order, in a single pass each.
_POST_PROCESS_REMOVALS = ("  ", "\t", "\n\n", ",,")

_TRANSPARENT_COLORS = frozenset({"transparent", "rgba(0, 0, 0, 0)"})


def post_process_text(text: str) -> str:
    """Trim, then strip double spaces, tabs, blank lines and doubled commas.

    Each pattern is removed once, left to right without overlap, so runs of
    three or more are not fully collapsed: ``"a   b"`` becomes ``"a b"``.
    Downstream consumers depend on this exact output.
    """
    if not text:
        return ""
    text = text.strip()
    for pattern in _POST_PROCESS_REMOVALS:
        text = text.replace(pattern, "")
    return text


def truncate_text(value: object, max_len: int = 400) -> str:
    """Trim *value* and bound it to *max_len* characters.

    Non-strings and blank strings give ``""``. Longer values keep their first
    *max_len* characters followed by :data:`TRUNCATION_MARKER`.
    """
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        return ""
    if len(text) > max_len:
        return f"{text[:max_len]}{TRUNCATION_MARKER}"
    return text


def normalize_color(value: object) -> str:
    color = truncate_text(value, 64)
    if not color or color in _TRANSPARENT_COLORS:
        return ""
    return color


def split_selectors(selectors: str | None) -> list[str]:
    """Split a comma-separated selector list, dropping blanks.

    Commas inside selectors (``:is(a, b)``) are not supported; rule authors
    write one selector per comma-separated entry.
    """
    if not selectors:
        return []
    return [s.strip() for s in selectors.split(",") if s.strip()]
