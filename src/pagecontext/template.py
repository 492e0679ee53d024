# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Prompt templates filled from a page context snapshot.

Templates reference page data with ``{{ name }}`` placeholders. Names are
case- and punctuation-insensitive and several aliases resolve to the same
variable (``{{pageContent}}`` and ``{{ content }}`` are one variable).

Token usage is estimated at four characters per token. Each variable is
first clipped to its own cap; if the variables together still exceed the
dynamic budget, the least important ones (highest priority number) shrink
first, never below their minimum.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable

from . import PageContextSnapshot
from .text import TRUNCATION_MARKER, truncate_text

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
MAX_TOKEN_BUDGET = 256_000
DEFAULT_PRELOAD_TOKEN_CAP = 64_000
DEFAULT_CONTEXT_TOKEN_CAP = 128_000
MAX_SELECTION_CHARS = 12_000

PLACEHOLDER_RE = re.compile(r"{{\s*([a-zA-Z0-9_.-]+)\s*}}")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")

TEMPLATE_VARIABLES = (
    "selection",
    "content",
    "domTree",
    "title",
    "url",
    "description",
    "language",
    "headings",
    "links",
    "interactiveElements",
    "styleSummary",
    "extractionMethod",
    "fullHtml",
    "bodyHtml",
)

_ALIASES = {
    "selection": "selection",
    "selectedtext": "selection",
    "content": "content",
    "pagecontent": "content",
    "domtree": "domtree",
    "dom": "domtree",
    "title": "title",
    "url": "url",
    "description": "description",
    "language": "language",
    "lang": "language",
    "headings": "headings",
    "links": "links",
    "interactiveelements": "interactiveelements",
    "interactives": "interactiveelements",
    "stylesummary": "stylesummary",
    "extractionmethod": "extractionmethod",
    "extractormethod": "extractionmethod",
    "fullhtml": "fullhtml",
    "html": "fullhtml",
    "bodyhtml": "bodyhtml",
}

# Higher numbers shrink first.
_PRIORITY = {
    "selection": 1,
    "content": 2,
    "domtree": 3,
    "title": 1,
    "url": 1,
    "description": 2,
    "language": 1,
    "headings": 4,
    "links": 5,
    "interactiveelements": 3,
    "stylesummary": 2,
    "extractionmethod": 3,
    "fullhtml": 10,
    "bodyhtml": 8,
}
_DEFAULT_PRIORITY = 6

_MINIMUM_TOKENS = {
    "selection": 64,
    "content": 128,
    "domtree": 96,
    "stylesummary": 80,
    "interactiveelements": 64,
}

_INITIAL_TOKEN_CAP = {
    "selection": 3000,
    "content": 4500,
    "domtree": 3000,
    "title": 128,
    "url": 128,
    "description": 256,
    "language": 64,
    "headings": 512,
    "links": 900,
    "interactiveelements": 2000,
    "stylesummary": 2500,
    "extractionmethod": 96,
    "fullhtml": 10000,
    "bodyhtml": 7000,
}

# Character caps applied when reading each field off the snapshot.
_FIELD_CHAR_CAP = {
    "content": 18_000,
    "domtree": 24_000,
    "title": 300,
    "url": 500,
    "description": 600,
    "language": 40,
    "headings": 1800,
    "links": 4000,
    "interactiveelements": 12_000,
    "stylesummary": 14_000,
    "extractionmethod": 120,
    "fullhtml": 50_000,
    "bodyhtml": 35_000,
}


# ── Token budget helpers ─────────────────────────────────────────────


def estimate_token_count(text: object, chars_per_token: float = CHARS_PER_TOKEN) -> int:
    """Rough token count: ``ceil(len / chars_per_token)``, at least 1 for non-empty text."""
    if not isinstance(text, str) or not text:
        return 0
    if chars_per_token <= 0:
        chars_per_token = CHARS_PER_TOKEN
    return max(1, math.ceil(len(text) / chars_per_token))


def truncate_to_token_budget(
    text: object,
    max_tokens: float,
    *,
    suffix: str = TRUNCATION_MARKER,
    chars_per_token: float = CHARS_PER_TOKEN,
) -> str:
    """Cut *text* to roughly *max_tokens* tokens, suffix included.

    A budget too small to hold the suffix gives a bare prefix instead.
    """
    if not isinstance(text, str) or not text or not max_tokens or max_tokens <= 0:
        return ""
    if chars_per_token <= 0:
        chars_per_token = CHARS_PER_TOKEN
    max_chars = max(0, math.floor(max_tokens * chars_per_token))
    if len(text) <= max_chars:
        return text
    if max_chars <= len(suffix) + 1:
        return text[:max_chars]
    return text[: max_chars - len(suffix)] + suffix


def clamp_token_budget(value: object, minimum: int, maximum: int, fallback: int) -> int:
    """Floor *value* into ``[minimum, maximum]``; non-numeric input gives *fallback*."""
    if isinstance(value, bool):
        return fallback
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(parsed):
        return fallback
    return min(maximum, max(minimum, math.floor(parsed)))


# ── Variables ────────────────────────────────────────────────────────


def canonical_variable(raw_name: str) -> str | None:
    """``"Page-Content"`` → ``"content"``; unknown names give None."""
    return _ALIASES.get(_NON_ALNUM_RE.sub("", raw_name.strip().lower()))


def extract_template_variables(template: object) -> list[str]:
    """Canonical variables referenced by *template*, in first-appearance order."""
    if not isinstance(template, str) or "{{" not in template:
        return []
    found: list[str] = []
    for match in PLACEHOLDER_RE.finditer(template):
        name = canonical_variable(match.group(1))
        if name and name not in found:
            found.append(name)
    return found


def _headings_value(snapshot: PageContextSnapshot) -> str:
    if snapshot.design.heading_preview:
        return "\n".join(
            f"{index}. {truncate_text(value, 140)}" for index, value in enumerate(snapshot.design.heading_preview, 1)
        )
    return snapshot.headings


def _providers(snapshot: PageContextSnapshot, selection: str, allow_full_html: bool) -> dict[str, Callable[[], str]]:
    return {
        "selection": lambda: truncate_text(selection, MAX_SELECTION_CHARS),
        "content": lambda: snapshot.content,
        "domtree": lambda: snapshot.dom_tree,
        "title": lambda: snapshot.title,
        "url": lambda: snapshot.url,
        "description": lambda: snapshot.description,
        "language": lambda: snapshot.language,
        "headings": lambda: _headings_value(snapshot),
        "links": lambda: snapshot.links,
        "interactiveelements": lambda: snapshot.interactive_elements,
        "stylesummary": lambda: snapshot.style_summary,
        "extractionmethod": lambda: snapshot.extraction.method,
        "fullhtml": lambda: (snapshot.full_html or "") if allow_full_html else "",
        "bodyhtml": lambda: (snapshot.body_html or "") if allow_full_html else "",
    }


def _shrink_order(keys: list[str]) -> list[str]:
    return sorted(keys, key=lambda key: (-_PRIORITY.get(key, _DEFAULT_PRIORITY), key))


def enforce_variable_budget(values: dict[str, str], keys: list[str], total_token_cap: int) -> dict[str, str]:
    """Shrink variables in priority order until their total fits *total_token_cap*."""
    cap = clamp_token_budget(total_token_cap, 1, MAX_TOKEN_BUDGET, total_token_cap)
    result = dict(values)

    def total_tokens() -> int:
        return sum(estimate_token_count(result.get(key, "")) for key in keys)

    total = total_tokens()
    if total <= cap:
        return result

    for key in _shrink_order(keys):
        if total <= cap:
            break
        current = result.get(key, "")
        if not current:
            continue
        current_tokens = estimate_token_count(current)
        minimum = _MINIMUM_TOKENS.get(key, 0)
        if current_tokens <= minimum:
            continue
        remove = min(current_tokens - minimum, total - cap)
        result[key] = truncate_to_token_budget(current, max(minimum, current_tokens - remove))
        total = total_tokens()
    return result


def render_prompt_template(
    template: object,
    snapshot: PageContextSnapshot | None,
    *,
    selection: str = "",
    allow_full_html: bool = True,
    preload_token_cap: object = None,
    context_token_cap: object = None,
) -> str:
    """Substitute snapshot fields into *template* within a token budget.

    Args:
        template: text with ``{{ name }}`` placeholders
        snapshot: page snapshot supplying the values (None gives empty values)
        selection: text the user has selected on the page
        allow_full_html: when False, ``fullHtml``/``bodyHtml`` render empty
        preload_token_cap: budget for all substituted values (1000..256000)
        context_token_cap: budget for the whole rendered prompt (1000..256000)

    Unknown placeholders are left as written.
    """
    if not isinstance(template, str) or "{{" not in template:
        return template if isinstance(template, str) else ""
    keys = extract_template_variables(template)
    if not keys:
        return template

    preload_cap = clamp_token_budget(preload_token_cap, 1000, MAX_TOKEN_BUDGET, DEFAULT_PRELOAD_TOKEN_CAP)
    context_cap = clamp_token_budget(context_token_cap, 1000, MAX_TOKEN_BUDGET, DEFAULT_CONTEXT_TOKEN_CAP)

    providers = _providers(snapshot, selection, allow_full_html) if snapshot is not None else {}
    values: dict[str, str] = {}
    for key in keys:
        provider = providers.get(key)
        if provider is None:
            values[key] = truncate_text(selection, MAX_SELECTION_CHARS) if key == "selection" else ""
            continue
        value = truncate_text(provider(), _FIELD_CHAR_CAP.get(key, MAX_SELECTION_CHARS))
        values[key] = truncate_to_token_budget(value, _INITIAL_TOKEN_CAP[key]) if value else ""

    static_tokens = estimate_token_count(PLACEHOLDER_RE.sub("", template))
    dynamic_budget = min(preload_cap, max(1, context_cap - static_tokens))
    values = enforce_variable_budget(values, keys, dynamic_budget)

    def _substitute(match: re.Match[str]) -> str:
        name = canonical_variable(match.group(1))
        if name is None:
            return match.group(0)
        return values.get(name, "")

    rendered = PLACEHOLDER_RE.sub(_substitute, template)
    if estimate_token_count(rendered) <= context_cap:
        return rendered
    logger.debug("Rendered prompt exceeds %d tokens, truncating", context_cap)
    return truncate_to_token_budget(rendered, context_cap)
