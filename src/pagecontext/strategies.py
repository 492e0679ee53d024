# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Main-content extraction strategies.

Each strategy looks at the page independently and returns a
StrategyOutcome, or None when it has nothing to offer. The orchestrator in
``extractor.py`` decides the order. Only the largest-element heuristic is
guaranteed to produce content.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from lxml.cssselect import SelectorError
from lxml.html import HtmlElement

from .adapters import resolve_site_adapter
from .config import DEFAULT_SCRIPT_TIMEOUT
from .document import PageDocument
from .reader import PARSE_ERRORS, ArticleParser
from .scripts import ScriptRegistry, execute_custom_script
from .text import post_process_text, split_selectors

logger = logging.getLogger(__name__)

# Candidates must be strictly smaller than this share of the search root,
# which keeps full-page wrappers out of the running.
LARGEST_AREA_LIMIT = 0.8
# A nested candidate above this share of the outer winner replaces it.
NESTED_PREFERENCE_RATIO = 0.5

METHOD_CUSTOM_SCRIPT = "custom-script"
METHOD_SELECTORS = "selectors"
METHOD_SELECTORS_FAILED = "selectors-failed"
METHOD_BUILTIN_ADAPTER = "builtin-adapter"
METHOD_ARTICLE_TAG = "article-tag"
METHOD_READABILITY = "readability"
METHOD_LARGEST = "largest"
METHOD_SECOND_LARGEST = "second-largest"
METHOD_BODY = "document.body"


@dataclass(frozen=True, slots=True)
class StrategyOutcome:
    content: str
    method: str
    selector: str | None = None
    match_count: int | None = None
    site: str | None = None  # built-in adapter key


def _element_text(document: PageDocument, element: HtmlElement, exclude_selectors: str | None) -> str:
    skip = document.excluded_within(element, exclude_selectors)
    return document.text_of(element, skip)


def extract_by_selectors(
    document: PageDocument,
    selectors: str | None,
    exclude_selectors: str | None = None,
) -> StrategyOutcome | None:
    """Text of every element matched by the first productive selector.

    Selectors are tried in order. The first one that matches at least one
    element with non-blank text wins; pieces are joined by a blank line
    before normalization. Invalid selectors are logged and skipped.
    """
    for selector in split_selectors(selectors):
        try:
            elements = document.query_selector_all(selector)
        except SelectorError:
            logger.warning("Invalid selector %r", selector)
            continue
        if not elements:
            continue
        parts = []
        for element in elements:
            text = _element_text(document, element, exclude_selectors).strip()
            if text:
                parts.append(text)
        if parts:
            return StrategyOutcome(
                content=post_process_text("\n\n".join(parts)),
                method=METHOD_SELECTORS,
                selector=selector,
                match_count=len(elements),
            )
    return None


def extract_by_custom_script(
    document: PageDocument,
    script: str | None,
    *,
    registry: ScriptRegistry | None = None,
    timeout: float = DEFAULT_SCRIPT_TIMEOUT,
) -> StrategyOutcome | None:
    result = execute_custom_script(script or "", document, registry=registry, timeout=timeout)
    if not result:
        return None
    return StrategyOutcome(content=post_process_text(result), method=METHOD_CUSTOM_SCRIPT)


def extract_by_site_adapter(
    document: PageDocument,
    exclude_selectors: str | None = None,
    adapters: dict[str, tuple[str, ...]] | None = None,
) -> StrategyOutcome | None:
    match = resolve_site_adapter(document, adapters)
    if match is None:
        return None
    return StrategyOutcome(
        content=post_process_text(_element_text(document, match.element, exclude_selectors)),
        method=METHOD_BUILTIN_ADAPTER,
        selector=match.selectors[0],
        site=match.site,
    )


def extract_by_article_tag(document: PageDocument, exclude_selectors: str | None = None) -> StrategyOutcome | None:
    article = document.query_selector("article")
    if article is None:
        return None
    return StrategyOutcome(
        content=post_process_text(_element_text(document, article, exclude_selectors)),
        method=METHOD_ARTICLE_TAG,
        selector="article",
    )


def extract_by_readability(
    document: PageDocument,
    parser: ArticleParser,
    exclude_selectors: str | None = None,
) -> StrategyOutcome | None:
    """Article text from the parser, attempted only on readerable pages.

    Runs on a copy of the whole document with excluded elements removed.
    Parser failures count as a miss.
    """
    if not parser.is_readerable(document):
        return None
    clone = document.clone_without(exclude_selectors)
    html = PageDocument.outer_html(clone)
    try:
        article = parser.parse(html, url=document.location.href, keep_classes=True)
    except PARSE_ERRORS as exc:
        logger.warning("Readability parse failed despite readerable check: %s", exc)
        return None
    if article is None or not article.text_content:
        logger.debug("Readability returned no article text")
        return None
    return StrategyOutcome(content=post_process_text(article.text_content), method=METHOD_READABILITY)


def find_largest_element(document: PageDocument, root: HtmlElement | None) -> HtmlElement | None:
    """Largest element under *root* (pre-order) below the area limit.

    The first element reaching a new maximum wins ties. *root* itself can
    never qualify since its area is not below its own limit.
    """
    if root is None:
        return None
    limit = LARGEST_AREA_LIMIT * document.area(root)
    max_area = 0.0
    largest: HtmlElement | None = None
    stack = [root]
    while stack:
        node = stack.pop()
        area = document.area(node)
        if max_area < area < limit:
            max_area = area
            largest = node
        stack.extend(reversed(document.children(node)))
    return largest


def extract_by_largest_element(document: PageDocument, exclude_selectors: str | None = None) -> StrategyOutcome:
    """Text of the dominant content block; falls back to the body.

    Always returns an outcome, which makes it the terminal stage of every
    fallback chain.
    """
    body = document.body if document.body is not None else document.root
    largest = find_largest_element(document, body)
    nested = find_largest_element(document, largest)

    if largest is None:
        element, method = body, METHOD_BODY
    elif nested is not None and document.area(nested) > NESTED_PREFERENCE_RATIO * document.area(largest):
        element, method = nested, METHOD_SECOND_LARGEST
    else:
        element, method = largest, METHOD_LARGEST

    return StrategyOutcome(
        content=post_process_text(_element_text(document, element, exclude_selectors)),
        method=method,
    )
