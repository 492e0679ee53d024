# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Article extraction capability: reachability heuristic + readability parser.

The pipeline depends only on the ArticleParser protocol. The default
implementation pairs a "probably readerable" check (a port of the scoring
used by Mozilla's reader mode) with readability-lxml for the parse itself.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Protocol

import lxml.html
from lxml import etree
from readability import Document
from readability.readability import Unparseable

from .document import PageDocument

logger = logging.getLogger(__name__)

_UNLIKELY_CANDIDATES_RE = re.compile(
    r"-ad-|ai2html|banner|breadcrumbs|combx|comment|community|cover-wrap|disqus|extra|footer|gdpr|header"
    r"|legends|menu|related|remark|replies|rss|shoutbox|sidebar|skyscraper|social|sponsor|supplemental"
    r"|ad-break|agegate|pagination|pager|popup|yom-remote",
    re.IGNORECASE,
)
_MAYBE_CANDIDATE_RE = re.compile(r"and|article|body|column|content|main|mathjax|shadow", re.IGNORECASE)

READERABLE_MIN_CONTENT_LENGTH = 140
READERABLE_MIN_SCORE = 20.0


@dataclass(frozen=True, slots=True)
class Article:
    """Parsed article: plain text plus the cleaned article HTML."""

    title: str
    text_content: str
    html: str = ""


class ArticleParser(Protocol):
    def is_readerable(self, document: PageDocument) -> bool: ...

    def parse(self, html: str, *, url: str = "", keep_classes: bool = True) -> Article | None: ...


def is_probably_readerable(
    document: PageDocument,
    *,
    min_content_length: int = READERABLE_MIN_CONTENT_LENGTH,
    min_score: float = READERABLE_MIN_SCORE,
) -> bool:
    """Cheap check for whether article extraction is worth attempting.

    Scores visible ``p``/``pre``/``article`` nodes (and parents of
    ``div > br``) by ``sqrt(len - min_content_length)`` and stops as soon
    as the running score passes *min_score*.
    """
    nodes = list(document.query_selector_all("p, pre, article"))
    seen = set(nodes)
    for br in document.query_selector_all("div > br"):
        parent = br.getparent()
        if parent is not None and parent not in seen:
            seen.add(parent)
            nodes.append(parent)

    score = 0.0
    for node in nodes:
        if not _is_node_visible(document, node):
            continue
        match_string = f"{node.get('class', '')} {node.get('id', '')}"
        if _UNLIKELY_CANDIDATES_RE.search(match_string) and not _MAYBE_CANDIDATE_RE.search(match_string):
            continue
        if node.tag == "p" and any(a.tag == "li" for a in node.iterancestors()):
            continue
        length = len(document.text_content(node).strip())
        if length < min_content_length:
            continue
        score += math.sqrt(length - min_content_length)
        if score > min_score:
            return True
    return False


def _is_node_visible(document: PageDocument, node: lxml.html.HtmlElement) -> bool:
    if document.is_hidden(node):
        return False
    if node.get("aria-hidden") == "true":
        return "fallback-image" in node.get("class", "")
    return True


class ReadabilityParser:
    """ArticleParser backed by readability-lxml."""

    def __init__(self, *, min_text_length: int = 25, retry_length: int = 250) -> None:
        self.min_text_length = min_text_length
        self.retry_length = retry_length

    def is_readerable(self, document: PageDocument) -> bool:
        return is_probably_readerable(document)

    def parse(self, html: str, *, url: str = "", keep_classes: bool = True) -> Article | None:
        """Run readability over *html*. Returns None when nothing usable is found.

        ``keep_classes`` only affects :attr:`Article.html`; the text is the same.

        Raises:
            Unparseable: readability could not make sense of the document.
        """
        doc = Document(
            html,
            url=url or None,
            min_text_length=self.min_text_length,
            retry_length=self.retry_length,
        )
        summary = doc.summary(html_partial=True)
        if not summary or not summary.strip():
            return None
        try:
            fragment = lxml.html.fromstring(summary)
        except etree.ParserError:
            return None
        if not keep_classes:
            for el in fragment.iter():
                if isinstance(el.tag, str):
                    el.attrib.pop("class", None)
        text = fragment.text_content()
        if not text.strip():
            return None
        return Article(
            title=doc.short_title() or "",
            text_content=text,
            html=lxml.html.tostring(fragment, encoding="unicode"),
        )


PARSE_ERRORS: tuple[type[Exception], ...] = (Unparseable, etree.ParserError, ValueError)
