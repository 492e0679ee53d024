# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Page accessor: element tree, selector matching, geometry, computed style.

A PageDocument is a frozen view of one page at one moment. The element tree
is an lxml HTML tree; geometry and computed style live in side tables keyed
by element, filled either from a live browser capture (see
``browser_session.capture_document``) or from a synthetic layout in tests.

Every extraction and snapshot function takes a PageDocument explicitly, so
nothing in the pipeline touches a global page.
"""

from __future__ import annotations

import copy
import functools
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

import lxml.html
from lxml import etree
from lxml.cssselect import CSSSelector, SelectorError
from lxml.html import HtmlElement

from .errors import CaptureError
from .text import split_selectors

logger = logging.getLogger(__name__)

# Attribute stamped on every element during live capture to join the
# serialized HTML back to per-element geometry and style.
CAPTURE_INDEX_ATTR = "data-pc-idx"

_EMPTY_DOCUMENT = "<html><head></head><body></body></html>"

# Elements whose contents never render as text (innerText skips them).
_NON_RENDERED_TAGS = frozenset(
    {"head", "script", "style", "noscript", "template", "title", "meta", "link", "iframe", "object"}
)

_BLOCK_TAGS = frozenset(
    {
        "address",
        "article",
        "aside",
        "blockquote",
        "body",
        "dd",
        "details",
        "dialog",
        "div",
        "dl",
        "dt",
        "fieldset",
        "figcaption",
        "figure",
        "footer",
        "form",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "header",
        "hgroup",
        "hr",
        "html",
        "li",
        "main",
        "nav",
        "ol",
        "pre",
        "section",
        "summary",
        "table",
        "tr",
        "ul",
    }
)

# innerText puts a blank line around paragraphs, a single break around blocks.
_PARAGRAPH_TAGS = frozenset({"p"})

_PRESERVE_WS_TAGS = frozenset({"pre", "textarea", "listing", "plaintext"})

_WS_RE = re.compile(r"[ \t\n\r\f]+")
_SPACES_AROUND_NEWLINE_RE = re.compile(r"[ ]*\n[ ]*")

_STYLE_DECL_RE = re.compile(r"\s*([-a-zA-Z]+)\s*:\s*([^;]+?)\s*(?:;|$)")


@dataclass(frozen=True, slots=True)
class Rect:
    """Bounding client rect in CSS pixels."""

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def area(self) -> float:
        return self.width * self.height


@dataclass(frozen=True, slots=True)
class Location:
    """The parts of ``window.location`` the pipeline reads."""

    href: str
    protocol: str  # "https:", scheme plus colon as in the DOM
    hostname: str

    @classmethod
    def from_url(cls, url: str) -> Location:
        parts = urlsplit(url or "")
        protocol = f"{parts.scheme.lower()}:" if parts.scheme else ""
        return cls(href=url or "", protocol=protocol, hostname=(parts.hostname or "").lower())


@dataclass(frozen=True, slots=True)
class PageWindow:
    """Read-only stand-in for ``window`` handed to custom extraction scripts."""

    location: Location
    inner_width: int
    inner_height: int


@functools.lru_cache(maxsize=512)
def compile_selector(selector: str) -> CSSSelector:
    """Compile a CSS selector. Raises ``SelectorError`` on invalid syntax."""
    return CSSSelector(selector, translator="html")


def _camel_case(prop: str) -> str:
    head, *rest = prop.strip().lower().split("-")
    return head + "".join(part.capitalize() for part in rest)


def parse_inline_style(style: str | None) -> dict[str, str]:
    """``"background-color: red; color:#fff"`` → ``{"backgroundColor": "red", "color": "#fff"}``."""
    if not style:
        return {}
    return {_camel_case(m.group(1)): m.group(2).strip() for m in _STYLE_DECL_RE.finditer(style)}


def _parse_html(html: str | bytes) -> HtmlElement:
    if isinstance(html, str):
        if not html.strip():
            html = _EMPTY_DOCUMENT
        html = html.encode("utf-8")
    elif not html.strip():
        html = _EMPTY_DOCUMENT.encode("utf-8")
    parser = lxml.html.HTMLParser(encoding="utf-8")
    try:
        return lxml.html.document_fromstring(html, parser=parser)
    except (etree.ParserError, ValueError) as exc:
        raise CaptureError(f"Could not parse page HTML: {exc}") from exc


def _is_element(node: Any) -> bool:
    return isinstance(node.tag, str)


class PageDocument:
    """Snapshot of a page's element tree plus layout and style side tables."""

    def __init__(
        self,
        root: HtmlElement,
        *,
        url: str = "about:blank",
        title: str | None = None,
        viewport: tuple[int, int] = (1280, 800),
        rects: Mapping[HtmlElement, Rect] | None = None,
        styles: Mapping[HtmlElement, Mapping[str, str]] | None = None,
    ) -> None:
        self.root = root
        self.location = Location.from_url(url)
        self._title = title
        self.viewport_width, self.viewport_height = viewport
        self._rects: dict[HtmlElement, Rect] = dict(rects or {})
        self._styles: dict[HtmlElement, Mapping[str, str]] = dict(styles or {})

    # ── Construction ─────────────────────────────────────────────────

    @classmethod
    def from_html(
        cls,
        html: str | bytes,
        *,
        url: str = "about:blank",
        title: str | None = None,
        viewport: tuple[int, int] = (1280, 800),
        layout: Mapping[str, Rect | tuple[float, float] | tuple[float, float, float, float]] | None = None,
        styles: Mapping[str, Mapping[str, str]] | None = None,
    ) -> PageDocument:
        """Build a document from static HTML.

        ``layout`` and ``styles`` are keyed by CSS selector; every element a
        selector matches receives that rect or style map. A layout value may
        be a Rect, ``(width, height)`` or ``(x, y, width, height)``. Without a
        layout every element has zero area.
        """
        root = _parse_html(html)
        rects: dict[HtmlElement, Rect] = {}
        for selector, value in (layout or {}).items():
            rect = value if isinstance(value, Rect) else _rect_from_tuple(value)
            for el in compile_selector(selector)(root):
                rects[el] = rect
        computed: dict[HtmlElement, Mapping[str, str]] = {}
        for selector, style in (styles or {}).items():
            for el in compile_selector(selector)(root):
                computed[el] = {**computed.get(el, {}), **style}
        return cls(root, url=url, title=title, viewport=viewport, rects=rects, styles=computed)

    @classmethod
    def from_capture(cls, payload: Mapping[str, Any]) -> PageDocument:
        """Build a document from the live capture payload.

        Expected keys: ``html``, ``url``, ``title``, ``viewport`` ({width,
        height}), ``rects`` (list of [x, y, w, h] by capture index) and
        ``styles`` (list of computed-style dicts by capture index).
        """
        if not isinstance(payload, Mapping) or "html" not in payload:
            raise CaptureError("Capture payload is missing page HTML")
        root = _parse_html(payload.get("html") or "")
        raw_rects = payload.get("rects") or []
        raw_styles = payload.get("styles") or []
        rects: dict[HtmlElement, Rect] = {}
        styles: dict[HtmlElement, Mapping[str, str]] = {}
        for el in root.iter():
            if not _is_element(el):
                continue
            raw_idx = el.attrib.pop(CAPTURE_INDEX_ATTR, None)
            if raw_idx is None or not raw_idx.isdigit():
                continue
            idx = int(raw_idx)
            if idx < len(raw_rects) and raw_rects[idx]:
                rects[el] = _rect_from_tuple(raw_rects[idx])
            if idx < len(raw_styles) and raw_styles[idx]:
                styles[el] = {k: str(v) for k, v in raw_styles[idx].items()}
        viewport = payload.get("viewport") or {}
        return cls(
            root,
            url=str(payload.get("url") or "about:blank"),
            title=payload.get("title"),
            viewport=(int(viewport.get("width") or 0), int(viewport.get("height") or 0)),
            rects=rects,
            styles=styles,
        )

    def copy(self) -> PageDocument:
        """Independent document over a deep copy of the tree.

        Rects and styles follow their elements into the copy, so geometry
        and visibility read the same. Mutating the copy never touches this
        document.
        """
        clone = copy.deepcopy(self.root)
        rects: dict[HtmlElement, Rect] = {}
        styles: dict[HtmlElement, Mapping[str, str]] = {}
        for original, twin in zip(self.root.iter(), clone.iter(), strict=True):
            if original in self._rects:
                rects[twin] = self._rects[original]
            if original in self._styles:
                styles[twin] = dict(self._styles[original])
        return PageDocument(
            clone,
            url=self.location.href,
            title=self._title,
            viewport=(self.viewport_width, self.viewport_height),
            rects=rects,
            styles=styles,
        )

    # ── Document-level accessors ─────────────────────────────────────

    @property
    def body(self) -> HtmlElement | None:
        return next(self.root.iterchildren("body"), None)

    @property
    def title(self) -> str:
        if self._title is not None:
            return self._title
        node = self.root.find(".//title")
        if node is None:
            return ""
        return _WS_RE.sub(" ", node.text_content()).strip()

    @property
    def language(self) -> str:
        return self.root.get("lang", "")

    @property
    def window(self) -> PageWindow:
        return PageWindow(self.location, self.viewport_width, self.viewport_height)

    # ── Selector matching ────────────────────────────────────────────

    def query_selector_all(self, selector: str, root: HtmlElement | None = None) -> list[HtmlElement]:
        """All matches in document order. Raises ``SelectorError`` on bad syntax.

        Scoped to *root*'s descendants when given (the root itself never
        matches), mirroring ``Element.querySelectorAll``. Selectors that parse
        but cannot be evaluated, such as an undeclared namespace prefix, raise
        ``SelectorError`` as well.
        """
        try:
            matcher = compile_selector(selector)
            matches = matcher(self.root if root is None else root)
        except etree.XPathError as exc:
            raise SelectorError(f"{selector!r}: {exc}") from exc
        if root is None:
            return matches
        return [el for el in matches if el is not root]

    def query_selector(self, selector: str, root: HtmlElement | None = None) -> HtmlElement | None:
        matches = self.query_selector_all(selector, root)
        return matches[0] if matches else None

    def query_first_of(self, selectors: Iterable[str]) -> HtmlElement | None:
        """First element resolved by the first selector in *selectors* that matches."""
        for selector in selectors:
            try:
                element = self.query_selector(selector)
            except SelectorError:
                logger.warning("Invalid selector %r", selector)
                continue
            if element is not None:
                return element
        return None

    def excluded_within(self, root: HtmlElement, exclude_selectors: str | None) -> frozenset[HtmlElement]:
        """Descendants of *root* matched by a comma-separated exclude list.

        Text helpers take this set as ``skip`` and leave those subtrees out,
        which reads the same as removing them from a cloned subtree.
        """
        excluded: set[HtmlElement] = set()
        for selector in split_selectors(exclude_selectors):
            try:
                excluded.update(self.query_selector_all(selector, root))
            except SelectorError:
                logger.warning("Invalid exclude selector %r", selector)
        return frozenset(excluded)

    def clone_without(self, exclude_selectors: str | None) -> HtmlElement:
        """Deep copy of the whole tree with excluded elements dropped."""
        clone = copy.deepcopy(self.root)
        for selector in split_selectors(exclude_selectors):
            try:
                matches = self.query_selector_all(selector, clone)
            except SelectorError:
                logger.warning("Invalid exclude selector %r", selector)
                continue
            for el in matches:
                if el.getparent() is not None:
                    el.drop_tree()
        return clone

    # ── Element accessors ────────────────────────────────────────────

    @staticmethod
    def children(element: HtmlElement) -> list[HtmlElement]:
        return [child for child in element if _is_element(child)]

    def rect(self, element: HtmlElement) -> Rect:
        return self._rects.get(element, Rect())

    def area(self, element: HtmlElement | None) -> float:
        if element is None:
            return 0.0
        return self.rect(element).area

    def computed_style(self, element: HtmlElement | None) -> Mapping[str, str]:
        """Captured computed style, else the element's inline declarations."""
        if element is None:
            return {}
        captured = self._styles.get(element)
        if captured is not None:
            return captured
        return parse_inline_style(element.get("style"))

    def is_hidden(self, element: HtmlElement) -> bool:
        if element.get("hidden") is not None:
            return True
        return self.computed_style(element).get("display", "").strip().lower() == "none"

    def text_content(self, element: HtmlElement, skip: frozenset[HtmlElement] = frozenset()) -> str:
        """DOM ``textContent``: all descendant text, script and style included."""
        if not skip:
            return element.text_content()
        parts: list[str] = []
        _collect_text_content(element, skip, parts)
        return "".join(parts)

    def inner_text(self, element: HtmlElement, skip: frozenset[HtmlElement] = frozenset()) -> str:
        """Approximation of ``innerText`` from the tree and captured styles.

        Hidden and non-rendered elements are skipped, whitespace collapses
        outside ``<pre>``, blocks start new lines and paragraphs are
        separated by a blank line.
        """
        tokens: list[str | int] = []
        self._collect_inner_text(element, skip, tokens, preserve=False)
        return _assemble_inner_text(tokens)

    def text_of(self, element: HtmlElement, skip: frozenset[HtmlElement] = frozenset()) -> str:
        """``innerText || textContent``."""
        return self.inner_text(element, skip) or self.text_content(element, skip)

    @staticmethod
    def outer_html(element: HtmlElement | None) -> str:
        if element is None:
            return ""
        return lxml.html.tostring(element, encoding="unicode", with_tail=False)

    @staticmethod
    def inner_html(element: HtmlElement | None) -> str:
        if element is None:
            return ""
        parts = [element.text or ""]
        parts.extend(lxml.html.tostring(child, encoding="unicode") for child in element)
        return "".join(parts)

    def _collect_inner_text(
        self,
        element: HtmlElement,
        skip: frozenset[HtmlElement],
        tokens: list[str | int],
        *,
        preserve: bool,
    ) -> None:
        if element in skip or not _is_element(element):
            return
        tag = element.tag.lower()
        if tag in _NON_RENDERED_TAGS or self.is_hidden(element):
            return
        if tag == "br":
            tokens.append("\n")
            return
        preserve = preserve or tag in _PRESERVE_WS_TAGS
        breaks = 2 if tag in _PARAGRAPH_TAGS else 1 if tag in _BLOCK_TAGS else 0
        if breaks:
            tokens.append(breaks)
        if element.text:
            tokens.append(_render_run(element.text, preserve))
        for child in element:
            self._collect_inner_text(child, skip, tokens, preserve=preserve)
            if child.tail:
                tokens.append(_render_run(child.tail, preserve))
        if tag in ("td", "th"):
            tokens.append("\t")
        if breaks:
            tokens.append(breaks)


def _rect_from_tuple(value: Any) -> Rect:
    values = [float(v or 0) for v in value]
    if len(values) == 2:
        return Rect(0.0, 0.0, values[0], values[1])
    if len(values) == 4:
        return Rect(*values)
    raise ValueError(f"Layout value must have 2 or 4 numbers, got {len(values)}")


def _collect_text_content(element: HtmlElement, skip: frozenset[HtmlElement], parts: list[str]) -> None:
    if _is_element(element) and element.text:
        parts.append(element.text)
    for child in element:
        if child not in skip and _is_element(child):
            _collect_text_content(child, skip, parts)
        if child.tail:
            parts.append(child.tail)


def _render_run(text: str, preserve: bool) -> str:
    return text if preserve else _WS_RE.sub(" ", text)


def _assemble_inner_text(tokens: list[str | int]) -> str:
    """Join text runs; integer tokens are required line-break counts."""
    out: list[str] = []
    pending = 0
    for token in tokens:
        if isinstance(token, int):
            pending = max(pending, token)
            continue
        if not token:
            continue
        if pending:
            stripped = token.lstrip(" ")
            # Whitespace between blocks folds into the break.
            if not stripped:
                continue
            if out:
                out.append("\n" * pending)
            pending = 0
            token = stripped
        elif token.startswith(" ") and (not out or out[-1].endswith((" ", "\n"))):
            token = token[1:]
            if not token:
                continue
        out.append(token)
    return _SPACES_AROUND_NEWLINE_RE.sub("\n", "".join(out)).strip(" ")
