# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Page context snapshot: a bounded description of a page for an assistant.

One extraction call, then independent structural and style queries:
headings, links, interactive controls, a depth/line-limited DOM outline and
design tokens sampled from computed styles. Every field has a fixed size
cap; clipped fields end with the truncation marker.

Full page HTML is only included when the caller asks for it.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import Iterable
from datetime import UTC, datetime

from lxml.html import HtmlElement

from . import DesignTokens, ExtractionResult, ExtractionSummary, PageContextSnapshot
from .config import DEFAULT_SCRIPT_TIMEOUT
from .document import PageDocument
from .extractor import extract_with_metadata
from .reader import ArticleParser
from .rules import ExtractorRule
from .scripts import ScriptRegistry
from .text import normalize_color, truncate_text

logger = logging.getLogger(__name__)

MAX_CONTENT_CHARS = 3200
MAX_HEADINGS = 12
MAX_FONTS = 8
MAX_COLORS = 12
MAX_STYLE_SAMPLE_ELEMENTS = 180
MAX_DOM_TREE_LINES = 280
MAX_DOM_TREE_DEPTH = 8
MAX_INTERACTIVE_ELEMENTS = 60
MAX_LINKS = 48
MAX_FULL_HTML_CHARS = 40_000
MAX_BODY_HTML_CHARS = 26_000

DOM_TREE_TRUNCATED = "...[dom tree truncated]"

CAPTURABLE_PROTOCOLS = frozenset({"http:", "https:"})

FONT_PROBE_SELECTORS = ("body", "h1", "h2", "h3", "p", "button", "nav", "main")
STYLE_SAMPLE_SELECTOR = "body, main, header, nav, section, article, aside, footer, button, a, h1, h2, h3, p, span, div"
INTERACTIVE_SELECTOR = 'a[href], button, input, select, textarea, [role="button"], [tabindex]'
BUTTON_SELECTOR = 'button, [role="button"], input[type="button"], input[type="submit"]'
IMAGE_SELECTOR = "img, svg, picture"
SECTION_SELECTOR = "section, article, main, nav, aside, header, footer"


def can_capture(document: PageDocument | None) -> bool:
    """Only ordinary web pages (http/https) are captured."""
    if document is None:
        return False
    return document.location.protocol in CAPTURABLE_PROTOCOLS


# ── Collectors ───────────────────────────────────────────────────────


def _meta_content(document: PageDocument, name: str) -> str:
    element = document.query_selector(f'meta[name="{name}"]')
    return truncate_text(element.get("content", "") if element is not None else "", 400)


def collect_heading_preview(document: PageDocument) -> list[str]:
    headings = (truncate_text(document.text_content(el), 120) for el in document.query_selector_all("h1, h2, h3"))
    return [h for h in headings if h][:MAX_HEADINGS]


def collect_font_families(document: PageDocument) -> list[str]:
    families: dict[str, None] = {}
    for selector in FONT_PROBE_SELECTORS:
        element = document.query_selector(selector)
        if element is None:
            continue
        family = truncate_text(document.computed_style(element).get("fontFamily", ""), 120)
        if not family:
            continue
        families[family] = None
        if len(families) >= MAX_FONTS:
            break
    return list(families)


def collect_color_palette(document: PageDocument) -> list[str]:
    """Most frequent colours over the sampled elements; ties keep first-seen order."""
    counts: Counter[str] = Counter()
    sample = document.query_selector_all(STYLE_SAMPLE_SELECTOR)[:MAX_STYLE_SAMPLE_ELEMENTS]
    for element in sample:
        style = document.computed_style(element)
        for prop in ("color", "backgroundColor", "borderColor"):
            color = normalize_color(style.get(prop, ""))
            if color:
                counts[color] += 1
    return [color for color, _ in counts.most_common(MAX_COLORS)]


def node_label(document: PageDocument, element: HtmlElement) -> str:
    tag = element.tag.lower()
    element_id = element.get("id", "")
    id_part = f"#{element_id[:24]}" if element_id else ""
    class_names = [name for name in element.get("class", "").split() if name][:2]
    class_part = "".join(f".{name[:20]}" for name in class_names)
    role = element.get("role", "")
    role_part = f" [role={role[:20]}]" if role else ""
    preview = truncate_text(document.text_content(element), 56)
    text_part = f' "{preview}"' if preview else ""
    return f"{tag}{id_part}{class_part}{role_part}{text_part}"


def build_dom_tree_summary(
    document: PageDocument,
    root: HtmlElement | None,
    *,
    max_lines: int = MAX_DOM_TREE_LINES,
    max_depth: int = MAX_DOM_TREE_DEPTH,
) -> str:
    """Indented pre-order outline of *root*.

    An explicit (node, depth) stack keeps both budgets exact: nodes deeper
    than *max_depth* are skipped, output stops after *max_lines*, and a
    marker line is added if anything was left unvisited.
    """
    if root is None:
        return ""
    lines: list[str] = []
    stack: list[tuple[HtmlElement, int]] = [(root, 0)]

    while stack and len(lines) < max_lines:
        node, depth = stack.pop()
        if depth > max_depth:
            continue
        lines.append(f"{'  ' * depth}- {node_label(document, node)}")
        for child in reversed(document.children(node)):
            stack.append((child, depth + 1))

    if stack:
        lines.append(DOM_TREE_TRUNCATED)
    return "\n".join(lines)


def _interactive_line(document: PageDocument, element: HtmlElement) -> str:
    tag = element.tag.lower()
    element_id = element.get("id", "")
    id_part = f"#{element_id[:20]}" if element_id else ""
    role = element.get("role", "")
    role_part = f" role={role[:20]}" if role else ""
    label = truncate_text(
        document.text_content(element) or element.get("aria-label", "") or element.get("placeholder", ""),
        80,
    )
    href = truncate_text(element.get("href", ""), 120)
    suffix = []
    if label:
        suffix.append(f'label="{label}"')
    if href:
        suffix.append(f'href="{href}"')
    suffix_part = f" ({', '.join(suffix)})" if suffix else ""
    return f"- {tag}{id_part}{role_part}{suffix_part}"


def collect_interactive_elements(document: PageDocument) -> str:
    elements = document.query_selector_all(INTERACTIVE_SELECTOR)[:MAX_INTERACTIVE_ELEMENTS]
    return "\n".join(_interactive_line(document, el) for el in elements)


def collect_links_summary(document: PageDocument) -> str:
    lines: list[str] = []
    for element in document.query_selector_all("a[href]"):
        href = truncate_text(element.get("href", ""), 260)
        if not href:
            continue
        label = truncate_text(document.text_content(element) or element.get("aria-label", ""), 100)
        lines.append(f"- {label}: {href}" if label else f"- {href}")
        if len(lines) >= MAX_LINKS:
            break
    return "\n".join(lines)


def collect_design_tokens(document: PageDocument) -> DesignTokens:
    body = document.body if document.body is not None else document.root
    body_style = document.computed_style(body)
    return DesignTokens(
        viewport=f"{document.viewport_width}x{document.viewport_height}",
        body_background_color=normalize_color(body_style.get("backgroundColor", "")),
        body_text_color=normalize_color(body_style.get("color", "")),
        base_font_size=truncate_text(body_style.get("fontSize", ""), 32),
        base_line_height=truncate_text(body_style.get("lineHeight", ""), 32),
        fonts=collect_font_families(document),
        palette=collect_color_palette(document),
        heading_preview=collect_heading_preview(document),
        link_count=len(document.query_selector_all("a")),
        button_count=len(document.query_selector_all(BUTTON_SELECTOR)),
        image_count=len(document.query_selector_all(IMAGE_SELECTOR)),
        section_count=len(document.query_selector_all(SECTION_SELECTOR)),
    )


def build_style_summary(design: DesignTokens) -> str:
    """Readable digest of the design tokens; empty tokens are left out."""
    lines: list[str] = []
    if design.fonts:
        lines.append(f"Fonts: {', '.join(design.fonts)}")
    if design.palette:
        lines.append(f"Color tokens: {', '.join(design.palette)}")
    if design.body_text_color:
        lines.append(f"Body text: {design.body_text_color}")
    if design.body_background_color:
        lines.append(f"Body background: {design.body_background_color}")
    if design.base_font_size:
        lines.append(f"Base font-size: {design.base_font_size}")
    if design.base_line_height:
        lines.append(f"Base line-height: {design.base_line_height}")
    if design.viewport:
        lines.append(f"Viewport: {design.viewport}")
    counts = [
        ("links", design.link_count),
        ("buttons", design.button_count),
        ("images", design.image_count),
        ("sections", design.section_count),
    ]
    counts = [(name, value) for name, value in counts if isinstance(value, int) and value >= 0]
    if counts:
        lines.append(f"Element counts: {', '.join(f'{name}={value}' for name, value in counts)}")
    return "\n".join(lines)


def _captured_at() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ── Builder ──────────────────────────────────────────────────────────


def build_snapshot(
    document: PageDocument | None,
    rules: Iterable[ExtractorRule | dict] | None = None,
    *,
    include_full_html: bool = False,
    parser: ArticleParser | None = None,
    registry: ScriptRegistry | None = None,
    script_timeout: float = DEFAULT_SCRIPT_TIMEOUT,
) -> PageContextSnapshot | None:
    """Build a bounded snapshot of *document*, or None for non-web pages.

    Extraction failures leave ``content`` and ``extraction`` empty; the rest
    of the snapshot is still built.

    Args:
        document: page to describe
        rules: extractor rules forwarded to the extraction step
        include_full_html: also attach root outerHTML and body innerHTML
        parser: article parser override
        registry: custom script registry override
        script_timeout: seconds a custom script may run
    """
    if not can_capture(document):
        return None
    start = time.monotonic()

    extracted: ExtractionResult | None = None
    try:
        extracted = extract_with_metadata(
            document,
            list(rules or []),
            parser=parser,
            registry=registry,
            script_timeout=script_timeout,
        )
    except Exception:
        logger.debug("Failed to extract page content for snapshot", exc_info=True)

    if extracted is not None:
        meta = extracted.metadata
        extraction = ExtractionSummary(
            method=truncate_text(meta.method or "", 80),
            selector=truncate_text(meta.selector or "", 160),
            matched_rule=truncate_text(meta.matched_rule or "", 120),
        )
        content = truncate_text(extracted.content, MAX_CONTENT_CHARS)
    else:
        extraction = ExtractionSummary()
        content = ""

    design = collect_design_tokens(document)
    body = document.body if document.body is not None else document.root

    snapshot = PageContextSnapshot(
        captured_at=_captured_at(),
        url=truncate_text(document.location.href, 400),
        title=truncate_text(document.title, 240),
        description=_meta_content(document, "description"),
        language=truncate_text(document.language, 40),
        extraction=extraction,
        content=content,
        headings="\n".join(f"{index}. {value}" for index, value in enumerate(design.heading_preview, start=1)),
        links=collect_links_summary(document),
        dom_tree=build_dom_tree_summary(document, body),
        interactive_elements=collect_interactive_elements(document),
        style_summary=build_style_summary(design),
        design=design,
    )

    if include_full_html is True:
        snapshot.full_html = truncate_text(PageDocument.outer_html(document.root), MAX_FULL_HTML_CHARS)
        snapshot.body_html = truncate_text(PageDocument.inner_html(document.body), MAX_BODY_HTML_CHARS)

    logger.info(
        "Snapshot %s: method=%s, %d content chars, %d links, %.0fms",
        snapshot.url,
        snapshot.extraction.method or "none",
        len(snapshot.content),
        snapshot.links.count("\n") + 1 if snapshot.links else 0,
        (time.monotonic() - start) * 1000,
    )
    return snapshot
