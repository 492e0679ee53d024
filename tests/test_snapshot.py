# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for pagecontext.snapshot: collectors, size bounds, builder."""

from __future__ import annotations

from datetime import datetime

import pytest

from pagecontext import ExtractionSummary
from pagecontext.snapshot import (
    DOM_TREE_TRUNCATED,
    MAX_CONTENT_CHARS,
    build_dom_tree_summary,
    build_snapshot,
    build_style_summary,
    can_capture,
    collect_color_palette,
    collect_design_tokens,
    collect_font_families,
    collect_heading_preview,
    collect_interactive_elements,
    collect_links_summary,
    node_label,
)
from pagecontext.text import TRUNCATION_MARKER
from tests._page_helpers import StubParser, page

NO_READER = StubParser(readerable=False)


class TestCanCapture:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://example.com/", True),
            ("http://localhost:8000/", True),
            ("file:///tmp/page.html", False),
            ("chrome-extension://abc/popup.html", False),
            ("about:blank", False),
        ],
    )
    def test_protocols(self, url, expected):
        assert can_capture(page("<p>x</p>", url=url)) is expected

    def test_none(self):
        assert can_capture(None) is False

    def test_builder_returns_none(self):
        assert build_snapshot(page("<p>x</p>", url="file:///tmp/x.html"), parser=NO_READER) is None
        assert build_snapshot(None) is None


# ── Headings / links / interactive ───────────────────────────────────


class TestHeadings:
    def test_capped_at_twelve(self):
        doc = page("".join(f"<h2>Section {i}</h2>" for i in range(15)))
        preview = collect_heading_preview(doc)
        assert len(preview) == 12
        assert preview[0] == "Section 0"

    def test_blank_headings_dropped(self):
        doc = page("<h1>  </h1><h3>Real</h3><h4>Ignored</h4>")
        assert collect_heading_preview(doc) == ["Real"]

    def test_long_heading_truncated(self):
        doc = page(f"<h1>{'A' * 130}</h1>")
        assert collect_heading_preview(doc) == ["A" * 120 + TRUNCATION_MARKER]

    def test_internal_whitespace_kept(self):
        doc = page("<h2>Part one\n   Part two</h2>")
        assert collect_heading_preview(doc) == ["Part one\n   Part two"]


class TestLinks:
    def test_fifty_anchors_give_forty_eight_lines(self):
        doc = page("".join(f'<a href="/p/{i}">Page {i}</a>' for i in range(50)))
        links = collect_links_summary(doc)
        lines = links.split("\n")
        assert len(lines) == 48
        assert lines[0] == "- Page 0: /p/0"

    def test_label_fallbacks(self):
        doc = page('<a href="/a">  </a><a href="/b" aria-label="Bee"></a><a href="">Empty</a><a>No href</a>')
        assert collect_links_summary(doc) == "- /a\n- Bee: /b"

    def test_long_href_bounded(self):
        doc = page(f'<a href="/{"x" * 400}">L</a>')
        assert collect_links_summary(doc) == "- L: /" + "x" * 259 + TRUNCATION_MARKER

    def test_long_label_uses_standard_marker(self):
        doc = page('<a href="/x">' + "L" * 130 + "</a>")
        assert collect_links_summary(doc) == "- " + "L" * 100 + TRUNCATION_MARKER + ": /x"


class TestInteractive:
    def test_line_format(self):
        doc = page(
            '<a href="/">Home</a>'
            '<button id="go">Go</button>'
            '<input placeholder="Search">'
            '<div role="button" tabindex="0">Menu</div>'
        )
        assert collect_interactive_elements(doc).split("\n") == [
            '- a (label="Home", href="/")',
            '- button#go (label="Go")',
            '- input (label="Search")',
            '- div role=button (label="Menu")',
        ]

    def test_capped_at_sixty(self):
        doc = page("".join(f"<button>b{i}</button>" for i in range(70)))
        assert len(collect_interactive_elements(doc).split("\n")) == 60

    def test_empty(self):
        assert collect_interactive_elements(page("<p>x</p>")) == ""


# ── DOM outline ──────────────────────────────────────────────────────


class TestDomTree:
    def test_label(self):
        doc = page('<div id="main" class="a b c" role="main">Hello</div>')
        assert node_label(doc, doc.query_selector("#main")) == 'div#main.a.b [role=main] "Hello"'

    def test_label_caps(self):
        doc = page(f'<div id="{"i" * 30}" class="{"c" * 30}"></div>')
        assert node_label(doc, doc.query_selector("div")) == f"div#{'i' * 24}.{'c' * 20}"

    def test_indentation(self):
        doc = page('<main><p>One</p></main><footer id="f"></footer>')
        assert build_dom_tree_summary(doc, doc.body) == (
            '- body "One"\n  - main "One"\n    - p "One"\n  - footer#f'
        )

    def test_depth_limit(self):
        doc = page("<div>" * 12 + "deep" + "</div>" * 12)
        tree = build_dom_tree_summary(doc, doc.body)
        lines = tree.split("\n")
        assert len(lines) == 9
        assert DOM_TREE_TRUNCATED not in tree
        assert max(len(line) - len(line.lstrip(" ")) for line in lines) == 16

    def test_line_limit(self):
        doc = page("<div></div>" * 400)
        lines = build_dom_tree_summary(doc, doc.body).split("\n")
        assert len(lines) == 281
        assert lines[-1] == DOM_TREE_TRUNCATED

    def test_none_root(self):
        assert build_dom_tree_summary(page("<p>x</p>"), None) == ""


# ── Design tokens ────────────────────────────────────────────────────


STYLED_BODY = """
<h1>Heading</h1>
<p class="lead">Lead</p>
<a href="/x">Link</a>
<button>Buy</button>
<input type="submit" value="Send">
<img src="a.png"><svg></svg>
<section>S</section><nav>N</nav>
<div class="clear">c</div>
"""

STYLES = {
    "body": {
        "backgroundColor": "rgb(255, 255, 255)",
        "color": "rgb(0, 0, 0)",
        "fontSize": "16px",
        "lineHeight": "24px",
        "fontFamily": "Inter, sans-serif",
    },
    "h1": {"fontFamily": "Georgia", "color": "rgb(0, 0, 0)"},
    "p": {"fontFamily": "Inter, sans-serif", "color": "rgb(50, 50, 50)"},
    ".clear": {"backgroundColor": "transparent", "borderColor": "rgba(0, 0, 0, 0)"},
}


class TestDesignTokens:
    def test_tokens(self):
        design = collect_design_tokens(page(STYLED_BODY, styles=STYLES))
        assert design.viewport == "1280x800"
        assert design.body_background_color == "rgb(255, 255, 255)"
        assert design.body_text_color == "rgb(0, 0, 0)"
        assert design.base_font_size == "16px"
        assert design.base_line_height == "24px"
        assert design.heading_preview == ["Heading"]
        assert design.link_count == 1
        assert design.button_count == 2
        assert design.image_count == 2
        assert design.section_count == 2

    def test_fonts_deduplicated_in_document_order(self):
        assert collect_font_families(page(STYLED_BODY, styles=STYLES)) == ["Inter, sans-serif", "Georgia"]

    def test_palette_by_frequency(self):
        palette = collect_color_palette(page(STYLED_BODY, styles=STYLES))
        assert palette == ["rgb(0, 0, 0)", "rgb(255, 255, 255)", "rgb(50, 50, 50)"]

    def test_inline_styles_used_without_capture(self):
        doc = page('<div style="color: red">x</div>')
        assert collect_color_palette(doc) == ["red"]

    def test_style_summary(self):
        summary = build_style_summary(collect_design_tokens(page(STYLED_BODY, styles=STYLES)))
        assert summary.split("\n") == [
            "Fonts: Inter, sans-serif, Georgia",
            "Color tokens: rgb(0, 0, 0), rgb(255, 255, 255), rgb(50, 50, 50)",
            "Body text: rgb(0, 0, 0)",
            "Body background: rgb(255, 255, 255)",
            "Base font-size: 16px",
            "Base line-height: 24px",
            "Viewport: 1280x800",
            "Element counts: links=1, buttons=2, images=2, sections=2",
        ]

    def test_style_summary_keeps_zero_counts(self):
        summary = build_style_summary(collect_design_tokens(page("<p>x</p>")))
        assert "Element counts: links=0, buttons=0, images=0, sections=0" in summary
        assert "Fonts" not in summary


# ── Builder ──────────────────────────────────────────────────────────


class TestBuildSnapshot:
    def _doc(self, body="<article><h1>Hello</h1><p>Story</p></article>", **kwargs):
        head = '<title>Example</title><meta name="description" content="  A page  ">'
        return page(body, head=head, lang="en", **kwargs)

    def test_fields(self):
        snap = build_snapshot(self._doc(), parser=NO_READER)
        assert snap.url == "https://example.com/post/1"
        assert snap.title == "Example"
        assert snap.description == "A page"
        assert snap.language == "en"
        assert snap.extraction == ExtractionSummary(method="article-tag", selector="article", matched_rule="")
        assert "Story" in snap.content
        assert snap.headings == "1. Hello"
        assert snap.dom_tree.startswith("- body")
        assert snap.full_html is None
        assert snap.body_html is None
        assert not snap.has_html

    def test_captured_at_is_utc_iso(self):
        snap = build_snapshot(self._doc(), parser=NO_READER)
        assert snap.captured_at.endswith("Z")
        datetime.fromisoformat(snap.captured_at.replace("Z", "+00:00"))

    def test_rules_forwarded(self):
        rules = [{"name": "posts", "urlPattern": "example", "method": "selectors", "selectors": "h1"}]
        snap = build_snapshot(self._doc(), rules, parser=NO_READER)
        assert snap.extraction.method == "selectors"
        assert snap.extraction.selector == "h1"
        assert snap.extraction.matched_rule == "posts"
        assert snap.content == "Hello"

    def test_content_bounded(self):
        snap = build_snapshot(self._doc(f"<article>{'word ' * 1000}</article>"), parser=NO_READER)
        assert len(snap.content) == MAX_CONTENT_CHARS + len(TRUNCATION_MARKER)
        assert snap.content.endswith(TRUNCATION_MARKER)

    def test_full_html_on_request(self):
        snap = build_snapshot(self._doc(), include_full_html=True, parser=NO_READER)
        assert snap.full_html.startswith("<html")
        assert "<body" not in snap.body_html
        assert "<article>" in snap.body_html
        assert snap.has_html

    def test_full_html_needs_true(self):
        snap = build_snapshot(self._doc(), include_full_html="yes", parser=NO_READER)
        assert snap.full_html is None

    def test_extraction_failure_leaves_rest(self, monkeypatch):
        def _boom(*args, **kwargs):
            raise RuntimeError("extractor crashed")

        monkeypatch.setattr("pagecontext.snapshot.extract_with_metadata", _boom)
        snap = build_snapshot(self._doc())
        assert snap.content == ""
        assert snap.extraction == ExtractionSummary()
        assert snap.title == "Example"
        assert snap.headings == "1. Hello"

    def test_fifty_links(self):
        body = "".join(f'<a href="/p/{i}">Page {i}</a>' for i in range(50))
        snap = build_snapshot(self._doc(body), parser=NO_READER)
        assert len(snap.links.split("\n")) == 48
        assert snap.design.link_count == 50
