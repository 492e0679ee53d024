# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Page Context: main-content extraction and bounded page snapshots for AI assistants.

Turns an arbitrary web page into:
- an ExtractionResult: best-effort main-content text plus which strategy produced it
- a PageContextSnapshot: size-bounded headings, links, controls, DOM outline and
  style tokens, ready to drop into a model's context window
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ExtractionMetadata:
    """Provenance of an extraction: which rule matched and which strategy won."""

    url: str = ""
    title: str = ""
    method: str = "auto"  # custom-script, selectors, selectors-failed, builtin-adapter, article-tag, ...
    selector: str | None = None
    matched_rule: str | None = None  # caller rule name, or the built-in site key
    match_count: int | None = None  # selectors strategy only
    history: list[str] = field(default_factory=list)  # every method tag assigned, in order


@dataclass
class ExtractionResult:
    """Normalized main content. ``content`` may be empty but is never None."""

    content: str
    metadata: ExtractionMetadata


@dataclass(frozen=True)
class ExtractionSummary:
    """Bounded copy of the extraction metadata carried in a snapshot."""

    method: str = ""
    selector: str = ""
    matched_rule: str = ""


@dataclass
class DesignTokens:
    """Visual tokens sampled from computed styles."""

    viewport: str = ""
    body_background_color: str = ""
    body_text_color: str = ""
    base_font_size: str = ""
    base_line_height: str = ""
    fonts: list[str] = field(default_factory=list)
    palette: list[str] = field(default_factory=list)  # most frequent first
    heading_preview: list[str] = field(default_factory=list)
    link_count: int = 0
    button_count: int = 0
    image_count: int = 0
    section_count: int = 0


@dataclass
class PageContextSnapshot:
    """Size-bounded description of one page, computed fresh per call."""

    captured_at: str
    url: str
    title: str
    description: str
    language: str
    extraction: ExtractionSummary
    content: str
    headings: str
    links: str
    dom_tree: str
    interactive_elements: str
    style_summary: str
    design: DesignTokens
    full_html: str | None = None  # only with include_full_html=True
    body_html: str | None = None

    @property
    def has_html(self) -> bool:
        return self.full_html is not None or self.body_html is not None
