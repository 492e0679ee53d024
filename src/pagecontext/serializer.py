# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Serialization of extraction results and snapshots.

Two output formats:
- JSON: camelCase keys, the shape browser-side consumers expect
- Agent prompt: compact markdown sections for direct LLM consumption
"""

from __future__ import annotations

import json
from typing import Any

from . import DesignTokens, ExtractionResult, PageContextSnapshot
from .template import estimate_token_count


def result_to_dict(result: ExtractionResult) -> dict[str, Any]:
    meta = result.metadata
    return {
        "content": result.content,
        "metadata": {
            "url": meta.url,
            "title": meta.title,
            "method": meta.method,
            "selector": meta.selector,
            "matchedRule": meta.matched_rule,
            **({"matchCount": meta.match_count} if meta.match_count is not None else {}),
            "history": list(meta.history),
        },
    }


def result_to_json(result: ExtractionResult, indent: int = 2) -> str:
    return json.dumps(result_to_dict(result), ensure_ascii=False, indent=indent)


def _design_to_dict(design: DesignTokens) -> dict[str, Any]:
    return {
        "viewport": design.viewport,
        "bodyBackgroundColor": design.body_background_color,
        "bodyTextColor": design.body_text_color,
        "baseFontSize": design.base_font_size,
        "baseLineHeight": design.base_line_height,
        "fonts": list(design.fonts),
        "palette": list(design.palette),
        "headingPreview": list(design.heading_preview),
        "linkCount": design.link_count,
        "buttonCount": design.button_count,
        "imageCount": design.image_count,
        "sectionCount": design.section_count,
    }


def to_dict(snapshot: PageContextSnapshot) -> dict[str, Any]:
    """Snapshot as a plain dict. HTML fields appear only when captured."""
    return {
        "capturedAt": snapshot.captured_at,
        "url": snapshot.url,
        "title": snapshot.title,
        "description": snapshot.description,
        "language": snapshot.language,
        "extraction": {
            "method": snapshot.extraction.method,
            "selector": snapshot.extraction.selector,
            "matchedRule": snapshot.extraction.matched_rule,
        },
        "content": snapshot.content,
        "headings": snapshot.headings,
        "links": snapshot.links,
        "domTree": snapshot.dom_tree,
        "interactiveElements": snapshot.interactive_elements,
        "styleSummary": snapshot.style_summary,
        "design": _design_to_dict(snapshot.design),
        **({"fullHtml": snapshot.full_html} if snapshot.full_html is not None else {}),
        **({"bodyHtml": snapshot.body_html} if snapshot.body_html is not None else {}),
    }


def to_json(snapshot: PageContextSnapshot, indent: int = 2) -> str:
    """Serialize a snapshot to a JSON string.

    Args:
        snapshot: snapshot to serialize
        indent: JSON indentation level
    """
    return json.dumps(to_dict(snapshot), ensure_ascii=False, indent=indent)


def to_agent_prompt(snapshot: PageContextSnapshot, include_meta: bool = False) -> str:
    """Serialize a snapshot to a compact markdown prompt.

    Format:
        ## Page
        URL: https://example.com/post
        Title: Example post
        Language: en
        Extraction: article-tag (article)

        ## Content
        ...

        ## Headings
        1. Example post

    Empty sections are omitted.
    """
    lines: list[str] = []

    lines.append("## Page")
    lines.append(f"URL: {snapshot.url}")
    if snapshot.title:
        lines.append(f"Title: {snapshot.title}")
    if snapshot.description:
        lines.append(f"Description: {snapshot.description}")
    if snapshot.language:
        lines.append(f"Language: {snapshot.language}")
    if snapshot.extraction.method:
        extraction = snapshot.extraction.method
        if snapshot.extraction.selector:
            extraction += f" ({snapshot.extraction.selector})"
        if snapshot.extraction.matched_rule:
            extraction += f" rule={snapshot.extraction.matched_rule}"
        lines.append(f"Extraction: {extraction}")
    lines.append("")

    sections = (
        ("Content", snapshot.content),
        ("Headings", snapshot.headings),
        ("Links", snapshot.links),
        ("Interactive", snapshot.interactive_elements),
        ("Outline", snapshot.dom_tree),
        ("Style", snapshot.style_summary),
    )
    for heading, body in sections:
        if not body:
            continue
        lines.append(f"## {heading}")
        lines.append(body)
        lines.append("")

    if include_meta:
        lines.append("## Meta")
        prompt_text = "\n".join(lines)
        lines.append(f"Tokens: ~{estimate_token_count(prompt_text)}")
        lines.append(f"Captured: {snapshot.captured_at}")
        lines.append("")

    return "\n".join(lines).rstrip("\n")
