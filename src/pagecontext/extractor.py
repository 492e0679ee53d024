# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Extraction orchestrator: rule matching plus a fixed fallback chain.

Auto chain: built-in site adapter > <article> > readability > largest element.
A matched rule can pin a method (custom script, selectors, readability,
largest) and contributes its exclude selectors; whatever it cannot satisfy
falls through to the auto chain.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable

from . import ExtractionMetadata, ExtractionResult
from .config import DEFAULT_SCRIPT_TIMEOUT
from .document import PageDocument
from .reader import ArticleParser, ReadabilityParser
from .rules import ExtractionMethod, ExtractorRule, coerce_rules, find_matching_rule
from .scripts import ScriptRegistry
from .strategies import (
    METHOD_SELECTORS_FAILED,
    StrategyOutcome,
    extract_by_article_tag,
    extract_by_custom_script,
    extract_by_largest_element,
    extract_by_readability,
    extract_by_selectors,
    extract_by_site_adapter,
)

logger = logging.getLogger(__name__)


def _apply(outcome: StrategyOutcome, metadata: ExtractionMetadata) -> ExtractionResult:
    metadata.method = outcome.method
    metadata.history.append(outcome.method)
    if outcome.selector is not None:
        metadata.selector = outcome.selector
    if outcome.match_count is not None:
        metadata.match_count = outcome.match_count
    if outcome.site is not None and not metadata.matched_rule:
        metadata.matched_rule = outcome.site
    return ExtractionResult(content=outcome.content, metadata=metadata)


def perform_auto_extraction(
    document: PageDocument,
    exclude_selectors: str = "",
    metadata: ExtractionMetadata | None = None,
    *,
    parser: ArticleParser | None = None,
    adapters: dict[str, tuple[str, ...]] | None = None,
) -> ExtractionResult:
    """Run the auto chain. Never fails: the last stage always yields content."""
    if metadata is None:
        metadata = ExtractionMetadata(url=document.location.href, title=document.title)
    article_parser = parser if parser is not None else ReadabilityParser()

    outcome = (
        extract_by_site_adapter(document, exclude_selectors, adapters)
        or extract_by_article_tag(document, exclude_selectors)
        or extract_by_readability(document, article_parser, exclude_selectors)
        or extract_by_largest_element(document, exclude_selectors)
    )
    return _apply(outcome, metadata)


def extract_with_metadata(
    document: PageDocument,
    rules: Iterable[ExtractorRule | dict] | None = None,
    *,
    parser: ArticleParser | None = None,
    registry: ScriptRegistry | None = None,
    script_timeout: float = DEFAULT_SCRIPT_TIMEOUT,
    adapters: dict[str, tuple[str, ...]] | None = None,
) -> ExtractionResult:
    """Extract main content, honouring the first matching caller rule.

    Args:
        document: page to read
        rules: ordered extractor rules (models or raw dicts)
        parser: article parser for the readability stage (default: readability-lxml)
        registry: custom script registry (default: the module-level registry)
        script_timeout: seconds a custom script may run
        adapters: site adapter table override

    Returns:
        ExtractionResult whose metadata names the matched rule and winning method
    """
    start = time.monotonic()
    article_parser = parser if parser is not None else ReadabilityParser()
    metadata = ExtractionMetadata(url=document.location.href, title=document.title)

    rule = find_matching_rule(coerce_rules(rules), document.location.href)
    if rule is None:
        result = perform_auto_extraction(document, "", metadata, parser=article_parser, adapters=adapters)
    else:
        metadata.matched_rule = rule.name
        result = _extract_for_rule(
            document,
            rule,
            metadata,
            parser=article_parser,
            registry=registry,
            script_timeout=script_timeout,
            adapters=adapters,
        )

    logger.debug(
        "Extracted %d chars via %s (rule=%s) in %.0fms",
        len(result.content),
        result.metadata.method,
        result.metadata.matched_rule,
        (time.monotonic() - start) * 1000,
    )
    return result


def _extract_for_rule(
    document: PageDocument,
    rule: ExtractorRule,
    metadata: ExtractionMetadata,
    *,
    parser: ArticleParser,
    registry: ScriptRegistry | None,
    script_timeout: float,
    adapters: dict[str, tuple[str, ...]] | None,
) -> ExtractionResult:
    method = rule.method
    exclude = rule.exclude_selectors

    if method is ExtractionMethod.CUSTOM and rule.custom_script:
        outcome = extract_by_custom_script(document, rule.custom_script, registry=registry, timeout=script_timeout)
        if outcome is not None:
            return _apply(outcome, metadata)

    if rule.selectors:
        outcome = extract_by_selectors(document, rule.selectors, exclude)
        if outcome is not None:
            return _apply(outcome, metadata)
        if method is ExtractionMethod.SELECTORS:
            metadata.method = METHOD_SELECTORS_FAILED
            metadata.history.append(METHOD_SELECTORS_FAILED)
            logger.info("Rule %r: no selector matched, falling back to auto extraction", rule.name)

    if method is ExtractionMethod.READABILITY:
        outcome = extract_by_readability(document, parser, exclude)
        if outcome is not None:
            return _apply(outcome, metadata)
    elif method is ExtractionMethod.LARGEST:
        return _apply(extract_by_largest_element(document, exclude), metadata)

    return perform_auto_extraction(document, exclude, metadata, parser=parser, adapters=adapters)


def get_core_content_text(
    document: PageDocument,
    *,
    parser: ArticleParser | None = None,
    adapters: dict[str, tuple[str, ...]] | None = None,
) -> str:
    """Main content text via the auto chain, ignoring caller rules."""
    return perform_auto_extraction(document, "", parser=parser, adapters=adapters).content
