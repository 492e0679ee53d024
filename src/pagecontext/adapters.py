# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Built-in site adapters: hostname substring → ordered content selectors.

Lookup is first-match over insertion order, by substring containment, so
``scholar.google`` must stay registered before ``google``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from lxml.html import HtmlElement

from .document import PageDocument

logger = logging.getLogger(__name__)

SITE_ADAPTERS: dict[str, tuple[str, ...]] = {
    "scholar.google": ("#gs_res_ccl_mid",),
    "google": ("#search",),
    "csdn": ("#content_views",),
    "bing": ("#b_results",),
    "wikipedia": ("#mw-content-text",),
    "faz": (".atc-Text",),
    "golem": ("article",),
    "eetimes": ("article",),
    "new.qq.com": (".content-article",),
}


@dataclass(frozen=True, slots=True)
class AdapterMatch:
    """A resolved adapter: the site key, its selector list, and the element found."""

    site: str
    selectors: tuple[str, ...]
    element: HtmlElement


def find_site_adapter(
    hostname: str,
    adapters: dict[str, tuple[str, ...]] | None = None,
) -> tuple[str, tuple[str, ...]] | None:
    """Return the first ``(site, selectors)`` whose key occurs in *hostname*."""
    table = SITE_ADAPTERS if adapters is None else adapters
    for site, selectors in table.items():
        if site in hostname:
            return site, selectors
    return None


def resolve_site_adapter(
    document: PageDocument,
    adapters: dict[str, tuple[str, ...]] | None = None,
) -> AdapterMatch | None:
    """Resolve the adapter for the document's hostname to an element.

    Only the first matching site is consulted; if none of its selectors
    resolves, the lookup fails without trying later sites.
    """
    found = find_site_adapter(document.location.hostname, adapters)
    if found is None:
        return None
    site, selectors = found
    element = document.query_first_of(selectors)
    if element is None:
        logger.debug("Site adapter %r matched host but no selector resolved", site)
        return None
    return AdapterMatch(site=site, selectors=selectors, element=element)
