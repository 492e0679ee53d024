# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Caller-supplied extractor rules and URL matching.

Rules arrive as JSON/YAML lists using camelCase keys (``urlPattern``,
``excludeSelectors``, ``customScript``); snake_case is accepted too.
At most one rule applies per extraction: the first active, well-formed
rule whose pattern matches the URL case-insensitively.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Sequence
from enum import StrEnum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .errors import RuleConfigError

logger = logging.getLogger(__name__)


class ExtractionMethod(StrEnum):
    """How a matched rule wants the page extracted."""

    AUTO = "auto"
    SELECTORS = "selectors"
    READABILITY = "readability"
    LARGEST = "largest"
    CUSTOM = "custom"


_METHOD_VALUES = frozenset(m.value for m in ExtractionMethod)


class ExtractorRule(BaseModel):
    """One extraction rule, as configured by the user."""

    # Numeric names and patterns (e.g. `urlPattern: 2024` in YAML) are kept as text.
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        coerce_numbers_to_str=True,
    )

    name: str = ""
    url_pattern: str = ""
    method: ExtractionMethod = ExtractionMethod.AUTO
    selectors: str = ""
    exclude_selectors: str = ""
    custom_script: str = ""
    active: bool = True

    @field_validator("method", mode="before")
    @classmethod
    def _unknown_method_is_auto(cls, value: Any) -> Any:
        if value in (None, ""):
            return ExtractionMethod.AUTO
        if isinstance(value, str) and value not in _METHOD_VALUES:
            logger.warning("Unknown extraction method %r, using auto", value)
            return ExtractionMethod.AUTO
        return value

    @field_validator("name", "url_pattern", "selectors", "exclude_selectors", "custom_script", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def is_candidate(self) -> bool:
        """Active and carrying both a name and a URL pattern."""
        return self.active and bool(self.name) and bool(self.url_pattern)


def coerce_rules(raw: Iterable[ExtractorRule | dict] | None) -> list[ExtractorRule]:
    """Accept rule models or plain dicts; entries that fail validation are skipped."""
    if not raw:
        return []
    rules: list[ExtractorRule] = []
    for index, item in enumerate(raw):
        if isinstance(item, ExtractorRule):
            rules.append(item)
            continue
        try:
            rules.append(ExtractorRule.model_validate(item))
        except ValidationError as exc:
            logger.warning("Skipping invalid extractor rule #%d: %s", index, exc.errors()[0]["msg"])
    return rules


def rule_matches(rule: ExtractorRule, url: str) -> bool:
    """True when *rule* is a candidate and its pattern matches *url*.

    A pattern that does not compile is logged and treated as no match.
    """
    if not rule.is_candidate:
        return False
    try:
        pattern = re.compile(rule.url_pattern, re.IGNORECASE)
    except (re.error, OverflowError) as exc:
        logger.warning("Invalid URL pattern %r in rule %r: %s", rule.url_pattern, rule.name, exc)
        return False
    return pattern.search(url) is not None


def find_matching_rule(rules: Sequence[ExtractorRule], url: str) -> ExtractorRule | None:
    """First rule that :func:`rule_matches` *url*, or None.

    A broken pattern never stops later rules from matching.
    """
    return next((rule for rule in rules if rule_matches(rule, url)), None)


def load_rules(path: str | Path) -> list[ExtractorRule]:
    """Load a rule list from a ``.json``, ``.yaml`` or ``.yml`` file.

    The file holds either a list of rules or a mapping with a
    ``customContentExtractors`` (or ``rules``) list.
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise RuleConfigError(f"Cannot read rules file: {exc}", source=str(p)) from exc

    try:
        if p.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise RuleConfigError(f"Rules file is not valid {p.suffix or 'YAML'}: {exc}", source=str(p)) from exc

    if isinstance(data, dict):
        data = data.get("customContentExtractors", data.get("rules"))
    if data is None:
        return []
    if not isinstance(data, list):
        raise RuleConfigError("Rules file must contain a list of rules", source=str(p))
    return coerce_rules(data)
