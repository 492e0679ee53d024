# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""pagecontext exception hierarchy.

All pagecontext-specific errors inherit from PageContextError, allowing
callers to catch the base class for any failure or specific subclasses
for targeted handling.

Extraction itself never raises these to its caller: strategy failures
degrade to a miss and the fallback chain continues.
"""

from __future__ import annotations


class PageContextError(Exception):
    """Base exception for all pagecontext errors."""


class CaptureError(PageContextError):
    """Browser launch, navigation, or page capture failure."""


class RuleConfigError(PageContextError):
    """Extractor rules file could not be read or failed validation."""

    def __init__(self, message: str, *, source: str = "") -> None:
        super().__init__(message)
        self.source = source


class ScriptError(PageContextError):
    """Custom extraction script failed (unknown name, raised, or bad result)."""

    def __init__(self, message: str, *, script: str = "") -> None:
        super().__init__(message)
        self.script = script


class ScriptTimeoutError(ScriptError):
    """Custom extraction script exceeded its time budget."""

    def __init__(self, message: str, *, script: str = "", timeout: float = 0.0) -> None:
        super().__init__(message, script=script)
        self.timeout = timeout
