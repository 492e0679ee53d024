# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Custom extraction scripts: a registry of pre-approved callables.

A rule with ``method: custom`` names its script in ``customScript``. Only
callables registered here can run; rule text is never evaluated as code.
Each call receives the page document and a read-only window view, runs on
a daemon worker thread, and is abandoned once its time budget is spent.

    @register_script("hn-comments")
    def hn_comments(document, window):
        return "\\n".join(document.text_of(el) for el in document.query_selector_all(".comment"))
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from .config import DEFAULT_SCRIPT_TIMEOUT
from .document import PageDocument, PageWindow
from .errors import ScriptError, ScriptTimeoutError

logger = logging.getLogger(__name__)

ScriptFn = Callable[[PageDocument, PageWindow], Any]


class ScriptRegistry:
    """Name → extraction callable."""

    def __init__(self) -> None:
        self._scripts: dict[str, ScriptFn] = {}

    def add(self, name: str, fn: ScriptFn) -> None:
        key = name.strip()
        if not key:
            raise ValueError("Script name must not be blank")
        if key in self._scripts and self._scripts[key] is not fn:
            logger.warning("Replacing registered extraction script %r", key)
        self._scripts[key] = fn

    def register(self, name: str | None = None) -> Callable[[ScriptFn], ScriptFn]:
        """Decorator form of :meth:`add`; defaults to the function's name."""

        def decorator(fn: ScriptFn) -> ScriptFn:
            self.add(name or fn.__name__, fn)
            return fn

        return decorator

    def get(self, name: str) -> ScriptFn | None:
        return self._scripts.get(name.strip())

    def names(self) -> list[str]:
        return sorted(self._scripts)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip() in self._scripts

    def __len__(self) -> int:
        return len(self._scripts)


default_registry = ScriptRegistry()
register_script = default_registry.register


def run_script(
    name: str,
    document: PageDocument,
    *,
    registry: ScriptRegistry | None = None,
    timeout: float = DEFAULT_SCRIPT_TIMEOUT,
) -> str:
    """Run a registered script and return its string result.

    The script gets its own copy of *document*. A script that overruns its
    timeout keeps running on a daemon thread, and the copy keeps it from
    changing the tree the caller goes on to read.

    Raises:
        ScriptError: unknown name, the script raised, or it returned a non-string.
        ScriptTimeoutError: the script did not finish within *timeout* seconds.
    """
    reg = registry if registry is not None else default_registry
    fn = reg.get(name)
    if fn is None:
        raise ScriptError(f"No extraction script registered as {name!r}", script=name)

    private = document.copy()
    outcome: dict[str, Any] = {}

    def _target() -> None:
        try:
            outcome["result"] = fn(private, private.window)
        except Exception as exc:  # noqa: BLE001 - re-raised on the calling thread
            outcome["error"] = exc

    worker = threading.Thread(target=_target, name=f"pagecontext-script-{name}", daemon=True)
    worker.start()
    worker.join(timeout)
    if worker.is_alive():
        raise ScriptTimeoutError(
            f"Extraction script {name!r} exceeded {timeout:g}s",
            script=name,
            timeout=timeout,
        )
    if "error" in outcome:
        raise ScriptError(f"Extraction script {name!r} raised: {outcome['error']!r}", script=name) from outcome[
            "error"
        ]

    result = outcome.get("result")
    if not isinstance(result, str):
        raise ScriptError(
            f"Extraction script {name!r} returned {type(result).__name__}, expected str",
            script=name,
        )
    return result


def execute_custom_script(
    name: str,
    document: PageDocument,
    *,
    registry: ScriptRegistry | None = None,
    timeout: float = DEFAULT_SCRIPT_TIMEOUT,
) -> str | None:
    """Strategy wrapper around :func:`run_script`: any failure is logged and gives None."""
    if not name or not name.strip():
        return None
    try:
        return run_script(name, document, registry=registry, timeout=timeout)
    except ScriptError as exc:
        logger.error("Custom extraction script error: %s", exc, exc_info=exc.__cause__ is not None)
        return None
