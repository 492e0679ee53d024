# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Logging setup for the CLI and embedding applications.

Library modules only ever call ``logging.getLogger(__name__)``. ``configure``
routes those records, and any structlog loggers, through one structlog
pipeline onto stderr so stdout stays reserved for extracted content and
snapshots. ``PAGECONTEXT_LOG_JSON`` switches the renderer to JSON lines.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any, TextIO

import structlog

from .text import truncate_text

if TYPE_CHECKING:
    from .config import Settings

# Event fields longer than this are cut; captured pages can be megabytes.
MAX_FIELD_CHARS = 500

# Third-party loggers that are chatty at DEBUG/INFO during extraction.
NOISY_LOGGERS = ("readability.readability", "asyncio")


def bound_long_fields(_logger: Any, _method: str, event_dict: dict) -> dict:
    for key, value in event_dict.items():
        if key != "exception" and isinstance(value, str) and len(value) > MAX_FIELD_CHARS:
            event_dict[key] = truncate_text(value, MAX_FIELD_CHARS)
    return event_dict


def resolve_level(name: str | None) -> int:
    """``"debug"`` -> ``logging.DEBUG``; unknown or empty names give INFO."""
    level = logging.getLevelNamesMapping().get((name or "").strip().upper())
    return level if level is not None else logging.INFO


def configure(settings: Settings | None = None, *, verbose: bool = False, stream: TextIO | None = None) -> None:
    """Install the structlog pipeline on the root logger.

    Args:
        settings: renderer and level source (defaults: console output at INFO).
        verbose: force DEBUG and let third-party loggers through.
        stream: destination, ``sys.stderr`` when omitted.

    Calling again replaces the previous handler.
    """
    json_output = settings.log_json if settings is not None else False
    level = logging.DEBUG if verbose else resolve_level(settings.log_level if settings is not None else None)
    stream = stream if stream is not None else sys.stderr

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        bound_long_fields,
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
        final_processors = [structlog.processors.format_exc_info, renderer]
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream.isatty())
        final_processors = [renderer]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *final_processors],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if verbose else max(level, logging.WARNING))
