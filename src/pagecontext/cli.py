# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Page Context CLI: extract, snapshot, match commands.

Usage:
    python -m pagecontext extract URL [--rules FILE] [--json]
    python -m pagecontext extract [URL] --html FILE [--rules FILE] [--json]
    python -m pagecontext snapshot URL [--rules FILE] [--full-html] [--format json|prompt]
    python -m pagecontext match URL --rules FILE
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import logging
import sys
from pathlib import Path

from . import logging_config
from .config import Settings
from .document import PageDocument
from .errors import CaptureError, PageContextError
from .rules import ExtractorRule, find_matching_rule, load_rules, rule_matches

logger = logging.getLogger(__name__)


def _require_cli_deps() -> None:
    """Check that CLI optional dependencies are installed."""
    try:
        from tabulate import tabulate  # noqa: F401
    except ImportError as e:
        print(
            f"Missing CLI dependency: {e.name}\nInstall with: pip install pagecontext[cli]",
            file=sys.stderr,
        )
        sys.exit(1)


def _load_rules_arg(args: argparse.Namespace) -> list[ExtractorRule]:
    return load_rules(args.rules) if args.rules else []


def _import_script_modules(modules: list[str] | None) -> None:
    """Import modules that register custom extraction scripts."""
    for name in modules or []:
        try:
            importlib.import_module(name)
        except ImportError as exc:
            raise PageContextError(f"Cannot import script module {name!r}: {exc}") from exc


async def _capture_live(url: str, settings: Settings) -> PageDocument:
    from .browser_session import BrowserConfig, BrowserSession

    async with BrowserSession(BrowserConfig.from_settings(settings)) as session:
        await session.navigate(url)
        return await session.capture()


def _load_document(args: argparse.Namespace, settings: Settings) -> PageDocument:
    """Static document from ``--html``, else a live capture of the target URL."""
    if args.html:
        path = Path(args.html)
        try:
            html = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise CaptureError(f"Cannot read HTML file: {exc}") from exc
        url = args.target or path.resolve().as_uri()
        return PageDocument.from_html(html, url=url, viewport=(settings.viewport_width, settings.viewport_height))
    if not args.target:
        raise PageContextError("A URL or --html FILE is required")
    return asyncio.run(_capture_live(args.target, settings))


def cmd_extract(args: argparse.Namespace, settings: Settings) -> None:
    """Print the main content of a page."""
    from .extractor import extract_with_metadata
    from .serializer import result_to_json

    rules = _load_rules_arg(args)
    _import_script_modules(args.script_module)
    document = _load_document(args, settings)
    result = extract_with_metadata(document, rules, script_timeout=settings.script_timeout)

    if args.json:
        print(result_to_json(result))
        return
    meta = result.metadata
    print(f"# method={meta.method} selector={meta.selector or '-'} rule={meta.matched_rule or '-'}", file=sys.stderr)
    print(result.content)


def cmd_snapshot(args: argparse.Namespace, settings: Settings) -> None:
    """Print a bounded page context snapshot."""
    from .serializer import to_agent_prompt, to_json
    from .snapshot import build_snapshot

    rules = _load_rules_arg(args)
    _import_script_modules(args.script_module)
    document = _load_document(args, settings)
    snapshot = build_snapshot(
        document,
        rules,
        include_full_html=args.full_html,
        script_timeout=settings.script_timeout,
    )
    if snapshot is None:
        raise CaptureError(
            f"Only http(s) pages can be captured, got {document.location.href!r} (give the page URL alongside --html)"
        )
    print(to_agent_prompt(snapshot) if args.format == "prompt" else to_json(snapshot))


def cmd_match(args: argparse.Namespace, settings: Settings) -> None:
    """Show which extractor rule applies to a URL."""
    _require_cli_deps()
    from tabulate import tabulate

    rules = load_rules(args.rules)
    winner = find_matching_rule(rules, args.target)
    rows = [
        [
            index,
            rule.name or "-",
            rule.method.value,
            rule.url_pattern or "-",
            "yes" if rule.active else "no",
            "yes" if rule_matches(rule, args.target) else "",
            "<<" if rule is winner else "",
        ]
        for index, rule in enumerate(rules, 1)
    ]
    headers = ["#", "Name", "Method", "URL pattern", "Active", "Matches", "Applied"]
    print(tabulate(rows, headers=headers, tablefmt="simple"))
    print()
    print(f"Applied rule: {winner.name}" if winner else "No rule applies; automatic extraction is used.")


def _add_source_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("target", nargs="?", metavar="URL", help="Page URL (live capture, or the URL of --html)")
    parser.add_argument("--html", type=str, metavar="FILE", help="Read a saved HTML file instead of a live page")
    parser.add_argument("--rules", type=str, metavar="FILE", help="Extractor rules (.json, .yaml)")
    parser.add_argument(
        "--script-module",
        action="append",
        metavar="MODULE",
        help="Import MODULE to register custom extraction scripts (repeatable)",
    )


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Page Context CLI", prog="pagecontext")
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_extract = subparsers.add_parser(
        "extract",
        help="Extract the main content of a page",
        epilog="""\
examples:
  %(prog)s https://example.com/post            Live page
  %(prog)s --html saved.html --json            Saved page, JSON with metadata""",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_source_args(p_extract)
    p_extract.add_argument("--json", action="store_true", help="Print content and metadata as JSON")

    p_snapshot = subparsers.add_parser(
        "snapshot",
        help="Build a bounded page context snapshot",
        epilog="""\
examples:
  %(prog)s https://example.com                       JSON snapshot
  %(prog)s https://example.com --format prompt       Markdown for an agent prompt
  %(prog)s https://example.com --html saved.html     Saved copy of that page""",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_source_args(p_snapshot)
    p_snapshot.add_argument("--full-html", action="store_true", help="Include page and body HTML")
    p_snapshot.add_argument("--format", choices=["json", "prompt"], default="json", help="Output format")

    p_match = subparsers.add_parser("match", help="Show which extractor rule applies to a URL")
    p_match.add_argument("target", metavar="URL")
    p_match.add_argument("--rules", type=str, metavar="FILE", required=True, help="Extractor rules (.json, .yaml)")

    commands = {"extract": cmd_extract, "snapshot": cmd_snapshot, "match": cmd_match}

    args = parser.parse_args(argv)
    settings = Settings.from_env()
    logging_config.configure(settings, verbose=args.verbose)

    try:
        commands[args.command](args, settings)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except PageContextError as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            logger.debug("Command failed", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
