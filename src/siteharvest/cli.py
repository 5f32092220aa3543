# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SiteHarvest CLI: extract, palette, screenshot, serve commands.

Usage:
    siteharvest extract URL [--mode rendered|direct] [-o FILE]
    siteharvest palette URL [--mode direct|rendered] [-o FILE]
    siteharvest screenshot URL -o FILE
    siteharvest serve [--host HOST] [--port PORT] ...
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path

from .browser_session import BrowserConfig
from .config import TIMEOUT_PROFILES, FetchConfig, ServerConfig

logger = logging.getLogger(__name__)


def _validate_output_path(path_str: str | None) -> Path | None:
    """Return the output file path, creating its parent directory."""
    if not path_str:
        return None
    p = Path(path_str)
    p.parent.mkdir(parents=True, exist_ok=True)
    return p


def _emit_json(payload: dict, output: Path | None) -> None:
    text = json.dumps(payload, ensure_ascii=False, indent=2)
    if output is None:
        print(text)
        return
    output.write_text(text + "\n", encoding="utf-8")
    print(f"Saved: {output}", file=sys.stderr)


def _fetch_config(args: argparse.Namespace, base: FetchConfig) -> FetchConfig:
    if args.fetch_timeout is None:
        return base
    return dataclasses.replace(base, document_timeout=args.fetch_timeout)


def cmd_extract(args: argparse.Namespace) -> None:
    """Extract structured text content from one page."""
    from .service import extract_content_direct, extract_content_rendered

    env = ServerConfig.from_env()
    if args.mode == "direct":
        doc = asyncio.run(extract_content_direct(args.url, config=_fetch_config(args, env.fetch)))
    else:
        doc = asyncio.run(
            extract_content_rendered(
                args.url,
                timeouts=TIMEOUT_PROFILES[args.timeout_profile or env.timeout_profile],
                browser_config=BrowserConfig(headless=not args.headed and env.headless),
            )
        )
    _emit_json(doc.to_dict(), _validate_output_path(args.output))


def cmd_palette(args: argparse.Namespace) -> None:
    """Extract colors, fonts and image assets from one page."""
    from .service import extract_palette_direct, extract_palette_rendered

    env = ServerConfig.from_env()
    fetch_config = _fetch_config(args, env.fetch)
    if args.mode == "rendered":
        result = asyncio.run(
            extract_palette_rendered(
                args.url,
                timeouts=TIMEOUT_PROFILES[args.timeout_profile or env.timeout_profile],
                browser_config=BrowserConfig(headless=not args.headed and env.headless),
                fetch_config=fetch_config,
            )
        )
    else:
        result = asyncio.run(extract_palette_direct(args.url, config=fetch_config))
    for warning in result.warnings:
        logger.warning(warning)
    _emit_json(result.to_dict(), _validate_output_path(args.output))


def cmd_screenshot(args: argparse.Namespace) -> None:
    """Save a full-page PNG screenshot."""
    from .service import capture_screenshot

    env = ServerConfig.from_env()
    timeouts = TIMEOUT_PROFILES[args.timeout_profile or "screenshot"]
    png = asyncio.run(capture_screenshot(args.url, timeouts=timeouts, headless=not args.headed and env.headless))
    output = _validate_output_path(args.output)
    output.write_bytes(png)
    print(f"Saved: {output} ({len(png)} bytes)", file=sys.stderr)


def cmd_serve(args: argparse.Namespace) -> None:
    """Start the HTTP server, forwarding any extra args to it."""
    from .server import main

    main(argv=getattr(args, "_server_argv", []))


def _add_browser_options(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--timeout-profile",
        choices=sorted(TIMEOUT_PROFILES),
        default=None,
        help="Readiness deadlines for rendered mode (default: content)",
    )
    p.add_argument("--headed", action="store_true", help="Show the browser window")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="SiteHarvest CLI",
        prog="siteharvest",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_extract = subparsers.add_parser("extract", help="Extract text content, headings and buttons")
    p_extract.add_argument("url", metavar="URL")
    p_extract.add_argument("--mode", choices=["rendered", "direct"], default="rendered")
    p_extract.add_argument("--fetch-timeout", type=float, default=None, help="Direct-mode fetch timeout (s)")
    p_extract.add_argument("-o", "--output", type=str, metavar="FILE", help="Write JSON to FILE instead of stdout")
    _add_browser_options(p_extract)

    p_palette = subparsers.add_parser("palette", help="Extract colors, fonts and image assets")
    p_palette.add_argument("url", metavar="URL")
    p_palette.add_argument("--mode", choices=["direct", "rendered"], default="direct")
    p_palette.add_argument("--fetch-timeout", type=float, default=None, help="Document fetch timeout (s)")
    p_palette.add_argument("-o", "--output", type=str, metavar="FILE", help="Write JSON to FILE instead of stdout")
    _add_browser_options(p_palette)

    p_shot = subparsers.add_parser("screenshot", help="Save a full-page PNG screenshot")
    p_shot.add_argument("url", metavar="URL")
    p_shot.add_argument("-o", "--output", type=str, metavar="FILE", required=True, help="PNG output path")
    _add_browser_options(p_shot)

    subparsers.add_parser(
        "serve",
        help="Start the HTTP server (extra args forwarded to the server)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
examples:
  %(prog)s                          Start on 127.0.0.1:3000
  %(prog)s --host 0.0.0.0 --port 8080
  %(prog)s --cors-origin https://app.example.com""",
    )

    commands = {
        "extract": cmd_extract,
        "palette": cmd_palette,
        "screenshot": cmd_screenshot,
        "serve": cmd_serve,
    }

    args, remaining = parser.parse_known_args(argv)

    # Forward remaining args to server when using 'serve' command
    if args.command == "serve":
        args._server_argv = remaining
    elif remaining:
        parser.error(f"unrecognized arguments: {' '.join(remaining)}")

    if args.command != "serve":
        from .logging_config import configure as configure_logging

        configure_logging(json_output=False, level="DEBUG" if args.verbose else "WARNING")

    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except SystemExit:
        raise
    except Exception as e:
        from .problem_details import from_exception

        problem = from_exception(e)
        print(problem.to_cli_text(), file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc(file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
