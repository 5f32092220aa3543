# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SiteHarvest HTTP server.

Endpoints:
- GET  /health: liveness, no dependency on the extraction pipeline
- POST /extract: structured text content (``mode``: rendered | direct)
- POST /palette: colors, fonts and image assets (``mode``: direct | rendered)
- GET  /screenshot: usage info
- POST /screenshot: full-page PNG as a ``data:`` URL

Every error is an RFC 9457 problem document (``application/problem+json``)
that also carries an ``error`` message field. All logging goes to stderr.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import sys
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ValidationError
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from . import ExtractedDocument, PaletteResult
from .browser_session import BrowserConfig
from .config import ServerConfig
from .errors import SiteHarvestError
from .gateway import RequestIdMiddleware
from .problem_details import from_exception, from_validation
from .service import (
    capture_screenshot,
    extract_content_direct,
    extract_content_rendered,
    extract_palette_direct,
    extract_palette_rendered,
    to_data_url,
)

logger = logging.getLogger("siteharvest.server")


# ── Request models ───────────────────────────────────────────────────


class ExtractRequest(BaseModel):
    url: str
    mode: Literal["rendered", "direct"] = "rendered"


class PaletteRequest(BaseModel):
    url: str
    mode: Literal["direct", "rendered"] = "direct"


class ScreenshotRequest(BaseModel):
    url: str


# ── Pipeline wiring ──────────────────────────────────────────────────


@dataclass(frozen=True)
class Pipelines:
    """The extraction callables the endpoints dispatch to (swappable in tests)."""

    content_rendered: Callable[[str], Awaitable[ExtractedDocument]]
    content_direct: Callable[[str], Awaitable[ExtractedDocument]]
    palette_direct: Callable[[str], Awaitable[PaletteResult]]
    palette_rendered: Callable[[str], Awaitable[PaletteResult]]
    screenshot: Callable[[str], Awaitable[bytes]]


def default_pipelines(config: ServerConfig) -> Pipelines:
    browser_config = BrowserConfig(headless=config.headless)
    timeouts = config.readiness

    async def content_rendered(url: str) -> ExtractedDocument:
        return await extract_content_rendered(url, timeouts=timeouts, browser_config=browser_config)

    async def content_direct(url: str) -> ExtractedDocument:
        return await extract_content_direct(url, config=config.fetch)

    async def palette_direct(url: str) -> PaletteResult:
        return await extract_palette_direct(url, config=config.fetch)

    async def palette_rendered(url: str) -> PaletteResult:
        return await extract_palette_rendered(
            url, timeouts=timeouts, browser_config=browser_config, fetch_config=config.fetch
        )

    async def screenshot(url: str) -> bytes:
        return await capture_screenshot(url, headless=config.headless)

    return Pipelines(
        content_rendered=content_rendered,
        content_direct=content_direct,
        palette_direct=palette_direct,
        palette_rendered=palette_rendered,
        screenshot=screenshot,
    )


# ── Helpers ──────────────────────────────────────────────────────────


def _now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _bad_request(request: Request, detail: str, *, field_name: str = "url") -> Response:
    return from_validation(detail, field_name=field_name, instance=request.url.path).to_response()


async def _parse_body(request: Request, model: type[BaseModel]) -> BaseModel | Response:
    """Parse and validate the JSON body, or return a 400 problem response."""
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _bad_request(request, "Request body must be a JSON object", field_name="")
    if not isinstance(payload, dict):
        return _bad_request(request, "Request body must be a JSON object", field_name="")
    if not payload.get("url"):
        return _bad_request(request, "URL is required")
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        field_name = ".".join(str(p) for p in first.get("loc", ())) or "url"
        return _bad_request(request, first.get("msg", "Invalid request"), field_name=field_name)


def _problem(exc: BaseException, request: Request) -> Response:
    problem = from_exception(exc, instance=request.url.path)
    if isinstance(exc, SiteHarvestError):
        logger.warning("%s failed: %s (%s)", request.url.path, problem.detail, type(exc).__name__)
    else:
        logger.exception("%s failed with unexpected error", request.url.path)
    return problem.to_response()


async def _dispatch(request: Request, url: str, run: Callable[[str], Awaitable[Any]]) -> Any | Response:
    logger.info("%s: url=%s", request.url.path, url)
    try:
        return await run(url)
    except Exception as exc:
        return _problem(exc, request)


# ── Endpoints ────────────────────────────────────────────────────────


async def health(request: Request) -> Response:
    return JSONResponse({"status": "ok", "timestamp": _now_iso()})


async def extract(request: Request) -> Response:
    body = await _parse_body(request, ExtractRequest)
    if isinstance(body, Response):
        return body
    pipelines: Pipelines = request.app.state.pipelines
    run = pipelines.content_direct if body.mode == "direct" else pipelines.content_rendered
    result = await _dispatch(request, body.url, run)
    if isinstance(result, Response):
        return result
    return JSONResponse(result.to_dict())


async def palette(request: Request) -> Response:
    body = await _parse_body(request, PaletteRequest)
    if isinstance(body, Response):
        return body
    pipelines: Pipelines = request.app.state.pipelines
    run = pipelines.palette_rendered if body.mode == "rendered" else pipelines.palette_direct
    result = await _dispatch(request, body.url, run)
    if isinstance(result, Response):
        return result
    return JSONResponse(result.to_dict())


async def screenshot_info(request: Request) -> Response:
    return JSONResponse(
        {
            "message": "Screenshot API is running",
            "usage": 'Send a POST request with {"url": "https://example.com"} to capture a screenshot',
            "endpoints": {
                "POST /screenshot": "Capture a full page screenshot of the provided URL",
                "GET /health": "Health check",
            },
        }
    )


async def screenshot(request: Request) -> Response:
    body = await _parse_body(request, ScreenshotRequest)
    if isinstance(body, Response):
        return body
    pipelines: Pipelines = request.app.state.pipelines
    result = await _dispatch(request, body.url, pipelines.screenshot)
    if isinstance(result, Response):
        return result
    return JSONResponse(
        {
            "success": True,
            "screenshot": to_data_url(result),
            "url": body.url,
            "timestamp": _now_iso(),
        }
    )


# ── Application factory ──────────────────────────────────────────────


def create_app(config: ServerConfig | None = None, *, pipelines: Pipelines | None = None) -> Starlette:
    """Build the Starlette app.

    Middleware order (outermost first): request ID → CORS → gzip → routes.
    """
    config = config or ServerConfig()
    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/extract", extract, methods=["POST"]),
        Route("/palette", palette, methods=["POST"]),
        Route("/screenshot", screenshot_info, methods=["GET"]),
        Route("/screenshot", screenshot, methods=["POST"]),
    ]
    middleware = [
        Middleware(RequestIdMiddleware),
        Middleware(
            CORSMiddleware,
            allow_origins=list(config.cors_origins),
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "X-Request-ID"],
            expose_headers=["X-Request-ID"],
        ),
        Middleware(GZipMiddleware, minimum_size=1000),
    ]
    app = Starlette(routes=routes, middleware=middleware)
    app.state.config = config
    app.state.pipelines = pipelines or default_pipelines(config)
    return app


# ── Entry point ──────────────────────────────────────────────────────


def _parse_server_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI args. Flags left unset fall back to ``SITEHARVEST_*`` env vars."""
    parser = argparse.ArgumentParser(description="SiteHarvest HTTP server")
    parser.add_argument("--host", default=None, help="Bind host (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: 3000)")
    parser.add_argument(
        "--cors-origin",
        action="append",
        default=None,
        help="Allowed CORS origin (repeatable, default: *)",
    )
    parser.add_argument(
        "--timeout-profile",
        choices=["content", "screenshot", "extended"],
        default=None,
        help="Readiness deadlines for rendered mode (default: content)",
    )
    parser.add_argument("--headed", action="store_true", default=False, help="Show the browser window")
    parser.add_argument("--log-level", default=None, help="Log level (default: INFO)")
    args, _ = parser.parse_known_args(argv)
    return args


def resolve_server_config(args: argparse.Namespace, environ: dict[str, str] | None = None) -> ServerConfig:
    """CLI flags > env vars > defaults."""
    config = ServerConfig.from_env(os.environ if environ is None else environ)
    overrides: dict[str, Any] = {}
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.cors_origin:
        overrides["cors_origins"] = tuple(args.cors_origin)
    if args.timeout_profile:
        overrides["timeout_profile"] = args.timeout_profile
    if args.headed:
        overrides["headless"] = False
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    return dataclasses.replace(config, **overrides) if overrides else config


def main(argv: list[str] | None = None) -> None:
    """Entry point for the HTTP server."""
    import uvicorn

    args = _parse_server_args(argv if argv is not None else sys.argv[1:])
    config = resolve_server_config(args)

    # Configure structlog BEFORE any log output
    from .logging_config import configure as configure_logging

    configure_logging(json_output=True, level=config.log_level)

    logger.info(
        "Starting SiteHarvest server (host=%s, port=%d, profile=%s, headless=%s)",
        config.host,
        config.port,
        config.timeout_profile,
        config.headless,
    )
    if "*" in config.cors_origins:
        logger.warning("CORS allows any origin; set SITEHARVEST_CORS_ORIGIN to restrict it")

    with suppress(KeyboardInterrupt):
        uvicorn.run(
            create_app(config),
            host=config.host,
            port=config.port,
            log_config=None,
            access_log=False,
        )


if __name__ == "__main__":
    main()
