# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Extraction pipelines, one per (result, retrieval mode) pair.

Every pipeline validates its URL before any network I/O and owns whatever
it opens: the browser session is closed and the HTTP client released on
every exit path.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from urllib.parse import urlsplit

import httpx

from . import ExtractedDocument, PaletteResult, StylesheetSource
from .browser_session import BrowserConfig, BrowserSession, create_session, screenshot_config
from .config import CONTENT_TIMEOUTS, SCREENSHOT_TIMEOUTS, FetchConfig, ReadinessTimeouts
from .content import extract_content
from .dom import DomTree
from .errors import InputError
from .fetcher import collect_stylesheet_links, fetch_document, fetch_stylesheets, new_client
from .palette import build_palette
from .pipeline_timer import PipelineTimer
from .readiness import ReadinessController, ReadinessReport, Stage

logger = logging.getLogger(__name__)

SessionFactory = Callable[[BrowserConfig | None], AbstractAsyncContextManager[BrowserSession]]

_ALLOWED_SCHEMES = ("http", "https")
INVALID_URL_MESSAGE = "Invalid URL format"


def validate_url(url: object) -> str:
    """Return the trimmed URL or raise InputError."""
    if not isinstance(url, str) or not url.strip():
        raise InputError("URL is required")
    url = url.strip()
    try:
        parts = urlsplit(url)
    except ValueError as exc:
        raise InputError(INVALID_URL_MESSAGE) from exc
    if parts.scheme.lower() not in _ALLOWED_SCHEMES:
        raise InputError(INVALID_URL_MESSAGE)
    if not parts.hostname:
        raise InputError(INVALID_URL_MESSAGE)
    return url


def to_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


# ── Rendered mode ────────────────────────────────────────────────────


@dataclass
class RenderedPage:
    report: ReadinessReport
    stylesheets: list[StylesheetSource] = field(default_factory=list)
    cross_origin_stylesheets: list[str] = field(default_factory=list)


async def render_page(
    url: str,
    *,
    timeouts: ReadinessTimeouts = CONTENT_TIMEOUTS,
    browser_config: BrowserConfig | None = None,
    screenshot: bool = False,
    with_stylesheets: bool = False,
    session_factory: SessionFactory = create_session,
) -> RenderedPage:
    """Launch a session, run the readiness state machine, close the session."""
    timer = PipelineTimer()
    timer.stage(Stage.LAUNCH)
    async with session_factory(browser_config) as session:
        controller = ReadinessController(session, timeouts, timer=timer)
        report = await controller.run(url, screenshot=screenshot)
        page = RenderedPage(report=report)
        if with_stylesheets:
            page.stylesheets, page.cross_origin_stylesheets = await session.stylesheets()
    logger.info("Rendered %s in %.0fms %s", url, timer.total_ms(), report.timings)
    return page


async def extract_content_rendered(
    url: str,
    *,
    timeouts: ReadinessTimeouts = CONTENT_TIMEOUTS,
    browser_config: BrowserConfig | None = None,
    session_factory: SessionFactory = create_session,
) -> ExtractedDocument:
    url = validate_url(url)
    page = await render_page(url, timeouts=timeouts, browser_config=browser_config, session_factory=session_factory)
    tree = DomTree.parse(page.report.html, page.report.final_url or url)
    return extract_content(tree, url)


async def extract_palette_rendered(
    url: str,
    *,
    timeouts: ReadinessTimeouts = CONTENT_TIMEOUTS,
    browser_config: BrowserConfig | None = None,
    fetch_config: FetchConfig | None = None,
    session_factory: SessionFactory = create_session,
    client: httpx.AsyncClient | None = None,
) -> PaletteResult:
    """Palette from the rendered DOM and the page's CSSOM.

    Cross-origin sheets are unreadable from the page and are fetched
    directly afterwards, within the usual stylesheet limit.
    """
    url = validate_url(url)
    fetch_config = fetch_config or FetchConfig()
    page = await render_page(
        url,
        timeouts=timeouts,
        browser_config=browser_config,
        with_stylesheets=True,
        session_factory=session_factory,
    )
    final_url = page.report.final_url or url
    sheets = list(page.stylesheets)
    warnings: list[str] = []
    if not page.report.challenge_cleared:
        warnings.append("Challenge page did not clear; results may be incomplete.")

    remote = page.cross_origin_stylesheets[: max(fetch_config.max_stylesheets - len(sheets), 0)]
    if remote:
        fetched = await fetch_stylesheets(remote, config=fetch_config, client=client)
        if len(fetched) < len(remote):
            warnings.append(f"{len(remote) - len(fetched)} of {len(remote)} stylesheets could not be fetched.")
        sheets.extend(fetched)

    tree = DomTree.parse(page.report.html, final_url)
    return build_palette(tree, final_url, sheets, warnings=warnings, source_url=url)


async def capture_screenshot(
    url: str,
    *,
    timeouts: ReadinessTimeouts = SCREENSHOT_TIMEOUTS,
    headless: bool = True,
    session_factory: SessionFactory = create_session,
) -> bytes:
    """Full-page PNG of the rendered page."""
    url = validate_url(url)
    page = await render_page(
        url,
        timeouts=timeouts,
        browser_config=screenshot_config(headless),
        screenshot=True,
        session_factory=session_factory,
    )
    return page.report.screenshot or b""


# ── Direct-fetch mode ────────────────────────────────────────────────


async def extract_content_direct(
    url: str,
    *,
    config: FetchConfig | None = None,
    client: httpx.AsyncClient | None = None,
) -> ExtractedDocument:
    url = validate_url(url)
    doc = await fetch_document(url, config=config, client=client)
    return extract_content(DomTree.parse(doc.html, doc.url), url)


async def extract_palette_direct(
    url: str,
    *,
    config: FetchConfig | None = None,
    client: httpx.AsyncClient | None = None,
) -> PaletteResult:
    """Fetch the document, then its first linked stylesheets concurrently."""
    url = validate_url(url)
    config = config or FetchConfig()
    if client is None:
        async with new_client(config) as own_client:
            return await extract_palette_direct(url, config=config, client=own_client)

    doc = await fetch_document(url, config=config, client=client)
    tree = DomTree.parse(doc.html, doc.url)

    links = collect_stylesheet_links(tree, doc.url, limit=config.max_stylesheets)
    sheets = await fetch_stylesheets(links, config=config, client=client)
    warnings: list[str] = []
    if len(sheets) < len(links):
        warnings.append(f"{len(links) - len(sheets)} of {len(links)} stylesheets could not be fetched.")

    return build_palette(tree, doc.url, sheets, warnings=warnings, source_url=url)
