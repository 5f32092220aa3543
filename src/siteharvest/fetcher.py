# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Direct-fetch mode: raw HTML plus a bounded set of linked stylesheets.

No scripts run. The primary document fetch is all-or-nothing; stylesheet
fetches are best effort and a failed sheet is simply left out.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import urljoin, urlsplit

import httpx

from . import StylesheetSource
from .config import FetchConfig
from .css import dedupe
from .dom import DomTree
from .errors import InputError, NavigationError, NetworkError, PageTimeoutError, UpstreamStatusError
from .problem_details import is_resolution_failure

logger = logging.getLogger(__name__)

_ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
_ACCEPT_CSS = "text/css,*/*;q=0.1"


@dataclass(frozen=True, slots=True)
class FetchedDocument:
    url: str  # after redirects
    status_code: int
    html: str


def _origin(url: str) -> str:
    u = httpx.URL(url)
    host = u.raw_host.decode("ascii")
    if ":" in host:
        host = f"[{host}]"
    port = f":{u.port}" if u.port is not None else ""
    return f"{u.scheme}://{host}{port}"


def build_request_headers(url: str, config: FetchConfig | None = None, *, accept: str = _ACCEPT_HTML) -> dict[str, str]:
    """Browser-like request headers; the referer is the target's own origin.

    The origin is rebuilt from the host's ASCII (punycode) form without any
    userinfo, since header values must be ASCII.
    """
    config = config or FetchConfig()
    return {
        "User-Agent": config.user_agent,
        "Accept": accept,
        "Accept-Language": config.accept_language,
        "Referer": _origin(url) + "/",
    }


def new_client(config: FetchConfig | None = None, **kwargs) -> httpx.AsyncClient:
    """AsyncClient with redirects followed and the document timeout as default."""
    config = config or FetchConfig()
    return httpx.AsyncClient(follow_redirects=True, timeout=config.document_timeout, **kwargs)


async def fetch_document(
    url: str,
    *,
    config: FetchConfig | None = None,
    client: httpx.AsyncClient | None = None,
) -> FetchedDocument:
    """GET *url* once.

    Raises:
        NetworkError: host unresolvable or connection refused.
        PageTimeoutError: no complete response within ``document_timeout``.
        UpstreamStatusError: final response is not 2xx.
        NavigationError: any other transport failure.
    """
    config = config or FetchConfig()
    if client is None:
        async with new_client(config) as own_client:
            return await fetch_document(url, config=config, client=own_client)

    try:
        headers = build_request_headers(url, config)
    except httpx.InvalidURL as exc:
        raise InputError("Invalid URL format") from exc
    try:
        response = await client.get(url, headers=headers, timeout=config.document_timeout)
    except httpx.TimeoutException as exc:
        raise PageTimeoutError(f"Fetching {url} timed out after {config.document_timeout:g}s", url=url) from exc
    except httpx.ConnectError as exc:
        reason = "unresolvable host" if is_resolution_failure(str(exc)) else "connection failed"
        raise NetworkError(f"Unable to reach {url}: {reason}", url=url) from exc
    except httpx.HTTPError as exc:
        raise NavigationError(f"Fetching {url} failed: {type(exc).__name__}", url=url) from exc

    if not response.is_success:
        raise UpstreamStatusError(
            f"Fetching {url} returned HTTP {response.status_code}",
            status_code=response.status_code,
            url=url,
        )

    logger.info("Fetched %s (%d, %d bytes)", response.url, response.status_code, len(response.content))
    return FetchedDocument(url=str(response.url), status_code=response.status_code, html=response.text)


def collect_stylesheet_links(tree: DomTree, page_url: str, *, limit: int = 5) -> list[str]:
    """Absolute http(s) URLs of the first *limit* linked stylesheets."""
    resolved = (urljoin(page_url, href) for href in tree.stylesheet_hrefs())
    return dedupe((u for u in resolved if urlsplit(u).scheme in ("http", "https")), limit)


async def _fetch_stylesheet(client: httpx.AsyncClient, url: str, config: FetchConfig) -> StylesheetSource | None:
    # A failed sheet never fails the page.
    try:
        headers = build_request_headers(url, config, accept=_ACCEPT_CSS)
        response = await client.get(url, headers=headers, timeout=config.stylesheet_timeout)
    except Exception as exc:
        logger.warning("Stylesheet %s skipped: %s", url, type(exc).__name__)
        return None
    if not response.is_success:
        logger.warning("Stylesheet %s skipped: HTTP %d", url, response.status_code)
        return None
    return StylesheetSource(url=str(response.url), text=response.text)


async def fetch_stylesheets(
    urls: Iterable[str],
    *,
    config: FetchConfig | None = None,
    client: httpx.AsyncClient | None = None,
) -> list[StylesheetSource]:
    """Fetch all *urls* concurrently; failures are logged and dropped.

    Result order follows *urls*, not completion order.
    """
    config = config or FetchConfig()
    urls = list(urls)
    if not urls:
        return []
    if client is None:
        async with new_client(config) as own_client:
            return await fetch_stylesheets(urls, config=config, client=own_client)

    results = await asyncio.gather(*(_fetch_stylesheet(client, u, config) for u in urls))
    sheets = [s for s in results if s is not None]
    logger.info("Stylesheets: %d of %d fetched", len(sheets), len(urls))
    return sheets
