# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Image asset discovery and URL normalization.

Each reference resolves against the base of the source it came from: the
page URL for markup (``<img>``, ``style`` attributes, ``<style>`` blocks) and
the stylesheet's own URL for linked CSS.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from urllib.parse import urljoin, urlsplit

from . import StylesheetSource
from .css import dedupe
from .dom import DomTree

logger = logging.getLogger(__name__)

MAX_ASSETS = 20

IMAGE_EXTENSIONS: tuple[str, ...] = (".jpg", ".jpeg", ".png", ".webp", ".svg")

# Favicons, tracking pixels, analytics beacons.
NOISE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"favicon", re.IGNORECASE),
    re.compile(r"apple-touch-icon", re.IGNORECASE),
    re.compile(r"(?:^|[/_.-])(?:pixel|spacer|blank|1x1)(?:[/_.-]|$)", re.IGNORECASE),
    re.compile(r"(?:^|[/_.-])track(?:ing|er)?(?:[/_.-]|$)", re.IGNORECASE),
    re.compile(r"analytics|beacon|doubleclick|googletagmanager|facebook\.com/tr", re.IGNORECASE),
)

# Explicit small dimensions in a path (16x16, 32x32, 64x64 …)
_DIMENSION_RE = re.compile(r"(?<!\d)\d{1,2}x\d{1,2}(?!\d)", re.IGNORECASE)

_BACKGROUND_DECL_RE = re.compile(r"background(?:-image)?\s*:([^;{}]*)", re.IGNORECASE)
_CSS_URL_RE = re.compile(r"url\(\s*(['\"]?)([^'\")]+)\1\s*\)", re.IGNORECASE)


def normalize_asset_url(raw_url: str, base_url: str) -> str:
    """Make *raw_url* absolute.

    ``//host/x`` → ``https://host/x``; absolute and ``data:`` URLs pass
    through; everything else resolves against *base_url*.
    """
    url = raw_url.strip()
    if not url:
        return ""
    if url.startswith("//"):
        return "https:" + url
    lowered = url.lower()
    if lowered.startswith(("http://", "https://", "data:")):
        return url
    return urljoin(base_url, url)


def css_image_urls(css_text: str) -> list[str]:
    """Raw ``url(...)`` values of background / background-image declarations.

    Layered backgrounds yield every layer's URL, in order.
    """
    return [
        m.group(2).strip()
        for decl in _BACKGROUND_DECL_RE.finditer(css_text)
        for m in _CSS_URL_RE.finditer(decl.group(1))
    ]


def collect_assets(tree: DomTree, page_url: str, stylesheets: Iterable[StylesheetSource] = ()) -> list[str]:
    """All candidate image URLs, absolute, unfiltered, in discovery order."""
    found: list[str] = []

    for el in tree.select("img"):
        for attr in ("src", "data-src"):
            raw = el.get(attr)
            if raw:
                found.append(normalize_asset_url(raw, page_url))

    for style in tree.inline_styles():
        found.extend(normalize_asset_url(u, page_url) for u in css_image_urls(style))

    for block in tree.style_blocks():
        found.extend(normalize_asset_url(u, page_url) for u in css_image_urls(block))

    for sheet in stylesheets:
        base = sheet.url or page_url
        found.extend(normalize_asset_url(u, base) for u in css_image_urls(sheet.text))

    return [u for u in found if u]


def is_noise_asset(url: str) -> bool:
    if url.lower().startswith("data:"):
        return True
    path = urlsplit(url).path
    if _DIMENSION_RE.search(path):
        return True
    return any(p.search(url) for p in NOISE_PATTERNS)


def has_image_extension(url: str, extensions: tuple[str, ...] = IMAGE_EXTENSIONS) -> bool:
    """True when the URL path (query and fragment ignored) ends in an image extension."""
    return urlsplit(url).path.lower().endswith(extensions)


def filter_assets(urls: Iterable[str], *, limit: int = MAX_ASSETS) -> list[str]:
    """Drop data URIs, icons, pixels and non-image paths; dedupe; cap."""
    kept = [u for u in urls if not is_noise_asset(u) and has_image_extension(u)]
    result = dedupe(kept, limit)
    logger.debug("Assets: %d kept of %d candidates", len(result), len(kept))
    return result
