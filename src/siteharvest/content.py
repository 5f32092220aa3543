# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Structured text content extraction.

Boilerplate is stripped from a working copy of the tree, then each field is
pulled with its own heuristic:

- paragraphs: 30–500 chars, ≥50% ASCII letters, no boilerplate phrase, first 10
- spans: longer than 10 chars, first 15
- buttons: label + optional href, empty labels dropped
- features: every list item, unfiltered (pricing/feature lists are short)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import UTC, datetime

from . import HEADING_LEVELS, ExtractedDocument, InteractiveElement
from .dom import DomTree, Selector, text_of

logger = logging.getLogger(__name__)

NO_TITLE = "No title found"

PARAGRAPH_MIN_LENGTH = 30
PARAGRAPH_MAX_LENGTH = 500
PARAGRAPH_MIN_ALPHA_RATIO = 0.5
MAX_PARAGRAPHS = 10

SPAN_MIN_LENGTH = 10  # exclusive
MAX_SPANS = 15

BOILERPLATE_PHRASES: tuple[str, ...] = (
    "copyright",
    "©",
    "all rights reserved",
    "privacy policy",
    "terms of service",
    "cookie policy",
    "follow us",
    "subscribe",
)

NOISE_SELECTORS: tuple[Selector, ...] = (
    Selector(tag="script"),
    Selector(tag="style"),
    Selector(tag="footer"),
    Selector(tag="header"),
    Selector(tag="aside"),
    Selector(cls="advertisement"),
    Selector(cls="ads"),
    Selector(cls="cookie-banner"),
)

INTERACTIVE_SELECTORS: tuple[Selector, ...] = (
    Selector(tag="button"),
    Selector(tag="a"),
    Selector(tag="input", attr="type", value="submit"),
    Selector(cls="btn"),
    Selector(cls="button"),
)

_ALPHA_RE = re.compile(r"[a-zA-Z]")


def strip_noise(tree: DomTree, selectors: Iterable[Selector] = NOISE_SELECTORS) -> DomTree:
    """Copy of *tree* without scripts, styles and page chrome."""
    working = tree.copy()
    removed = working.remove(selectors)
    logger.debug("Stripped %d non-content elements", removed)
    return working


def resolve_title(tree: DomTree) -> str:
    title = tree.document_title()
    if title:
        return title
    h1 = tree.select_one("h1")
    if h1 is not None:
        text = text_of(h1)
        if text:
            return text
    return NO_TITLE


def resolve_description(tree: DomTree) -> str:
    return tree.meta_content(name="description") or tree.meta_content(prop="og:description")


def extract_headings(tree: DomTree) -> dict[str, list[str]]:
    headings: dict[str, list[str]] = {}
    for level in HEADING_LEVELS:
        texts = (text_of(el) for el in tree.select(level))
        headings[level] = [t for t in texts if t]
    return headings


def alpha_ratio(text: str) -> float:
    if not text:
        return 0.0
    return len(_ALPHA_RE.findall(text)) / len(text)


def is_content_paragraph(text: str, boilerplate: Iterable[str] = BOILERPLATE_PHRASES) -> bool:
    if not PARAGRAPH_MIN_LENGTH <= len(text) <= PARAGRAPH_MAX_LENGTH:
        return False
    if alpha_ratio(text) < PARAGRAPH_MIN_ALPHA_RATIO:
        return False
    lowered = text.lower()
    return not any(phrase in lowered for phrase in boilerplate)


def extract_paragraphs(
    tree: DomTree,
    *,
    boilerplate: Iterable[str] = BOILERPLATE_PHRASES,
    limit: int = MAX_PARAGRAPHS,
) -> list[str]:
    phrases = tuple(boilerplate)
    kept = [t for t in (text_of(el) for el in tree.select("p")) if is_content_paragraph(t, phrases)]
    return kept[:limit]


def extract_spans(tree: DomTree, *, limit: int = MAX_SPANS) -> list[str]:
    kept = [t for t in (text_of(el) for el in tree.select("span")) if len(t) > SPAN_MIN_LENGTH]
    return kept[:limit]


def extract_interactive(
    tree: DomTree,
    selectors: Iterable[Selector] = INTERACTIVE_SELECTORS,
) -> list[InteractiveElement]:
    elements: list[InteractiveElement] = []
    for el in tree.select_matching(selectors):
        if el.tag == "input":
            label = (el.get("value") or "").strip()
        else:
            label = text_of(el)
        if not label:
            continue
        elements.append(InteractiveElement(text=label, href=el.get("href")))
    return elements


def extract_features(tree: DomTree) -> list[str]:
    features = []
    for li in tree.select("li"):
        parent = li.getparent()
        if parent is None or parent.tag not in ("ul", "ol"):
            continue
        text = text_of(li)
        if text:
            features.append(text)
    return features


def extract_content(
    tree: DomTree,
    url: str,
    *,
    now: datetime | None = None,
    boilerplate: Iterable[str] = BOILERPLATE_PHRASES,
) -> ExtractedDocument:
    """Build an ExtractedDocument. *tree* itself is left untouched."""
    working = strip_noise(tree)
    captured = now or datetime.now(UTC)
    doc = ExtractedDocument(
        url=url,
        title=resolve_title(working),
        meta_description=resolve_description(working),
        headings=extract_headings(working),
        paragraphs=extract_paragraphs(working, boilerplate=boilerplate),
        spans=extract_spans(working),
        buttons=extract_interactive(working),
        features=extract_features(working),
        extracted_at=captured.isoformat().replace("+00:00", "Z"),
    )
    logger.info(
        "Content extracted: %d paragraphs, %d buttons, %d features",
        len(doc.paragraphs),
        len(doc.buttons),
        len(doc.features),
    )
    return doc
