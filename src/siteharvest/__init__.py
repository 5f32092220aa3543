# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SiteHarvest: content and visual-identity snapshots of web pages.

Produces, per request:
- ExtractedDocument: title, meta description, headings, filtered paragraphs,
  short spans, interactive elements and list-item features
- PaletteResult: CTA and general colors, fonts, image assets and metadata
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

HEADING_LEVELS = ("h1", "h2", "h3", "h4", "h5", "h6")


@dataclass(frozen=True, slots=True)
class InteractiveElement:
    """A button or link label with its optional target."""

    text: str
    href: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "href": self.href}


@dataclass(frozen=True, slots=True)
class StylesheetSource:
    """CSS text plus the URL its relative references resolve against."""

    url: str
    text: str


@dataclass(frozen=True)
class ExtractedDocument:
    """Structured text content of a single page."""

    url: str
    title: str
    meta_description: str
    headings: dict[str, list[str]]
    paragraphs: list[str]
    spans: list[str]
    buttons: list[InteractiveElement]
    features: list[str]
    extracted_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "metaDescription": self.meta_description,
            "headings": {level: list(self.headings.get(level, [])) for level in HEADING_LEVELS},
            "paragraphs": list(self.paragraphs),
            "spans": list(self.spans),
            "buttons": [b.to_dict() for b in self.buttons],
            "features": list(self.features),
            "extractedAt": self.extracted_at,
        }


@dataclass(frozen=True, slots=True)
class PageMetadata:
    title: str
    description: str
    url: str

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "description": self.description, "url": self.url}


@dataclass(frozen=True)
class PaletteResult:
    """Color palette, fonts and image assets of a single page."""

    colors: list[str]  # ranked, CTA colors first
    cta_colors: list[str]
    general_colors: list[str]
    assets: list[str]
    fonts: list[str]
    metadata: PageMetadata
    warnings: list[str] = field(default_factory=list)  # degraded-mode notices

    def to_dict(self) -> dict[str, Any]:
        return {
            "colors": list(self.colors),
            "ctaColors": list(self.cta_colors),
            "generalColors": list(self.general_colors),
            "assets": list(self.assets),
            "fonts": list(self.fonts),
            "metadata": self.metadata.to_dict(),
            "warnings": list(self.warnings),
        }
