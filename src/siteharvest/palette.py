# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Palette assembly: two-pass color resolution, CTA split, fonts, assets.

Pass 1 sees only the CSS embedded in the page (``<style>`` blocks and
``style`` attributes). Pass 2 rebuilds the variable table from that CSS plus
every fetched stylesheet and re-extracts colors, superseding pass 1. A
variable declared in an external sheet can therefore resolve a reference
made inline.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from . import PageMetadata, PaletteResult, StylesheetSource
from .assets import MAX_ASSETS, collect_assets, filter_assets
from .content import resolve_description, resolve_title
from .css import EXCLUDED_COLORS, dedupe, extract_colors, extract_fonts, extract_variables, filter_colors, normalize_color
from .cta import CTA_SELECTORS, attribute_cta_colors
from .dom import DomTree, Selector

logger = logging.getLogger(__name__)

DEFAULT_PALETTE: tuple[str, ...] = ("#3B82F6", "#10B981", "#F59E0B", "#EF4444", "#8B5CF6", "#06B6D4")

MAX_CTA_COLORS = 3
MAX_GENERAL_COLORS = 8
MAX_RANKED_COLORS = 8
MAX_FONTS = 3

FALLBACK_WARNING = "No general colors found; default palette returned."


def aggregate_inline_css(tree: DomTree) -> str:
    """Embedded ``<style>`` text followed by each ``style`` attribute.

    Attribute declarations are wrapped in a selector-less block so they can
    never be mistaken for the body of a class or tag rule.
    """
    parts = list(tree.style_blocks())
    parts.extend("{" + style + "}" for style in tree.inline_styles())
    return "\n".join(parts)


@dataclass(frozen=True, slots=True)
class ColorPasses:
    pass1: list[str]
    pass2: list[str]
    css_text: str  # full aggregate used by pass 2
    variables: dict[str, str]

    def stylesheet_only(self) -> list[str]:
        """Pass-2 colors that inline CSS alone did not yield (pass 1 is diagnostic only)."""
        seen = set(self.pass1)
        return dedupe(c for c in self.pass2 if c not in seen)


def resolve_color_passes(inline_css: str, stylesheets: Iterable[StylesheetSource] = ()) -> ColorPasses:
    """Run both resolution passes; each builds its own variable table."""
    pass1 = extract_colors(inline_css, extract_variables(inline_css))

    full_css = "\n".join([*(s.text for s in stylesheets), inline_css])
    table = extract_variables(full_css)
    pass2 = extract_colors(full_css, table)

    logger.debug(
        "Color passes: %d colors (inline only) -> %d colors (%d variables)",
        len(pass1),
        len(pass2),
        len(table),
    )
    return ColorPasses(pass1=pass1, pass2=pass2, css_text=full_css, variables=table)


def split_cta_general(
    raw_cta: Iterable[str],
    colors: Iterable[str],
    *,
    excluded: Iterable[str] = EXCLUDED_COLORS,
    fallback: Sequence[str] = DEFAULT_PALETTE,
) -> tuple[list[str], list[str], bool]:
    """Return ``(cta, general, used_fallback)``.

    Every raw CTA color is removed from the general candidates, not only
    the three that survive the cap, so the lists never overlap.
    """
    raw_cta = [normalize_color(c) for c in raw_cta]
    excluded = tuple(excluded)
    cta = filter_colors(raw_cta, excluded=excluded, limit=MAX_CTA_COLORS)

    cta_set = set(raw_cta)
    candidates = [c for c in (normalize_color(c) for c in colors) if c not in cta_set]
    general = filter_colors(candidates, excluded=excluded, limit=MAX_GENERAL_COLORS)
    if general:
        return cta, general, False
    return cta, list(fallback), True


def build_palette(
    tree: DomTree,
    page_url: str,
    stylesheets: Sequence[StylesheetSource] = (),
    *,
    cta_selectors: Iterable[Selector] = CTA_SELECTORS,
    excluded: Iterable[str] = EXCLUDED_COLORS,
    fallback: Sequence[str] = DEFAULT_PALETTE,
    warnings: Iterable[str] = (),
    source_url: str | None = None,
) -> PaletteResult:
    """Assemble a PaletteResult from a parsed page and its fetched stylesheets.

    *page_url* is the base for relative asset URLs (the final URL after
    redirects); *source_url* is what the metadata reports, defaulting to it.
    """
    passes = resolve_color_passes(aggregate_inline_css(tree), stylesheets)

    raw_cta = attribute_cta_colors(tree, passes.css_text, selectors=cta_selectors, table=passes.variables)
    cta, general, used_fallback = split_cta_general(raw_cta, passes.pass2, excluded=excluded, fallback=fallback)

    notes = list(warnings)
    if used_fallback:
        notes.append(FALLBACK_WARNING)

    assets = filter_assets(collect_assets(tree, page_url, stylesheets), limit=MAX_ASSETS)
    fonts = extract_fonts(passes.css_text, passes.variables, limit=MAX_FONTS)

    result = PaletteResult(
        colors=dedupe([*cta, *general], MAX_RANKED_COLORS),
        cta_colors=cta,
        general_colors=general,
        assets=assets,
        fonts=fonts,
        metadata=PageMetadata(
            title=resolve_title(tree),
            description=resolve_description(tree),
            url=source_url or page_url,
        ),
        warnings=notes,
    )
    logger.info(
        "Palette built: %d CTA, %d general%s, %d colors only via stylesheets, %d fonts, %d assets",
        len(cta),
        len(general),
        " (fallback)" if used_fallback else "",
        len(passes.stylesheet_only()),
        len(fonts),
        len(assets),
    )
    return result
