# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Call-to-action color attribution.

Colors of buttons and button-like links come from three places: the
element's own ``style`` attribute, rule blocks keyed by one of its class
names, and rule blocks keyed by its tag name. Cascade, inheritance and
pseudo-classes are not modeled.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from .css import extract_colors, extract_variables
from .dom import DomTree, Selector, class_names

logger = logging.getLogger(__name__)

CTA_SELECTORS: tuple[Selector, ...] = (
    Selector(tag="button"),
    Selector(tag="a", cls="btn"),
    Selector(tag="a", cls="button"),
    Selector(tag="input", attr="type", value="submit"),
    Selector(attr="role", value="button"),
    Selector(cls="btn"),
    Selector(cls="button"),
    Selector(cls="cta"),
)

# A selector-list member starts after start-of-text, '{', '}', ',' or the ';' ending an
# @-rule statement. Comments are stripped first.
_BLOCK_TEMPLATE = r"(?:^|(?<=[{{}},;]))\s*{selector}\s*(?:,[^{{}}]*)?\{{([^{{}}]*)\}}"
_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)


def _rule_blocks(css_text: str, selector_pattern: str) -> list[str]:
    css_text = _COMMENT_RE.sub(" ", css_text)
    pattern = re.compile(_BLOCK_TEMPLATE.format(selector=selector_pattern), re.IGNORECASE)
    return [m.group(1) for m in pattern.finditer(css_text)]


def class_rule_blocks(css_text: str, class_name: str) -> list[str]:
    """Bodies of rule blocks whose selector is ``.class_name``."""
    return _rule_blocks(css_text, r"\." + re.escape(class_name) + r"(?![\w-])")


def tag_rule_blocks(css_text: str, tag: str) -> list[str]:
    """Bodies of rule blocks whose selector is the bare *tag*."""
    return _rule_blocks(css_text, r"(?<![\w.#-])" + re.escape(tag) + r"(?![\w-])")


def attribute_cta_colors(
    tree: DomTree,
    css_text: str,
    *,
    selectors: Iterable[Selector] = CTA_SELECTORS,
    table: dict[str, str] | None = None,
) -> list[str]:
    """Colors attributed to CTA elements. Unordered, duplicates expected."""
    if table is None:
        table = extract_variables(css_text)

    colors: list[str] = []
    # Rule-block lookups repeat across elements sharing a class or tag.
    block_cache: dict[str, list[str]] = {}

    def _colors_for(key: str, finder) -> list[str]:
        if key not in block_cache:
            found: list[str] = []
            for block in finder():
                found.extend(extract_colors(block, table))
            block_cache[key] = found
        return block_cache[key]

    matched = 0
    for selector in selectors:
        for el in tree.select_matching([selector]):
            matched += 1
            style = el.get("style")
            if style:
                colors.extend(extract_colors(style, table))
            for cls in class_names(el):
                colors.extend(_colors_for(f".{cls}", lambda c=cls: class_rule_blocks(css_text, c)))
            tag = el.tag.lower()
            colors.extend(_colors_for(tag, lambda t=tag: tag_rule_blocks(css_text, t)))

    logger.debug("CTA attribution: %d element matches, %d raw colors", matched, len(colors))
    return colors
