# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""CSS custom-property resolution and color / font extraction.

Pattern-based, not a CSS engine: no cascade, no specificity, no computed
values. Pure text processing, no I/O.

Colors are kept in their lexical form (``#abc``, ``#aabbcc``, ``rgb()``,
``rgba()``, ``hsl()``, ``hsla()``), trimmed and lowercased. ``#fff`` and
``#ffffff`` are different tokens; only the exclusion table equates them.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

# Balanced parentheses, one level of nesting: rgb(var(--r), 0, 0)
_FUNC_ARGS = r"\((?:[^()]|\([^()]*\))*\)"

_HEX_RE = r"#(?:[0-9a-fA-F]{6}|[0-9a-fA-F]{3})(?![\w-])"
_COLOR_FUNC_RE = r"(?<![\w-])(?:rgba?|hsla?)\s*" + _FUNC_ARGS
_VAR_TOKEN_RE = r"(?<![\w-])var\s*" + _FUNC_ARGS

_COLOR_LITERAL_RE = re.compile(f"{_HEX_RE}|{_COLOR_FUNC_RE}", re.IGNORECASE)
_COLOR_TOKEN_RE = re.compile(f"{_HEX_RE}|{_COLOR_FUNC_RE}|{_VAR_TOKEN_RE}", re.IGNORECASE)

_VAR_DECL_RE = re.compile(r"(?<![\w-])(--[\w-]*)\s*:([^;{}]*)")
_VAR_REF_RE = re.compile(r"var\(\s*(--[\w-]+)\s*(?:,(?:[^()]|\([^()]*\))*)?\)", re.IGNORECASE)
_HAS_VAR_RE = re.compile(r"var\s*\(", re.IGNORECASE)
_IMPORTANT_RE = re.compile(r"\s*!\s*important\s*$", re.IGNORECASE)

_FONT_FAMILY_RE = re.compile(r"(?<![\w-])font-family\s*:\s*([^;{}]+)", re.IGNORECASE)

_MAX_RESOLVE_DEPTH = 8

# Compared after removing all whitespace.
EXCLUDED_COLORS: frozenset[str] = frozenset(
    {
        "#fff",
        "#ffffff",
        "#000",
        "#000000",
        "white",
        "black",
        "transparent",
        "currentcolor",
        "inherit",
        "initial",
        "rgb(255,255,255)",
        "rgba(255,255,255,1)",
        "rgb(0,0,0)",
        "rgba(0,0,0,1)",
        "rgba(0,0,0,0)",
        "rgba(255,255,255,0)",
    }
)

GENERIC_FONT_FAMILIES: frozenset[str] = frozenset(
    {
        "inherit",
        "initial",
        "unset",
        "revert",
        "serif",
        "sans-serif",
        "monospace",
        "cursive",
        "fantasy",
        "system-ui",
        "ui-serif",
        "ui-sans-serif",
        "ui-monospace",
        "ui-rounded",
        "emoji",
        "math",
        "-apple-system",
        "blinkmacsystemfont",
    }
)


def normalize_color(token: str) -> str:
    return token.strip().lower()


def _compact(color: str) -> str:
    return "".join(color.split()).lower()


def has_variable_reference(value: str) -> bool:
    return bool(_HAS_VAR_RE.search(value))


def extract_variables(css_text: str) -> dict[str, str]:
    """Map ``--name`` → raw value for every custom-property declaration.

    Last declaration wins. Declarations without a name or a value are
    skipped.
    """
    table: dict[str, str] = {}
    for m in _VAR_DECL_RE.finditer(css_text):
        name = m.group(1).strip()
        value = _IMPORTANT_RE.sub("", m.group(2)).strip()
        if name == "--" or not value:
            continue
        table[name] = value
    return table


def resolve_variable_references(value: str, table: dict[str, str], *, max_depth: int = _MAX_RESOLVE_DEPTH) -> str:
    """Substitute ``var(--name[, fallback])`` with ``table[--name]``.

    References to undefined names are left as written (fallbacks are not
    applied). Nested references resolve until nothing changes or
    *max_depth* rounds have run.
    """

    def _sub(m: re.Match[str]) -> str:
        return table.get(m.group(1), m.group(0))

    for _ in range(max_depth):
        resolved = _VAR_REF_RE.sub(_sub, value)
        if resolved == value:
            break
        value = resolved
    return value


def extract_colors(css_text: str, table: dict[str, str] | None = None) -> list[str]:
    """All color tokens in *css_text*, normalized, duplicates included.

    ``var()`` references (bare or inside a color function) are substituted
    from *table*; anything still holding a reference afterwards is dropped.
    """
    table = table if table is not None else {}
    colors: list[str] = []
    for m in _COLOR_TOKEN_RE.finditer(css_text):
        token = m.group(0)
        if not has_variable_reference(token):
            colors.append(normalize_color(token))
            continue

        resolved = resolve_variable_references(token, table)
        if has_variable_reference(resolved):
            continue
        if token.lstrip().lower().startswith("var"):
            colors.extend(normalize_color(lit.group(0)) for lit in _COLOR_LITERAL_RE.finditer(resolved))
        else:
            colors.append(normalize_color(resolved))
    return colors


def dedupe(items: Iterable[str], limit: int | None = None) -> list[str]:
    """Order-preserving exact-match dedupe, empty strings dropped, capped."""
    result = [item for item in dict.fromkeys(items) if item]
    return result if limit is None else result[:limit]


def filter_colors(
    colors: Iterable[str],
    *,
    excluded: Iterable[str] = EXCLUDED_COLORS,
    limit: int | None = None,
) -> list[str]:
    """Drop excluded colors, then dedupe and cap. Idempotent."""
    excluded_compact = {_compact(c) for c in excluded}
    kept = (normalize_color(c) for c in colors)
    return dedupe((c for c in kept if c and _compact(c) not in excluded_compact), limit)


def extract_fonts(
    css_text: str,
    table: dict[str, str] | None = None,
    *,
    limit: int = 3,
    generic: frozenset[str] = GENERIC_FONT_FAMILIES,
) -> list[str]:
    """First non-generic family of each ``font-family`` declaration."""
    table = table if table is not None else {}
    fonts: list[str] = []
    for m in _FONT_FAMILY_RE.finditer(css_text):
        value = _IMPORTANT_RE.sub("", m.group(1)).strip()
        if has_variable_reference(value):
            value = resolve_variable_references(value, table)
            if has_variable_reference(value):
                continue
        for family in value.split(","):
            name = family.strip().strip("\"'").strip()
            if name and name.lower() not in generic:
                fonts.append(name)
                break
    return dedupe(fonts, limit)
