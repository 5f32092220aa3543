# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for css.py: custom properties, color tokens, exclusion, fonts."""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from siteharvest.css import (
    EXCLUDED_COLORS,
    dedupe,
    extract_colors,
    extract_fonts,
    extract_variables,
    filter_colors,
    has_variable_reference,
    normalize_color,
    resolve_variable_references,
)

# ── Variable table ────────────────────────────────────────────────────


class TestExtractVariables:
    def test_basic_declarations(self):
        css = ":root { --brand: #112233; --accent:rgb(1, 2, 3); }"
        assert extract_variables(css) == {"--brand": "#112233", "--accent": "rgb(1, 2, 3)"}

    def test_last_declaration_wins(self):
        css = ":root{--x:#111111} .dark{--x:#222222}"
        assert extract_variables(css) == {"--x": "#222222"}

    def test_important_is_stripped(self):
        assert extract_variables(":root{--y: red !important;}") == {"--y": "red"}

    def test_empty_name_and_value_skipped(self):
        assert extract_variables(".a{--: 1; --empty: ;}") == {}

    def test_ordinary_properties_ignored(self):
        assert extract_variables(".a{color:#fff; border-top: 1px solid red}") == {}

    def test_empty_input(self):
        assert extract_variables("") == {}


# ── Reference resolution ──────────────────────────────────────────────


class TestResolveVariableReferences:
    def test_single_reference(self):
        assert resolve_variable_references("var(--x)", {"--x": "#112233"}) == "#112233"

    def test_undefined_reference_left_as_written(self):
        assert resolve_variable_references("var(--missing)", {}) == "var(--missing)"

    def test_fallback_not_applied(self):
        assert resolve_variable_references("var(--missing, #fff)", {}) == "var(--missing, #fff)"

    def test_nested_reference(self):
        table = {"--a": "var(--b)", "--b": "#abcdef"}
        assert resolve_variable_references("var(--a)", table) == "#abcdef"

    def test_cycle_terminates(self):
        table = {"--a": "var(--b)", "--b": "var(--a)"}
        assert has_variable_reference(resolve_variable_references("var(--a)", table))

    def test_reference_inside_function(self):
        table = {"--r": "255"}
        assert resolve_variable_references("rgb(var(--r), 0, 0)", table) == "rgb(255, 0, 0)"


# ── Color extraction ──────────────────────────────────────────────────


class TestExtractColors:
    def test_hex_and_functions(self):
        css = ".a{color:#AABBCC} .b{background:rgba(10, 20, 30, .5)} .c{fill:hsl(120, 50%, 50%)}"
        assert extract_colors(css) == ["#aabbcc", "rgba(10, 20, 30, .5)", "hsl(120, 50%, 50%)"]

    def test_short_hex(self):
        assert extract_colors(".a{color:#abc}") == ["#abc"]

    def test_non_color_hex_lengths_ignored(self):
        assert extract_colors(".a{color:#abcd} .b{color:#11223344}") == []

    def test_hyphenated_id_not_a_color(self):
        assert extract_colors("#add-button{margin:0}") == []

    def test_duplicates_kept(self):
        assert extract_colors(".a{color:#123456} .b{color:#123456}") == ["#123456", "#123456"]

    def test_var_resolved_from_table(self):
        css = ".a{color: var(--x)} .b{color: var(--y)}"
        assert extract_colors(css, {"--x": "#112233"}) == ["#112233"]

    def test_unresolved_var_dropped(self):
        assert extract_colors(".a{color: var(--nope)}") == []

    def test_var_inside_color_function(self):
        assert extract_colors(".a{color: rgb(var(--r), 0, 0)}", {"--r": "200"}) == ["rgb(200, 0, 0)"]

    def test_var_resolving_to_non_color_yields_nothing(self):
        assert extract_colors(".a{width: var(--w)}", {"--w": "10px"}) == []

    def test_normalize_color(self):
        assert normalize_color("  #FFAA00 ") == "#ffaa00"


# ── Exclusion, dedupe ─────────────────────────────────────────────────


class TestFilterColors:
    def test_excluded_colors_removed(self):
        colors = ["#FFF", "#ffffff", "#000", "rgb(0, 0, 0)", "rgba(255,255,255,0)", "#123456"]
        assert filter_colors(colors) == ["#123456"]

    def test_exclusion_ignores_whitespace(self):
        assert filter_colors(["rgba( 0 , 0 , 0 , 0 )"]) == []

    def test_short_and_long_forms_are_distinct(self):
        assert filter_colors(["#abc", "#aabbcc"]) == ["#abc", "#aabbcc"]

    def test_limit(self):
        colors = [f"#0000{i:02x}" for i in range(1, 20)]
        assert len(filter_colors(colors, limit=8)) == 8

    def test_custom_exclusions(self):
        assert filter_colors(["#123456", "#654321"], excluded=["#123456"]) == ["#654321"]

    @given(
        st.lists(
            st.sampled_from(
                ["#fff", "#FFF", "#123456", "#ABCDEF", "rgb(0,0,0)", "rgb(0, 0, 0)", "#abc", " hsl(1, 2%, 3%) "]
            ),
            max_size=20,
        ),
        st.one_of(st.none(), st.integers(min_value=0, max_value=10)),
    )
    @settings(max_examples=100)
    def test_idempotent(self, colors, limit):
        once = filter_colors(colors, limit=limit)
        assert filter_colors(once, limit=limit) == once
        assert not {c for c in once} & {c for c in EXCLUDED_COLORS}


class TestDedupe:
    def test_first_appearance_order(self):
        assert dedupe(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]

    def test_empty_dropped_and_capped(self):
        assert dedupe(["a", "", "b", "a", "c"], 2) == ["a", "b"]


# ── Fonts ─────────────────────────────────────────────────────────────


class TestExtractFonts:
    def test_first_non_generic_family(self):
        css = (
            "body{font-family: 'Inter', sans-serif}"
            'h1{font-family: system-ui, "Playfair Display", serif}'
            "code{font-family: monospace}"
        )
        assert extract_fonts(css) == ["Inter", "Playfair Display"]

    def test_variable_family(self):
        css = "p{font-family: var(--font)}"
        assert extract_fonts(css, {"--font": "Roboto, Arial"}) == ["Roboto"]

    def test_unresolved_variable_skipped(self):
        assert extract_fonts("p{font-family: var(--font)}") == []

    def test_custom_property_named_font_family_not_matched(self):
        assert extract_fonts(":root{--font-family: Lato}") == []

    def test_dedupe_and_limit(self):
        css = "a{font-family:A} b{font-family:B} c{font-family:A} d{font-family:C} e{font-family:D}"
        assert extract_fonts(css) == ["A", "B", "C"]
