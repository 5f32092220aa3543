# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Typed query interface over a parsed HTML tree (lxml).

Extraction modules describe *what* to select with ``Selector`` values and
never build XPath or touch lxml directly, so they can be exercised against
small synthetic documents in tests.
"""

from __future__ import annotations

import copy
import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

import lxml.html
from lxml import etree

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^[a-zA-Z][\w-]*$")

_EMPTY_DOCUMENT = "<html><head></head><body></body></html>"

_UPPER = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_LOWER = "abcdefghijklmnopqrstuvwxyz"


@dataclass(frozen=True, slots=True)
class Selector:
    """Select-by-tag, select-by-class and select-by-attribute in one value.

    ``Selector(tag="a")``, ``Selector(cls="btn")``,
    ``Selector(tag="input", attr="type", value="submit")`` (attribute values
    compare case-insensitively), ``Selector(attr="href")`` (presence only).
    """

    tag: str | None = None
    cls: str | None = None
    attr: str | None = None
    value: str | None = None

    def __post_init__(self) -> None:
        for name in (self.tag, self.attr):
            if name is not None and not _NAME_RE.match(name):
                raise ValueError(f"Invalid selector name: {name!r}")
        if self.value is not None and self.attr is None:
            raise ValueError("Selector value requires an attribute")

    def to_xpath(self) -> str:
        predicates: list[str] = []
        if self.cls:
            predicates.append("contains(concat(' ', normalize-space(@class), ' '), concat(' ', $cls, ' '))")
        if self.attr:
            if self.value is None:
                predicates.append(f"@{self.attr}")
            else:
                predicates.append(f"translate(@{self.attr}, '{_UPPER}', '{_LOWER}') = $value")
        return f"//{self.tag or '*'}" + "".join(f"[{p}]" for p in predicates)

    def __str__(self) -> str:
        parts = [self.tag or ""]
        if self.cls:
            parts.append(f".{self.cls}")
        if self.attr:
            parts.append(f"[{self.attr}]" if self.value is None else f'[{self.attr}="{self.value}"]')
        return "".join(parts) or "*"


class DomTree:
    """A parsed HTML document plus the URL it was loaded from."""

    __slots__ = ("_root", "url")

    def __init__(self, root: lxml.html.HtmlElement, url: str = "") -> None:
        self._root = root
        self.url = url

    @classmethod
    def parse(cls, html: str, url: str = "") -> DomTree:
        """Parse *html* leniently. Empty input yields an empty document."""
        if not html or not html.strip():
            html = _EMPTY_DOCUMENT
        parser = lxml.html.HTMLParser(recover=True, encoding="utf-8")
        try:
            root = lxml.html.document_fromstring(html.encode("utf-8"), parser=parser)
        except (etree.ParserError, ValueError):
            logger.debug("HTML parse failed, using empty document", exc_info=True)
            root = lxml.html.document_fromstring(_EMPTY_DOCUMENT.encode("utf-8"), parser=parser)
        return cls(root, url)

    @property
    def root(self) -> lxml.html.HtmlElement:
        return self._root

    def copy(self) -> DomTree:
        """Deep copy; mutations on the copy never reach this tree."""
        return DomTree(copy.deepcopy(self._root), self.url)

    # ── Queries ──────────────────────────────────────────────────

    def select(self, *tags: str) -> list[lxml.html.HtmlElement]:
        """Elements with any of *tags*, in document order."""
        return self.select_matching(Selector(tag=t) for t in tags)

    def select_one(self, tag: str) -> lxml.html.HtmlElement | None:
        found = self._run(Selector(tag=tag))
        return found[0] if found else None

    def select_class(self, *classes: str) -> list[lxml.html.HtmlElement]:
        return self.select_matching(Selector(cls=c) for c in classes)

    def select_attr(self, tag: str | None, attr: str, value: str | None = None) -> list[lxml.html.HtmlElement]:
        return self._run(Selector(tag=tag, attr=attr, value=value))

    def select_matching(self, selectors: Iterable[Selector]) -> list[lxml.html.HtmlElement]:
        """Union of *selectors*: each element once, in document order."""
        matched: set[lxml.html.HtmlElement] = set()
        for sel in selectors:
            matched.update(self._run(sel))
        if not matched:
            return []
        return [el for el in self._root.iter() if el in matched]

    def _run(self, sel: Selector) -> list[lxml.html.HtmlElement]:
        variables = {}
        if sel.cls:
            variables["cls"] = sel.cls
        if sel.value is not None:
            variables["value"] = sel.value.lower()
        return [el for el in self._root.xpath(sel.to_xpath(), **variables) if isinstance(el.tag, str)]

    # ── Mutation ─────────────────────────────────────────────────

    def remove(self, selectors: Iterable[Selector]) -> int:
        """Drop every element matched by *selectors* (tail text is kept)."""
        doomed = self.select_matching(selectors)
        for el in doomed:
            if el.getparent() is not None:
                el.drop_tree()
        return len(doomed)

    # ── Document-level helpers ───────────────────────────────────

    def document_title(self) -> str:
        el = self.select_one("title")
        return text_of(el) if el is not None else ""

    def meta_content(self, *, name: str | None = None, prop: str | None = None) -> str:
        """Content of the first ``meta[name=…]`` or ``meta[property=…]``."""
        if name is not None:
            found = self.select_attr("meta", "name", name)
        elif prop is not None:
            found = self.select_attr("meta", "property", prop)
        else:
            return ""
        for el in found:
            content = el.get("content")
            if content:
                return content.strip()
        return ""

    def style_blocks(self) -> list[str]:
        """Text of embedded ``<style>`` elements."""
        return [el.text for el in self.select("style") if el.text and el.text.strip()]

    def inline_styles(self) -> list[str]:
        """``style`` attribute values, in document order."""
        return [el.get("style") for el in self.select_attr(None, "style") if el.get("style", "").strip()]

    def stylesheet_hrefs(self) -> list[str]:
        """``href`` of ``<link rel=stylesheet>`` elements, in document order."""
        hrefs = []
        for el in self.select_attr("link", "href"):
            rel_tokens = (el.get("rel") or "").lower().split()
            if "stylesheet" in rel_tokens:
                href = el.get("href", "").strip()
                if href:
                    hrefs.append(href)
        return hrefs

    def iter_elements(self) -> Iterator[lxml.html.HtmlElement]:
        return (el for el in self._root.iter() if isinstance(el.tag, str))


def text_of(el: lxml.html.HtmlElement) -> str:
    """All text content of *el*, trimmed."""
    return (el.text_content() or "").strip()


def class_names(el: lxml.html.HtmlElement) -> list[str]:
    return (el.get("class") or "").split()
