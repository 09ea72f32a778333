"""
HTML Import
===========
Converts editor HTML (for example a .docx rendered to HTML) back into
the markup dialect understood by the block scanner, so imported
documents can be edited and re-exported.

Handles headings, paragraphs, emphasis, inline code, pre blocks, block
quotes, line breaks, nested lists, links, images and tables.
"""

from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup, Comment, Doctype, NavigableString, Tag

logger = logging.getLogger(__name__)

EXCESS_NEWLINES = re.compile(r"\n{3,}")
CELL_NEWLINES = re.compile(r"[\r\n]+")

HEADING_TAGS = {"h1": 1, "h2": 2, "h3": 3, "h4": 4, "h5": 5, "h6": 6}

# tag -> (prefix, suffix)
WRAPPING_TAGS = {
    "strong": ("**", "**"),
    "b": ("**", "**"),
    "em": ("*", "*"),
    "i": ("*", "*"),
    "code": ("`", "`"),
    "pre": ("\n```\n", "\n```\n"),
    "p": ("\n\n", "\n"),
    "blockquote": ("\n> ", ""),
    "div": ("", "\n"),
    "ul": ("\n", ""),
    "ol": ("\n", ""),
}


def table_to_markup(table: Tag) -> str:
    """Render an HTML table as a pipe table; first row is the header."""
    rows = []
    for tr in table.find_all("tr"):
        cells = [
            CELL_NEWLINES.sub(" ", cell.get_text()).strip()
            for cell in tr.find_all(["th", "td"])
        ]
        rows.append(cells)

    column_count = max((len(row) for row in rows), default=0)
    if column_count == 0:
        return ""

    lines = []
    for index, row in enumerate(rows):
        row = row + [""] * (column_count - len(row))
        lines.append("| " + " | ".join(row) + " |")
        if index == 0:
            lines.append("| " + " | ".join(["---"] * column_count) + " |")
    return "\n".join(lines) + "\n"


class HtmlToMarkup:
    """Walks a parsed HTML tree and emits markup text."""

    def convert(self, html: str) -> str:
        soup = BeautifulSoup(html or "", "html.parser")
        root = soup.body or soup
        parts: list[str] = []
        for child in root.children:
            self._walk(child, parts, indent=0)

        markup = EXCESS_NEWLINES.sub("\n\n", "".join(parts)).strip()
        logger.debug(f"Converted {len(html or '')} chars of HTML to {len(markup)} chars of markup")
        return markup

    def _walk(self, node, parts: list[str], indent: int):
        if isinstance(node, (Comment, Doctype)):
            return

        if isinstance(node, NavigableString):
            text = str(node)
            if not text.strip() and "\n" in text:
                return
            parts.append(text)
            return

        if not isinstance(node, Tag):
            return

        name = node.name.lower()

        if name == "table":
            parts.append("\n\n" + table_to_markup(node) + "\n\n")
            return

        if name == "br":
            parts.append("  \n")
            return

        if name == "img":
            src = node.get("src")
            alt = node.get("alt") or "image"
            if src:
                parts.append(f"\n![{alt}]({src})\n")
            return

        if name in HEADING_TAGS:
            parts.append("\n" + "#" * HEADING_TAGS[name] + " ")
            self._walk_children(node, parts, indent)
            parts.append("\n")
            return

        if name == "li":
            parts.append("\n" + "  " * max(indent - 1, 0) + "- ")
            self._walk_children(node, parts, indent)
            return

        if name == "a":
            parts.append("[")
            self._walk_children(node, parts, indent)
            parts.append(f"]({node.get('href') or '#'})")
            return

        prefix, suffix = WRAPPING_TAGS.get(name, ("", ""))
        child_indent = indent + 1 if name in ("ul", "ol") else indent
        parts.append(prefix)
        self._walk_children(node, parts, child_indent)
        parts.append(suffix)

    def _walk_children(self, node: Tag, parts: list[str], indent: int):
        for child in node.children:
            self._walk(child, parts, indent)


def html_to_markup(html: str) -> str:
    return HtmlToMarkup().convert(html)
