"""
Table Normalizer
================
Converts a contiguous run of pipe-delimited lines into a rectangular
grid of CellRows. Alignment-separator rows are dropped; short rows are
right-padded with empty cells.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from .inline import InlineTokenizer
from .models import CellRow, TableCell

logger = logging.getLogger(__name__)

# Splits on '|' unless escaped as '\|'
CELL_SPLIT_PATTERN = re.compile(r"(?<!\\)\|")
ESCAPED_PIPE = "\\|"

# GFM alignment cells hold only dashes, colons and whitespace
SEPARATOR_CELL_PATTERN = re.compile(r"^[\s:-]*$")


class TableNormalizer:
    """Builds rectangular CellRows from raw table lines."""

    def __init__(self, tokenizer: Optional[InlineTokenizer] = None):
        self.tokenizer = tokenizer or InlineTokenizer()

    def normalize(self, lines: list[str]) -> list[CellRow]:
        """
        Normalize table lines into rows of equal width.

        The first surviving row is the header. Zero surviving rows
        returns an empty list; the caller decides whether to emit it.
        """
        raw_rows = [self.split_row(line) for line in lines]
        raw_rows = [row for row in raw_rows if not self.is_separator_row(row)]

        if not raw_rows:
            return []

        column_count = max(len(row) for row in raw_rows)
        padded = 0

        rows: list[CellRow] = []
        for row in raw_rows:
            if len(row) < column_count:
                padded += 1
                row = row + [""] * (column_count - len(row))
            rows.append(CellRow(cells=[
                TableCell(runs=self.tokenizer.tokenize(text)) for text in row
            ]))

        if padded:
            logger.debug(
                f"Padded {padded} short row(s) to {column_count} columns"
            )
        return rows

    def split_row(self, line: str) -> list[str]:
        """Split one line into trimmed cell texts, dropping boundary pipes."""
        text = line.strip()
        if text.startswith("|"):
            text = text[1:]
        if text.endswith("|") and not text.endswith(ESCAPED_PIPE):
            text = text[:-1]
        return [
            cell.replace(ESCAPED_PIPE, "|").strip()
            for cell in CELL_SPLIT_PATTERN.split(text)
        ]

    def is_separator_row(self, cells: list[str]) -> bool:
        return (
            all(SEPARATOR_CELL_PATTERN.match(cell) for cell in cells)
            and any("-" in cell for cell in cells)
        )
