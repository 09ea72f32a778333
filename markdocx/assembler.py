"""
Document Assembler
==================
Applies a StyleConfig to the block model, producing the styled
DocumentModel handed to the serializer.

Pure transform: no validation, no I/O, one output unit per block.
"""

from __future__ import annotations

import logging

from .models import (
    Block,
    BlockType,
    CellBorders,
    DocumentModel,
    StyledCell,
    StyledCodeBlock,
    StyledImage,
    StyledParagraph,
    StyledRun,
    StyledTable,
    TableBlock,
    TextRun,
)
from .styles import Alignment, StyleConfig

logger = logging.getLogger(__name__)

# ─── Fixed Presentation ───────────────────────────────────────────────────────

CODE_FONT = "JetBrains Mono"

# Inline `code`
INLINE_CODE_SIZE_OFFSET = -1
INLINE_CODE_COLOR = "E11D48"
INLINE_CODE_SHADING = "F1F5F9"

# Fenced code blocks
CODE_BLOCK_SIZE = 10
CODE_BLOCK_COLOR = "334155"
CODE_BLOCK_SHADING = "F8FAFC"
CODE_BLOCK_BORDER = "E2E8F0"
CODE_BLOCK_ACCENT = "3B82F6"

# Tables
TABLE_HEADER_SHADING = "F3F4F6"
TABLE_BORDER = "CBD5E1"

# Headings
HEADING_STYLE_LEVELS = 3
HEADING_SPACING_BEFORE = 400
HEADING_SPACING_AFTER = 200

QUOTE_COLOR = "666666"
QUOTE_INDENT = 720

MATH_SIZE_OFFSET = 2

CAPTION_PREFIX = "Figure: "
CAPTION_COLOR = "666666"
CAPTION_SIZE_OFFSET = -2
IMAGE_SPACING = 200

MISSING_IMAGE_COLOR = "FF0000"


def heading_size(base_size: float, level: int) -> float:
    """Level 1 is largest; levels past 3 share the level-3 size."""
    styled_level = min(level, HEADING_STYLE_LEVELS)
    return base_size + (HEADING_STYLE_LEVELS + 1 - styled_level) * 2


class DocumentAssembler:
    """Maps each block kind to its styled output unit."""

    def assemble(self, blocks: list[Block], style: StyleConfig) -> DocumentModel:
        units = [self._assemble_block(block, style) for block in blocks]
        logger.debug(f"Assembled {len(units)} styled units")
        return DocumentModel(style=style, units=units)

    def _assemble_block(self, block: Block, style: StyleConfig):
        if block.type is BlockType.HEADING:
            return self._heading(block, style)
        if block.type is BlockType.PARAGRAPH:
            return self._paragraph(block.runs, style)
        if block.type is BlockType.QUOTE:
            return self._quote(block.runs, style)
        if block.type is BlockType.CODE:
            return self._code(block)
        if block.type is BlockType.TABLE:
            return self._table(block, style)
        if block.type is BlockType.MATH:
            return self._math(block.expression, style)
        if block.type is BlockType.IMAGE:
            return self._image(block, style)
        if block.type is BlockType.IMAGE_MISSING:
            return self._missing_image(block.alt_text, style)
        raise ValueError(f"Unknown block type: {block.type}")

    # ─── Runs ────────────────────────────────────────────────────────────

    def style_runs(
        self,
        runs: list[TextRun],
        style: StyleConfig,
        size: float,
        color: str,
        italic: bool = False,
    ) -> list[StyledRun]:
        styled = []
        for run in runs:
            if run.is_code:
                styled.append(StyledRun(
                    text=run.text,
                    font=CODE_FONT,
                    size=max(1.0, size + INLINE_CODE_SIZE_OFFSET),
                    color=INLINE_CODE_COLOR,
                    shading=INLINE_CODE_SHADING,
                    is_code=True,
                ))
            elif run.is_math:
                styled.append(StyledRun(
                    text=run.text,
                    font=style.font_face,
                    size=size,
                    color=color,
                    is_math=True,
                ))
            else:
                styled.append(StyledRun(
                    text=run.text,
                    font=style.font_face,
                    size=size,
                    color=color,
                    bold=run.bold,
                    italic=italic or run.italic,
                ))
        return styled

    # ─── Units ───────────────────────────────────────────────────────────

    def _heading(self, block, style: StyleConfig) -> StyledParagraph:
        return StyledParagraph(
            role="heading",
            heading_level=block.level,
            runs=self.style_runs(
                block.runs,
                style,
                size=heading_size(style.base_font_size, block.level),
                color=style.heading_color,
            ),
            alignment=Alignment.CENTER if block.level == 1 else Alignment.LEFT,
            spacing_before=HEADING_SPACING_BEFORE,
            spacing_after=HEADING_SPACING_AFTER,
        )

    def _paragraph(self, runs: list[TextRun], style: StyleConfig) -> StyledParagraph:
        return StyledParagraph(
            role="paragraph",
            runs=self.style_runs(runs, style, style.base_font_size, style.body_color),
            alignment=style.alignment,
            spacing_before=style.paragraph_spacing,
            spacing_after=style.paragraph_spacing,
            line_spacing=style.line_spacing,
        )

    def _quote(self, runs: list[TextRun], style: StyleConfig) -> StyledParagraph:
        return StyledParagraph(
            role="quote",
            runs=self.style_runs(
                runs, style, style.base_font_size, QUOTE_COLOR, italic=True
            ),
            alignment=style.alignment,
            spacing_before=style.paragraph_spacing,
            spacing_after=style.paragraph_spacing,
            line_spacing=style.line_spacing,
            indent_left=QUOTE_INDENT,
        )

    def _code(self, block) -> StyledCodeBlock:
        borders = CellBorders.uniform(CODE_BLOCK_BORDER)
        borders.left.color = CODE_BLOCK_ACCENT
        borders.left.size = 6
        return StyledCodeBlock(
            lines=list(block.lines),
            language=block.language,
            font=CODE_FONT,
            size=CODE_BLOCK_SIZE,
            color=CODE_BLOCK_COLOR,
            shading=CODE_BLOCK_SHADING,
            borders=borders,
        )

    def _table(self, block: TableBlock, style: StyleConfig) -> StyledTable:
        rows = []
        for row_index, row in enumerate(block.rows):
            is_header = row_index == 0
            rows.append([
                StyledCell(
                    runs=self.style_runs(
                        cell.runs,
                        style,
                        style.base_font_size,
                        style.body_color,
                    ),
                    shading=TABLE_HEADER_SHADING if is_header else None,
                    alignment=Alignment.CENTER,
                    borders=CellBorders.uniform(TABLE_BORDER),
                )
                for cell in row.cells
            ])
        return StyledTable(rows=rows, header_rows=1 if rows else 0)

    def _math(self, expression: str, style: StyleConfig) -> StyledParagraph:
        size = style.base_font_size + MATH_SIZE_OFFSET
        return StyledParagraph(
            role="math",
            runs=[
                StyledRun(
                    text=line,
                    font=style.font_face,
                    size=size,
                    color=style.body_color,
                    italic=True,
                    is_math=True,
                )
                for line in expression.split("\n")
                if line.strip()
            ],
            alignment=Alignment.CENTER,
            spacing_before=style.paragraph_spacing,
            spacing_after=style.paragraph_spacing,
        )

    def _image(self, block, style: StyleConfig) -> StyledImage:
        caption = None
        if block.alt_text:
            caption = StyledRun(
                text=f"{CAPTION_PREFIX}{block.alt_text}",
                font=style.font_face,
                size=max(1.0, style.base_font_size + CAPTION_SIZE_OFFSET),
                color=CAPTION_COLOR,
                italic=True,
            )
        return StyledImage(
            data=block.image.data,
            width=block.image.width,
            height=block.image.height,
            alt_text=block.alt_text,
            caption=caption,
            alignment=Alignment.CENTER,
            spacing_before=IMAGE_SPACING,
            spacing_after=IMAGE_SPACING,
        )

    def _missing_image(self, alt_text: str, style: StyleConfig) -> StyledParagraph:
        return StyledParagraph(
            role="image_missing",
            runs=[StyledRun(
                text=f"[Image unavailable: {alt_text}]",
                font=style.font_face,
                size=style.base_font_size,
                color=MISSING_IMAGE_COLOR,
            )],
            alignment=Alignment.CENTER,
            spacing_before=IMAGE_SPACING,
            spacing_after=IMAGE_SPACING,
        )


_default_assembler = DocumentAssembler()


def assemble(blocks: list[Block], style: StyleConfig) -> DocumentModel:
    return _default_assembler.assemble(blocks, style)
