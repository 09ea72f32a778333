"""
DOCX Serializer
===============
Writes a styled DocumentModel as an OOXML word-processing package using
python-docx. Only translation happens here; every presentation decision
was already made by the assembler.

Math runs become OMML (m:oMath) runs carrying the raw expression text.
"""

from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import Union

from docx import Document
from docx.enum.table import WD_ALIGN_VERTICAL
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Emu, Pt, RGBColor, Twips

from .models import (
    CellBorders,
    DocumentModel,
    StyledCell,
    StyledCodeBlock,
    StyledImage,
    StyledParagraph,
    StyledRun,
    StyledTable,
)
from .styles import Alignment

logger = logging.getLogger(__name__)

ALIGNMENT_MAP = {
    Alignment.LEFT: WD_ALIGN_PARAGRAPH.LEFT,
    Alignment.CENTER: WD_ALIGN_PARAGRAPH.CENTER,
    Alignment.RIGHT: WD_ALIGN_PARAGRAPH.RIGHT,
    Alignment.JUSTIFY: WD_ALIGN_PARAGRAPH.JUSTIFY,
}

EMU_PER_PIXEL = 9525  # at 96 dpi
MAX_HEADING_STYLE = 3
CODE_LINE_SPACING = 20


class DocxSerializer:
    """Builds a python-docx Document from a DocumentModel."""

    def serialize(self, document: DocumentModel) -> bytes:
        """Return the .docx package as bytes."""
        buffer = BytesIO()
        self.build(document).save(buffer)
        return buffer.getvalue()

    def save(self, document: DocumentModel, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.build(document).save(str(path))
        logger.info(f"Saved DOCX: {path}")
        return path

    def build(self, document: DocumentModel):
        doc = Document()
        self._apply_defaults(doc, document)

        for unit in document.units:
            if isinstance(unit, StyledParagraph):
                self._write_paragraph(doc, unit)
            elif isinstance(unit, StyledCodeBlock):
                self._write_code(doc, unit)
            elif isinstance(unit, StyledTable):
                self._write_table(doc, unit)
            elif isinstance(unit, StyledImage):
                self._write_image(doc, unit)

        return doc

    # ─── Document ────────────────────────────────────────────────────────

    def _apply_defaults(self, doc, document: DocumentModel):
        style = document.style
        normal = doc.styles["Normal"]
        normal.font.name = style.font_face
        normal.font.size = Pt(style.base_font_size)
        normal.font.color.rgb = RGBColor.from_string(style.body_color)
        _set_east_asian_font(normal.element.get_or_add_rPr(), style.font_face)

    # ─── Units ───────────────────────────────────────────────────────────

    def _write_paragraph(self, doc, unit: StyledParagraph):
        if unit.role == "heading":
            paragraph = doc.add_heading("", level=min(unit.heading_level or 1, MAX_HEADING_STYLE))
        else:
            paragraph = doc.add_paragraph()

        fmt = paragraph.paragraph_format
        fmt.alignment = ALIGNMENT_MAP[unit.alignment]
        fmt.space_before = Twips(unit.spacing_before)
        fmt.space_after = Twips(unit.spacing_after)
        if unit.line_spacing:
            fmt.line_spacing = unit.line_spacing
        if unit.indent_left:
            fmt.left_indent = Twips(unit.indent_left)

        for index, run in enumerate(unit.runs):
            if unit.role == "math" and index > 0:
                paragraph.add_run().add_break()
            self._add_run(paragraph, run)

    def _write_code(self, doc, unit: StyledCodeBlock):
        table = doc.add_table(rows=1, cols=1)
        _set_table_width_pct(table)
        cell = table.cell(0, 0)
        _set_cell_borders(cell, unit.borders)
        _shade_cell(cell, unit.shading)
        _set_cell_margins(cell, unit.margin)

        lines = unit.lines or [""]
        for index, line in enumerate(lines):
            paragraph = cell.paragraphs[0] if index == 0 else cell.add_paragraph()
            paragraph.paragraph_format.space_before = Twips(CODE_LINE_SPACING)
            paragraph.paragraph_format.space_after = Twips(CODE_LINE_SPACING)
            run = paragraph.add_run(line)
            _format_run(run, unit.font, unit.size, unit.color)

        doc.add_paragraph()

    def _write_table(self, doc, unit: StyledTable):
        if not unit.rows:
            return
        column_count = max(len(row) for row in unit.rows)
        table = doc.add_table(rows=len(unit.rows), cols=column_count)
        _set_table_width_pct(table)

        for row_index, row in enumerate(unit.rows):
            if row_index < unit.header_rows:
                _mark_header_row(table.rows[row_index])
            for col_index, styled_cell in enumerate(row):
                self._write_cell(table.cell(row_index, col_index), styled_cell)

        doc.add_paragraph()

    def _write_cell(self, cell, styled: StyledCell):
        paragraph = cell.paragraphs[0]
        paragraph.paragraph_format.alignment = ALIGNMENT_MAP[styled.alignment]
        for run in styled.runs:
            self._add_run(paragraph, run)

        # tcPr children must follow schema order: borders, shading, margins, vAlign
        _set_cell_borders(cell, styled.borders)
        if styled.shading:
            _shade_cell(cell, styled.shading)
        _set_cell_margins(cell, styled.margin)
        cell.vertical_alignment = WD_ALIGN_VERTICAL.CENTER

    def _write_image(self, doc, unit: StyledImage):
        paragraph = doc.add_paragraph()
        fmt = paragraph.paragraph_format
        fmt.alignment = ALIGNMENT_MAP[unit.alignment]
        fmt.space_before = Twips(unit.spacing_before)
        fmt.space_after = Twips(unit.spacing_after)

        try:
            paragraph.add_run().add_picture(
                BytesIO(unit.data),
                width=Emu(unit.width * EMU_PER_PIXEL),
                height=Emu(unit.height * EMU_PER_PIXEL),
            )
        except Exception as e:
            logger.warning(f"Cannot embed image '{unit.alt_text}': {e}")
            run = paragraph.add_run(f"[Image unavailable: {unit.alt_text}]")
            run.font.color.rgb = RGBColor.from_string("FF0000")
            return

        if unit.caption:
            paragraph.add_run().add_break()
            self._add_run(paragraph, unit.caption)

    # ─── Runs ────────────────────────────────────────────────────────────

    def _add_run(self, paragraph, styled: StyledRun):
        if styled.is_math:
            _append_math(paragraph, styled.text)
            return

        run = paragraph.add_run(styled.text)
        _format_run(run, styled.font, styled.size, styled.color)
        run.bold = styled.bold or None
        run.italic = styled.italic or None
        if styled.shading:
            _shade_run(run, styled.shading)


# ─── OXML Helpers ─────────────────────────────────────────────────────────────


def _format_run(run, font: str, size: float, color: str):
    run.font.name = font
    run.font.size = Pt(size)
    run.font.color.rgb = RGBColor.from_string(color)
    _set_east_asian_font(run._element.get_or_add_rPr(), font)


def _set_east_asian_font(rpr, font: str):
    rpr.get_or_add_rFonts().set(qn("w:eastAsia"), font)


def _shading_element(fill: str):
    shd = OxmlElement("w:shd")
    shd.set(qn("w:val"), "clear")
    shd.set(qn("w:color"), "auto")
    shd.set(qn("w:fill"), fill)
    return shd


def _shade_run(run, fill: str):
    run._element.get_or_add_rPr().append(_shading_element(fill))


def _shade_cell(cell, fill: str):
    cell._tc.get_or_add_tcPr().append(_shading_element(fill))


def _set_cell_borders(cell, borders: CellBorders):
    tc_borders = OxmlElement("w:tcBorders")
    for edge in ("top", "left", "bottom", "right"):
        border = getattr(borders, edge)
        el = OxmlElement(f"w:{edge}")
        el.set(qn("w:val"), "single")
        el.set(qn("w:sz"), str(border.size))
        el.set(qn("w:space"), "0")
        el.set(qn("w:color"), border.color)
        tc_borders.append(el)
    cell._tc.get_or_add_tcPr().append(tc_borders)


def _set_cell_margins(cell, margin: int):
    tc_mar = OxmlElement("w:tcMar")
    for edge in ("top", "left", "bottom", "right"):
        el = OxmlElement(f"w:{edge}")
        el.set(qn("w:w"), str(margin))
        el.set(qn("w:type"), "dxa")
        tc_mar.append(el)
    cell._tc.get_or_add_tcPr().append(tc_mar)


def _set_table_width_pct(table, pct: int = 100):
    tbl_pr = table._tbl.tblPr
    tbl_w = tbl_pr.find(qn("w:tblW"))
    if tbl_w is None:
        tbl_w = OxmlElement("w:tblW")
        tbl_pr.append(tbl_w)
    tbl_w.set(qn("w:type"), "pct")
    tbl_w.set(qn("w:w"), str(pct * 50))


def _mark_header_row(row):
    tr_pr = row._tr.get_or_add_trPr()
    header = OxmlElement("w:tblHeader")
    header.set(qn("w:val"), "true")
    tr_pr.append(header)


def _append_math(paragraph, expression: str):
    omath = OxmlElement("m:oMath")
    math_run = OxmlElement("m:r")
    text = OxmlElement("m:t")
    text.text = expression
    math_run.append(text)
    omath.append(math_run)
    paragraph._p.append(omath)
