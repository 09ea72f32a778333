"""
Test Suite for the Conversion Pipeline
======================================
Unit and integration tests for styles, tokenizer, tables, images,
block scanner, assembler, report and engine.
"""

from __future__ import annotations

import base64
import json
import struct
import zlib
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from markdocx.assembler import (
    CODE_BLOCK_ACCENT,
    CODE_BLOCK_SHADING,
    CODE_FONT,
    INLINE_CODE_COLOR,
    MISSING_IMAGE_COLOR,
    TABLE_HEADER_SHADING,
    DocumentAssembler,
    heading_size,
)
from markdocx.engine import ConverterConfig, ConverterEngine, convert
from markdocx.images import (
    FALLBACK_SIZE,
    ImageResolver,
    compute_display_size,
    probe_dimensions,
)
from markdocx.inline import InlineTokenizer, tokenize
from markdocx.models import (
    Anomaly,
    AnomalyType,
    BlockType,
    CodeBlock,
    ConversionReport,
    Emphasis,
    HeadingBlock,
    ImageBlock,
    MathBlock,
    MissingImageBlock,
    ParagraphBlock,
    QuoteBlock,
    StyledCodeBlock,
    StyledImage,
    StyledParagraph,
    StyledTable,
    TableBlock,
    TextRun,
)
from markdocx.report import ReportBuilder
from markdocx.state_machine import BlockScanner, ScannerState, split_lines
from markdocx.styles import (
    PRESETS,
    Alignment,
    StyleConfig,
    StyleConfigError,
    Template,
    parse_template,
    resolve_style,
)
from markdocx.tables import TableNormalizer


def make_png(width: int, height: int) -> bytes:
    """Build a minimal valid RGB PNG of the given size."""

    def chunk(tag: bytes, data: bytes) -> bytes:
        body = tag + data
        return (
            struct.pack(">I", len(data))
            + body
            + struct.pack(">I", zlib.crc32(body) & 0xFFFFFFFF)
        )

    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    raw = b"".join(b"\x00" + b"\xff\x00\x00" * width for _ in range(height))
    return (
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", header)
        + chunk(b"IDAT", zlib.compress(raw))
        + chunk(b"IEND", b"")
    )


def data_uri(data: bytes, content_type: str = "image/png") -> str:
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


def offline_scanner() -> BlockScanner:
    return BlockScanner(resolver=ImageResolver(allow_remote=False))


# ═══════════════════════════════════════════════════════════════════════════════
# STYLE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestStyles:
    """Test presets and style resolution."""

    def test_standard_preset(self):
        style = resolve_style("standard")
        assert style.font_face == "SimSun"
        assert style.base_font_size == 12
        assert style.alignment == Alignment.JUSTIFY
        assert style == PRESETS[Template.STANDARD]

    def test_note_aliases(self):
        assert parse_template("compact-note") is Template.NOTE
        assert parse_template("Compact_Note") is Template.NOTE
        assert parse_template(" NOTE ") is Template.NOTE

    def test_unknown_template(self):
        with pytest.raises(StyleConfigError, match="Unknown template"):
            resolve_style("fancy")

    def test_partial_override_keeps_preset_fields(self):
        style = resolve_style("academic", {"font_face": "Georgia", "line_spacing": None})
        assert style.font_face == "Georgia"
        assert style.line_spacing == PRESETS[Template.ACADEMIC].line_spacing
        assert style.base_font_size == 10.5

    def test_color_normalized(self):
        style = resolve_style("standard", {"heading_color": "#ff00aa"})
        assert style.heading_color == "FF00AA"

    def test_invalid_color(self):
        with pytest.raises(StyleConfigError, match="heading_color"):
            resolve_style("standard", {"heading_color": "red"})

    def test_unknown_field(self):
        with pytest.raises(StyleConfigError):
            resolve_style("standard", {"font_colour": "000000"})

    def test_custom_requires_all_fields(self):
        with pytest.raises(StyleConfigError, match="custom"):
            resolve_style("custom", {"font_face": "Arial"})

    def test_custom_complete(self):
        style = resolve_style("custom", {
            "font_face": "Arial",
            "base_font_size": 14,
            "line_spacing": 1.0,
            "heading_color": "111111",
            "body_color": "222222",
            "alignment": "right",
            "paragraph_spacing": 0,
        })
        assert style.alignment == Alignment.RIGHT
        assert style.paragraph_spacing == 0

    def test_style_instance_passthrough(self):
        style = PRESETS[Template.NOTE]
        assert resolve_style("standard", style) is style

    def test_style_is_immutable(self):
        style = resolve_style("standard")
        with pytest.raises(Exception):
            style.font_face = "Arial"


# ═══════════════════════════════════════════════════════════════════════════════
# INLINE TOKENIZER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestInlineTokenizer:
    """Test inline run tokenization."""

    def setup_method(self):
        self.tokenizer = InlineTokenizer()

    def test_plain_text(self):
        runs = self.tokenizer.tokenize("Hello world")
        assert runs == [TextRun(text="Hello world")]

    def test_empty_line(self):
        assert self.tokenizer.tokenize("") == []

    def test_bold_and_italic(self):
        runs = tokenize("**bold** and *italic*")
        assert [(r.text, r.emphasis) for r in runs] == [
            ("bold", Emphasis.BOLD),
            (" and ", Emphasis.NONE),
            ("italic", Emphasis.ITALIC),
        ]

    def test_bold_italic(self):
        runs = tokenize("***both***")
        assert runs == [TextRun(text="both", emphasis=Emphasis.BOLD_ITALIC)]
        assert runs[0].bold and runs[0].italic

    def test_underscore_emphasis(self):
        runs = tokenize("__strong__ _soft_")
        assert [(r.text, r.emphasis) for r in runs] == [
            ("strong", Emphasis.BOLD),
            (" ", Emphasis.NONE),
            ("soft", Emphasis.ITALIC),
        ]

    def test_math_before_emphasis(self):
        runs = tokenize("$a_b$ is *legal*")
        assert runs[0] == TextRun(text="a_b", is_math=True)
        assert runs[1] == TextRun(text=" is ")
        assert runs[2] == TextRun(text="legal", emphasis=Emphasis.ITALIC)

    def test_math_with_asterisks(self):
        runs = tokenize("x $a*b*c$ y")
        assert [r.text for r in runs] == ["x ", "a*b*c", " y"]
        assert runs[1].is_math
        assert runs[1].emphasis == Emphasis.NONE

    def test_display_math_inline(self):
        runs = tokenize("see $$E=mc^2$$ here")
        assert runs[1] == TextRun(text="E=mc^2", is_math=True)

    def test_inline_code(self):
        runs = tokenize("run `pip install` now")
        assert runs[1] == TextRun(text="pip install", is_code=True)
        assert runs[0].text == "run "
        assert runs[2].text == " now"

    def test_code_keeps_markers_verbatim(self):
        runs = tokenize("`**not bold** $x$`")
        assert runs == [TextRun(text="**not bold** $x$", is_code=True)]

    def test_unmatched_delimiter_is_literal(self):
        runs = tokenize("a * b")
        assert runs == [TextRun(text="a * b")]

    def test_unmatched_backtick_is_literal(self):
        runs = tokenize("it`s fine")
        assert runs == [TextRun(text="it`s fine")]

    def test_empty_pair_produces_no_run(self):
        runs = tokenize("a****b")
        assert runs == [TextRun(text="ab")]

    def test_lone_dollar_is_literal(self):
        runs = tokenize("costs $5")
        assert runs == [TextRun(text="costs $5")]

    def test_emphasis_inside_bold_is_flat(self):
        runs = tokenize("**one** two **three**")
        assert [r.emphasis for r in runs] == [
            Emphasis.BOLD, Emphasis.NONE, Emphasis.BOLD
        ]

    def test_runs_are_non_empty(self):
        for line in ["****", "``", "**x**", "$$ $$", "a`b`c"]:
            assert all(run.text for run in tokenize(line))

    def test_private_use_characters_are_plain_text(self):
        runs = tokenize("icon \ue0000\ue001 here")
        assert runs == [TextRun(text="icon \ue0000\ue001 here")]

    def test_private_use_characters_next_to_math(self):
        runs = tokenize("\ue0000\ue001 $x$")
        assert runs == [
            TextRun(text="\ue0000\ue001 "),
            TextRun(text="x", is_math=True),
        ]

    def test_surplus_opening_marker_stays_outside_run(self):
        runs = tokenize("**a* b")
        assert runs == [
            TextRun(text="*"),
            TextRun(text="a", emphasis=Emphasis.ITALIC),
            TextRun(text=" b"),
        ]


# ═══════════════════════════════════════════════════════════════════════════════
# TABLE NORMALIZER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestTableNormalizer:
    """Test table row splitting and padding."""

    def setup_method(self):
        self.normalizer = TableNormalizer()

    def test_separator_dropped_and_short_row_padded(self):
        rows = self.normalizer.normalize(["| a | b |", "|---|---|", "| 1 |"])
        assert len(rows) == 2
        assert [c.text for c in rows[0].cells] == ["a", "b"]
        assert [c.text for c in rows[1].cells] == ["1", ""]

    def test_rectangular(self):
        rows = self.normalizer.normalize([
            "| h1 | h2 | h3 |",
            "| :-- | :-: | --: |",
            "| x |",
            "| y | z |",
        ])
        assert {len(row.cells) for row in rows} == {3}

    def test_cells_tokenized(self):
        rows = self.normalizer.normalize(["| **Name** | `id` |"])
        assert rows[0].cells[0].runs == [TextRun(text="Name", emphasis=Emphasis.BOLD)]
        assert rows[0].cells[1].runs == [TextRun(text="id", is_code=True)]

    def test_escaped_pipe(self):
        cells = self.normalizer.split_row(r"| a \| b | c |")
        assert cells == ["a | b", "c"]

    def test_only_separator_rows(self):
        assert self.normalizer.normalize(["|---|---|"]) == []

    def test_separator_detection(self):
        assert self.normalizer.is_separator_row(["---", ":--:"])
        assert not self.normalizer.is_separator_row(["", ""])
        assert not self.normalizer.is_separator_row(["--", "x"])

    def test_row_without_trailing_pipe(self):
        assert self.normalizer.split_row("| a | b") == ["a", "b"]


# ═══════════════════════════════════════════════════════════════════════════════
# IMAGE RESOLVER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestImageResolver:
    """Test image acquisition and sizing."""

    def test_display_size_scaled(self):
        assert compute_display_size(1200, 800) == (600, 400)
        assert compute_display_size(800, 200) == (600, 150)

    def test_display_size_never_upscaled(self):
        assert compute_display_size(300, 200) == (300, 200)
        assert compute_display_size(600, 10) == (600, 10)

    def test_probe_undecodable(self):
        assert probe_dimensions(b"not an image") == FALLBACK_SIZE

    def test_data_uri(self):
        image = ImageResolver().resolve(data_uri(make_png(800, 200)))
        assert image is not None
        assert (image.natural_width, image.natural_height) == (800, 200)
        assert (image.width, image.height) == (600, 150)
        assert image.content_type == "image/png"
        assert image.size_bytes == len(image.data)

    def test_data_uri_without_payload(self):
        assert ImageResolver().resolve("data:image/png;base64") is None

    def test_data_uri_undecodable_bytes_fall_back(self):
        image = ImageResolver().resolve("data:image/png,hello")
        assert image is not None
        assert (image.width, image.height) == FALLBACK_SIZE

    def test_remote_fetch(self):
        response = MagicMock()
        response.ok = True
        response.status_code = 200
        response.content = make_png(40, 30)
        response.headers = {"Content-Type": "image/png; charset=binary"}

        with patch("markdocx.images.requests.get", return_value=response) as get:
            image = ImageResolver(timeout=5).resolve("https://example.com/a.png")

        assert get.call_args.kwargs["timeout"] == 5
        assert (image.width, image.height) == (40, 30)
        assert image.content_type == "image/png"

    def test_remote_network_failure(self):
        with patch(
            "markdocx.images.requests.get",
            side_effect=requests.exceptions.ConnectionError("offline"),
        ):
            assert ImageResolver().resolve("https://example.com/a.png") is None

    def test_remote_http_error(self):
        response = MagicMock()
        response.ok = False
        response.status_code = 404
        response.content = b""
        response.headers = {}

        with patch("markdocx.images.requests.get", return_value=response):
            assert ImageResolver().resolve("http://example.com/missing.png") is None

    def test_remote_disabled(self):
        with patch("markdocx.images.requests.get") as get:
            assert ImageResolver(allow_remote=False).resolve("https://x.org/a.png") is None
        get.assert_not_called()

    def test_local_file(self, tmp_path):
        (tmp_path / "pic.png").write_bytes(make_png(10, 20))
        image = ImageResolver(base_dir=str(tmp_path)).resolve("pic.png")
        assert (image.width, image.height) == (10, 20)
        assert image.content_type == "image/png"

    def test_local_file_missing(self, tmp_path):
        assert ImageResolver(base_dir=str(tmp_path)).resolve("nope.png") is None

    def test_local_file_in_subdirectory(self, tmp_path):
        (tmp_path / "img").mkdir()
        (tmp_path / "img" / "pic.png").write_bytes(make_png(4, 4))
        image = ImageResolver(base_dir=str(tmp_path)).resolve("img/pic.png")
        assert image is not None

    def test_local_path_outside_base_dir(self, tmp_path):
        outside = tmp_path / "outside.png"
        outside.write_bytes(make_png(4, 4))
        docs = tmp_path / "docs"
        docs.mkdir()

        resolver = ImageResolver(base_dir=str(docs))
        assert resolver.resolve("../outside.png") is None
        assert resolver.resolve(str(outside)) is None

    def test_local_disabled(self, tmp_path):
        (tmp_path / "pic.png").write_bytes(make_png(4, 4))
        resolver = ImageResolver(base_dir=str(tmp_path), allow_local=False)
        assert resolver.resolve("pic.png") is None

    def test_empty_reference(self):
        assert ImageResolver().resolve("  ") is None


# ═══════════════════════════════════════════════════════════════════════════════
# BLOCK SCANNER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestBlockScanner:
    """Test the block scanner state machine."""

    def setup_method(self):
        self.scanner = offline_scanner()

    def test_heading_and_paragraph(self):
        blocks = self.scanner.scan("# Title\n\nHello **world**")
        assert len(blocks) == 2
        assert isinstance(blocks[0], HeadingBlock)
        assert blocks[0].level == 1
        assert blocks[0].runs == [TextRun(text="Title")]
        assert isinstance(blocks[1], ParagraphBlock)
        assert blocks[1].runs == [
            TextRun(text="Hello "),
            TextRun(text="world", emphasis=Emphasis.BOLD),
        ]
        assert blocks[1].line_number == 3

    def test_heading_levels(self):
        blocks = self.scanner.scan("### Three\n######## Deep")
        assert blocks[0].level == 3
        assert blocks[1].level == 6

    def test_blank_lines_skipped(self):
        assert self.scanner.scan("\n   \n\t\n") == []

    def test_each_line_is_a_paragraph(self):
        blocks = self.scanner.scan("one\ntwo")
        assert [b.type for b in blocks] == [BlockType.PARAGRAPH, BlockType.PARAGRAPH]

    def test_code_fence(self):
        blocks = self.scanner.scan("```python\ndef f():\n    return **x**\n```\nafter")
        code = blocks[0]
        assert isinstance(code, CodeBlock)
        assert code.language == "python"
        assert code.lines == ["def f():", "    return **x**"]
        assert blocks[1].type is BlockType.PARAGRAPH

    def test_unterminated_code_fence(self):
        blocks = self.scanner.scan("intro\n```\nline 1\n\nline 3")
        assert [b.type for b in blocks] == [BlockType.PARAGRAPH, BlockType.CODE]
        assert blocks[1].lines == ["line 1", "", "line 3"]
        assert self.scanner.anomalies[0].type is AnomalyType.UNTERMINATED_CODE_FENCE
        assert self.scanner.anomalies[0].line_number == 2
        assert self.scanner.state is ScannerState.SCANNING

    def test_table(self):
        blocks = self.scanner.scan("| a | b |\n|---|---|\n| 1 |\nafter")
        table = blocks[0]
        assert isinstance(table, TableBlock)
        assert table.column_count == 2
        assert table.has_header
        assert len(table.rows) == 2
        assert blocks[1].type is BlockType.PARAGRAPH

    def test_table_at_end_of_input(self):
        blocks = self.scanner.scan("| a |\n| b |")
        assert len(blocks) == 1
        assert len(blocks[0].rows) == 2
        assert self.scanner.anomalies == []

    def test_table_followed_by_heading(self):
        blocks = self.scanner.scan("| a |\n## Next")
        assert [b.type for b in blocks] == [BlockType.TABLE, BlockType.HEADING]

    def test_empty_table_skipped(self):
        blocks = self.scanner.scan("|---|---|\ntext")
        assert [b.type for b in blocks] == [BlockType.PARAGRAPH]
        assert self.scanner.anomalies[0].type is AnomalyType.EMPTY_TABLE

    def test_block_math(self):
        blocks = self.scanner.scan("$$\na + b\n\n= c\n$$")
        assert blocks == [MathBlock(expression="a + b\n= c", line_number=1)]

    def test_single_line_block_math(self):
        blocks = self.scanner.scan("$$ x^2 $$ trailing")
        assert isinstance(blocks[0], MathBlock)
        assert blocks[0].expression == "x^2"
        assert blocks[1].runs == [TextRun(text="trailing")]

    def test_single_line_block_math_unclosed(self):
        blocks = self.scanner.scan("$$ y = mx")
        assert blocks[0].expression == "y = mx"
        assert self.scanner.anomalies == []

    def test_unterminated_block_math(self):
        blocks = self.scanner.scan("$$\nx = 1")
        assert blocks[0].expression == "x = 1"
        assert self.scanner.anomalies[0].type is AnomalyType.UNTERMINATED_BLOCK_MATH

    def test_block_math_then_block_math_on_one_line(self):
        blocks = self.scanner.scan("$$x$$ $$y$$")
        assert blocks == [
            MathBlock(expression="x", line_number=1),
            MathBlock(expression="y", line_number=1),
        ]

    def test_empty_block_math_recorded(self):
        for markup in ["$$$$", "$$ $$", "$$\n$$"]:
            assert self.scanner.scan(markup) == []
            assert [a.type for a in self.scanner.anomalies] == [
                AnomalyType.EMPTY_BLOCK_MATH
            ]
            assert self.scanner.anomalies[0].line_number == 1

    def test_quote(self):
        blocks = self.scanner.scan("> quoted *text*")
        assert isinstance(blocks[0], QuoteBlock)
        assert blocks[0].runs[1] == TextRun(text="text", emphasis=Emphasis.ITALIC)

    def test_image(self):
        uri = data_uri(make_png(20, 10))
        blocks = self.scanner.scan(f"![chart]({uri})")
        assert isinstance(blocks[0], ImageBlock)
        assert blocks[0].alt_text == "chart"
        assert (blocks[0].width, blocks[0].height) == (20, 10)

    def test_image_fallback(self):
        scanner = BlockScanner()
        with patch(
            "markdocx.images.requests.get",
            side_effect=requests.exceptions.Timeout("slow"),
        ):
            blocks = scanner.scan("![diagram](https://example.com/d.png)\nnext")

        assert isinstance(blocks[0], MissingImageBlock)
        assert blocks[0].alt_text == "diagram"
        assert blocks[0].reference == "https://example.com/d.png"
        assert blocks[1].type is BlockType.PARAGRAPH
        assert scanner.anomalies[0].type is AnomalyType.IMAGE_UNAVAILABLE

    def test_image_title_stripped(self):
        resolver = MagicMock()
        resolver.resolve.return_value = None
        scanner = BlockScanner(resolver=resolver)
        scanner.scan('![a](pic.png "A title")')
        resolver.resolve.assert_called_once_with("pic.png")

    def test_images_resolved_in_order(self):
        resolver = MagicMock()
        resolver.resolve.return_value = None
        scanner = BlockScanner(resolver=resolver)
        scanner.scan("![1](one.png)\ntext\n![2](two.png)")
        assert [c.args[0] for c in resolver.resolve.call_args_list] == [
            "one.png", "two.png"
        ]

    def test_two_images_on_one_line(self):
        blocks = self.scanner.scan("![a](x.png) ![b](y.png)")
        assert [b.type for b in blocks] == [
            BlockType.IMAGE_MISSING, BlockType.IMAGE_MISSING
        ]
        assert [b.alt_text for b in blocks] == ["a", "b"]

    def test_crlf_input(self):
        assert split_lines("a\r\nb\rc") == ["a", "b", "c"]
        blocks = self.scanner.scan("# T\r\n\r\nbody")
        assert [b.type for b in blocks] == [BlockType.HEADING, BlockType.PARAGRAPH]

    def test_scanner_reusable(self):
        self.scanner.scan("```\nopen")
        blocks = self.scanner.scan("plain")
        assert len(blocks) == 1
        assert self.scanner.anomalies == []

    def test_incremental_feed(self):
        self.scanner.reset()
        for line in ["```", "x = 1"]:
            self.scanner.feed(line)
        assert self.scanner.state is ScannerState.IN_CODE_FENCE
        self.scanner.finish()
        assert self.scanner.blocks[0].lines == ["x = 1"]


# ═══════════════════════════════════════════════════════════════════════════════
# DOCUMENT ASSEMBLER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestDocumentAssembler:
    """Test style application to blocks."""

    def setup_method(self):
        self.assembler = DocumentAssembler()
        self.style = PRESETS[Template.NOTE]

    def _assemble(self, markup: str):
        return self.assembler.assemble(offline_scanner().scan(markup), self.style)

    def test_one_unit_per_block(self):
        doc = self._assemble("# A\ntext\n> q\n$$ x $$\n```\nc\n```\n| t |")
        assert len(doc) == 6
        assert doc.style is self.style

    def test_heading_sizes(self):
        assert heading_size(12, 1) == 18
        assert heading_size(12, 2) == 16
        assert heading_size(12, 3) == 14
        assert heading_size(12, 5) == 14

    def test_heading(self):
        doc = self._assemble("# Title\n## Sub")
        title, sub = doc.units
        assert title.role == "heading"
        assert title.alignment == Alignment.CENTER
        assert sub.alignment == Alignment.LEFT
        assert title.runs[0].color == self.style.heading_color
        assert title.runs[0].size == heading_size(self.style.base_font_size, 1)

    def test_paragraph_style(self):
        para = self._assemble("Hello **world**").units[0]
        assert para.alignment == self.style.alignment
        assert para.line_spacing == self.style.line_spacing
        assert para.spacing_after == self.style.paragraph_spacing
        assert [r.bold for r in para.runs] == [False, True]
        assert all(r.color == self.style.body_color for r in para.runs)

    def test_inline_code_style(self):
        run = self._assemble("use `x`").units[0].runs[1]
        assert run.font == CODE_FONT
        assert run.color == INLINE_CODE_COLOR
        assert run.size == self.style.base_font_size - 1
        assert run.shading is not None

    def test_quote_is_italic_and_indented(self):
        quote = self._assemble("> said").units[0]
        assert quote.role == "quote"
        assert quote.indent_left > 0
        assert all(r.italic for r in quote.runs)

    def test_code_block(self):
        code = self._assemble("```js\nlet a;\n```").units[0]
        assert isinstance(code, StyledCodeBlock)
        assert code.lines == ["let a;"]
        assert code.shading == CODE_BLOCK_SHADING
        assert code.borders.left.color == CODE_BLOCK_ACCENT
        assert code.borders.top.color != CODE_BLOCK_ACCENT

    def test_table_header_shaded(self):
        table = self._assemble("| h |\n|---|\n| v |").units[0]
        assert isinstance(table, StyledTable)
        assert table.header_rows == 1
        assert table.rows[0][0].shading == TABLE_HEADER_SHADING
        assert table.rows[1][0].shading is None

    def test_math_lines(self):
        math = self._assemble("$$\na\nb\n$$").units[0]
        assert math.role == "math"
        assert math.alignment == Alignment.CENTER
        assert [r.text for r in math.runs] == ["a", "b"]
        assert all(r.is_math for r in math.runs)

    def test_image_caption(self):
        doc = self._assemble(f"![Plot]({data_uri(make_png(10, 10))})")
        image = doc.units[0]
        assert isinstance(image, StyledImage)
        assert image.caption.text == "Figure: Plot"
        assert (image.width, image.height) == (10, 10)

    def test_image_without_alt_has_no_caption(self):
        image = self._assemble(f"![]({data_uri(make_png(10, 10))})").units[0]
        assert image.caption is None

    def test_missing_image_placeholder(self):
        para = self._assemble("![gone](https://example.com/x.png)").units[0]
        assert isinstance(para, StyledParagraph)
        assert para.role == "image_missing"
        assert para.runs[0].text == "[Image unavailable: gone]"
        assert para.runs[0].color == MISSING_IMAGE_COLOR

    def test_blocks_unchanged(self):
        blocks = offline_scanner().scan("# T\n**b**")
        before = [b.model_dump() for b in blocks]
        self.assembler.assemble(blocks, self.style)
        assert [b.model_dump() for b in blocks] == before


# ═══════════════════════════════════════════════════════════════════════════════
# REPORT TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestReportBuilder:
    """Test conversion report aggregation."""

    def test_breakdown(self):
        scanner = offline_scanner()
        blocks = scanner.scan("# A\nb\nc\n![x](https://example.com/x.png)\n```\nopen")
        report = ReportBuilder().build(blocks, scanner.anomalies)

        assert report.total_blocks == 5
        assert report.block_breakdown == {
            "code": 1, "heading": 1, "image_missing": 1, "paragraph": 2
        }
        assert report.images_resolved == 0
        assert report.images_unavailable == 1
        assert report.anomaly_breakdown == {
            "image_unavailable": 1, "unterminated_code_fence": 1
        }
        assert not report.is_complete

    def test_empty_report(self):
        report = ConversionReport()
        assert report.total_blocks == 0
        assert report.is_complete

    def test_report_json(self):
        report = ReportBuilder().build([], [
            Anomaly(type=AnomalyType.EMPTY_TABLE, line_number=3, message="empty")
        ])
        data = json.loads(report.model_dump_json())
        assert data["anomalies"][0]["type"] == "empty_table"
        assert data["is_complete"] is False


# ═══════════════════════════════════════════════════════════════════════════════
# ENGINE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestConverterEngine:
    """Test end-to-end conversion."""

    def test_module_convert_scenario(self):
        doc = convert("# Title\n\nHello **world**")
        assert len(doc.units) == 2
        heading, para = doc.units
        assert heading.heading_level == 1
        assert [(r.text, r.bold) for r in heading.runs] == [("Title", False)]
        assert [(r.text, r.bold) for r in para.runs] == [
            ("Hello ", False), ("world", True)
        ]
        assert doc.style == PRESETS[Template.STANDARD]

    def test_run_result(self):
        engine = ConverterEngine(ConverterConfig(template="note", log_level="ERROR"))
        result = engine.run("# T\n\n```\nx", source="t.md")
        assert result.info.template == "note"
        assert result.info.source == "t.md"
        assert result.info.line_count == 4
        assert result.info.block_count == 2
        assert result.report.anomaly_breakdown == {"unterminated_code_fence": 1}
        assert result.document.style.font_face == "Microsoft YaHei"

    def test_style_overrides_from_config(self):
        engine = ConverterEngine(ConverterConfig(
            style_overrides={"font_face": "Arial"}, log_level="ERROR"
        ))
        assert engine.convert("x").style.font_face == "Arial"

    def test_explicit_style_wins(self):
        engine = ConverterEngine(ConverterConfig(template="note", log_level="ERROR"))
        style = PRESETS[Template.ACADEMIC]
        result = engine.run("x", style)
        assert result.document.style is style
        assert result.info.template == "custom"

    def test_invalid_template(self):
        engine = ConverterEngine(ConverterConfig(template="nope", log_level="ERROR"))
        with pytest.raises(StyleConfigError):
            engine.convert("x")

    def test_convert_file(self, tmp_path):
        (tmp_path / "pic.png").write_bytes(make_png(30, 30))
        source = tmp_path / "notes.md"
        source.write_text("# Notes\n\n![pic](pic.png)\n\n| a |\n|---|\n| 1 |\n", encoding="utf-8")

        engine = ConverterEngine(ConverterConfig(
            save_block_snapshot=True, log_level="ERROR"
        ))
        result = engine.convert_file(source)

        output = Path(result.output_path)
        assert output == tmp_path / "notes.docx"
        assert output.exists()
        assert result.report.images_resolved == 1
        assert result.report.is_complete

        snapshot = json.loads((tmp_path / "notes_blocks.json").read_text(encoding="utf-8"))
        assert [b["type"] for b in snapshot["blocks"]] == ["heading", "image", "table"]
        assert "data" not in snapshot["blocks"][1]["image"]

    def test_convert_file_output_dir(self, tmp_path):
        source = tmp_path / "a.md"
        source.write_text("text", encoding="utf-8")
        out_dir = tmp_path / "out"

        engine = ConverterEngine(ConverterConfig(output_dir=str(out_dir), log_level="ERROR"))
        result = engine.convert_file(source)
        assert Path(result.output_path) == out_dir / "a.docx"
        assert (out_dir / "a.docx").exists()

    def test_convert_file_missing(self, tmp_path):
        engine = ConverterEngine(ConverterConfig(log_level="ERROR"))
        with pytest.raises(FileNotFoundError):
            engine.convert_file(tmp_path / "missing.md")

    def test_log_file(self, tmp_path):
        log_path = tmp_path / "logs" / "run.log"
        engine = ConverterEngine(ConverterConfig(log_level="INFO", log_file=str(log_path)))
        engine.convert("# logged")
        assert log_path.exists()
