"""
Data Models
===========
Pydantic models for the block model produced by the scanner, the styled
document model produced by the assembler, and the conversion result.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .styles import Alignment, StyleConfig


# ─── Enums ────────────────────────────────────────────────────────────────────


class Emphasis(str, Enum):
    """Emphasis applied to a text run."""
    NONE = "none"
    BOLD = "bold"
    ITALIC = "italic"
    BOLD_ITALIC = "bold_italic"


class BlockType(str, Enum):
    """Kind of top-level block recognized by the scanner."""
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    CODE = "code"
    TABLE = "table"
    MATH = "math"
    QUOTE = "quote"
    IMAGE = "image"
    IMAGE_MISSING = "image_missing"


class AnomalyType(str, Enum):
    """Recoverable content problems found while scanning."""
    UNTERMINATED_CODE_FENCE = "unterminated_code_fence"
    UNTERMINATED_BLOCK_MATH = "unterminated_block_math"
    EMPTY_BLOCK_MATH = "empty_block_math"
    EMPTY_TABLE = "empty_table"
    IMAGE_UNAVAILABLE = "image_unavailable"


# ─── Inline Models ────────────────────────────────────────────────────────────


class TextRun(BaseModel):
    """
    Atomic unit of styled text.
    Never spans a style boundary.
    """
    model_config = ConfigDict(frozen=True)

    text: str
    emphasis: Emphasis = Emphasis.NONE
    is_code: bool = False
    is_math: bool = False

    @property
    def bold(self) -> bool:
        return self.emphasis in (Emphasis.BOLD, Emphasis.BOLD_ITALIC)

    @property
    def italic(self) -> bool:
        return self.emphasis in (Emphasis.ITALIC, Emphasis.BOLD_ITALIC)


class TableCell(BaseModel):
    runs: list[TextRun] = Field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(r.text for r in self.runs)


class CellRow(BaseModel):
    """One table row; all rows of a table share the same cell count."""
    cells: list[TableCell] = Field(default_factory=list)


class ResolvedImage(BaseModel):
    """Image bytes plus natural and display dimensions."""
    data: bytes = Field(exclude=True, repr=False)
    natural_width: int = Field(ge=1)
    natural_height: int = Field(ge=1)
    width: int = Field(ge=1, description="Display width")
    height: int = Field(ge=1, description="Display height")
    content_type: Optional[str] = None

    @computed_field
    @property
    def size_bytes(self) -> int:
        return len(self.data)


# ─── Block Models ─────────────────────────────────────────────────────────────


class _BlockBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    line_number: int = Field(
        default=0,
        ge=0,
        description="1-indexed source line where the block starts",
    )


class HeadingBlock(_BlockBase):
    type: Literal[BlockType.HEADING] = BlockType.HEADING
    level: int = Field(ge=1, le=6)
    runs: list[TextRun] = Field(default_factory=list)


class ParagraphBlock(_BlockBase):
    type: Literal[BlockType.PARAGRAPH] = BlockType.PARAGRAPH
    runs: list[TextRun] = Field(default_factory=list)


class CodeBlock(_BlockBase):
    type: Literal[BlockType.CODE] = BlockType.CODE
    lines: list[str] = Field(default_factory=list)
    language: str = ""


class TableBlock(_BlockBase):
    type: Literal[BlockType.TABLE] = BlockType.TABLE
    rows: list[CellRow] = Field(default_factory=list)

    @computed_field
    @property
    def column_count(self) -> int:
        return len(self.rows[0].cells) if self.rows else 0

    @computed_field
    @property
    def has_header(self) -> bool:
        return bool(self.rows)


class MathBlock(_BlockBase):
    type: Literal[BlockType.MATH] = BlockType.MATH
    expression: str


class QuoteBlock(_BlockBase):
    type: Literal[BlockType.QUOTE] = BlockType.QUOTE
    runs: list[TextRun] = Field(default_factory=list)


class ImageBlock(_BlockBase):
    type: Literal[BlockType.IMAGE] = BlockType.IMAGE
    alt_text: str = ""
    reference: str = Field(repr=False)
    image: ResolvedImage

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


class MissingImageBlock(_BlockBase):
    """Visible placeholder for an image that could not be resolved."""
    type: Literal[BlockType.IMAGE_MISSING] = BlockType.IMAGE_MISSING
    alt_text: str = ""
    reference: str = Field(repr=False)


Block = Annotated[
    Union[
        HeadingBlock,
        ParagraphBlock,
        CodeBlock,
        TableBlock,
        MathBlock,
        QuoteBlock,
        ImageBlock,
        MissingImageBlock,
    ],
    Field(discriminator="type"),
]


class Anomaly(BaseModel):
    """A recoverable content problem and the fallback applied to it."""
    type: AnomalyType
    line_number: int = 0
    message: str
    context: Optional[dict] = None


# ─── Styled Document Model ────────────────────────────────────────────────────


class StyledRun(BaseModel):
    """A text run with fully resolved presentation."""
    text: str
    font: str
    size: float = Field(gt=0, description="Points")
    color: str
    bold: bool = False
    italic: bool = False
    is_code: bool = False
    is_math: bool = False
    shading: Optional[str] = None


class Border(BaseModel):
    color: str
    size: int = Field(default=1, description="Eighths of a point")


class CellBorders(BaseModel):
    top: Border
    bottom: Border
    left: Border
    right: Border

    @classmethod
    def uniform(cls, color: str, size: int = 1) -> CellBorders:
        return cls(
            top=Border(color=color, size=size),
            bottom=Border(color=color, size=size),
            left=Border(color=color, size=size),
            right=Border(color=color, size=size),
        )


class StyledParagraph(BaseModel):
    type: Literal["paragraph"] = "paragraph"
    role: Literal["heading", "paragraph", "quote", "math", "image_missing"]
    runs: list[StyledRun] = Field(default_factory=list)
    alignment: Alignment = Alignment.LEFT
    heading_level: Optional[int] = None
    spacing_before: int = 0
    spacing_after: int = 0
    line_spacing: Optional[float] = None
    indent_left: int = 0


class StyledCell(BaseModel):
    runs: list[StyledRun] = Field(default_factory=list)
    shading: Optional[str] = None
    alignment: Alignment = Alignment.CENTER
    borders: CellBorders
    margin: int = 100


class StyledTable(BaseModel):
    type: Literal["table"] = "table"
    rows: list[list[StyledCell]] = Field(default_factory=list)
    header_rows: int = 1


class StyledCodeBlock(BaseModel):
    type: Literal["code"] = "code"
    lines: list[str] = Field(default_factory=list)
    language: str = ""
    font: str
    size: float
    color: str
    shading: str
    borders: CellBorders
    margin: int = 200


class StyledImage(BaseModel):
    type: Literal["image"] = "image"
    data: bytes = Field(exclude=True, repr=False)
    width: int
    height: int
    alt_text: str = ""
    caption: Optional[StyledRun] = None
    alignment: Alignment = Alignment.CENTER
    spacing_before: int = 200
    spacing_after: int = 200


StyledUnit = Annotated[
    Union[StyledParagraph, StyledTable, StyledCodeBlock, StyledImage],
    Field(discriminator="type"),
]


class DocumentModel(BaseModel):
    """
    Style-resolved, serializer-ready representation of a whole document.
    One unit per input block, in document order.
    """
    style: StyleConfig
    units: list[StyledUnit] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.units)


# ─── Report / Result Models ───────────────────────────────────────────────────


class ConversionReport(BaseModel):
    """Post-scan summary of what was produced and what was recovered."""
    total_blocks: int = 0
    block_breakdown: dict[str, int] = Field(default_factory=dict)
    images_resolved: int = 0
    images_unavailable: int = 0
    anomalies: list[Anomaly] = Field(default_factory=list)
    anomaly_breakdown: dict[str, int] = Field(default_factory=dict)

    @computed_field
    @property
    def is_complete(self) -> bool:
        """True when no fallback had to be applied."""
        return not self.anomalies


class ConversionInfo(BaseModel):
    """Version tracking for a conversion run."""
    converter_version: str = "1.0.0"
    converted_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    source: str = ""
    template: str = ""
    line_count: int = 0
    block_count: int = 0


class ConversionResult(BaseModel):
    """
    Complete output of a conversion run.
    `blocks` is the scanner's block model, kept as a snapshot.
    """
    info: ConversionInfo
    document: DocumentModel
    blocks: list[Block] = Field(default_factory=list)
    report: ConversionReport = Field(default_factory=ConversionReport)
    output_path: Optional[str] = None
