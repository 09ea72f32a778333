"""
Block Scanner
=============
Deterministic state machine that walks markup line by line and emits
block model nodes in document order.

States:
    SCANNING       default; classifies each line
    IN_CODE_FENCE  accumulating raw lines until a closing ``` fence
    IN_BLOCK_MATH  accumulating expression lines until a closing $$
    IN_TABLE       accumulating consecutive pipe-prefixed lines

End of input in a non-default state flushes the partial block instead of
discarding it. Image references are resolved at the line where they
appear; the scanner waits for each resolution before moving on.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Optional

from .images import ImageResolver
from .inline import InlineTokenizer
from .models import (
    Anomaly,
    AnomalyType,
    Block,
    CodeBlock,
    HeadingBlock,
    ImageBlock,
    MathBlock,
    MissingImageBlock,
    ParagraphBlock,
    QuoteBlock,
    TableBlock,
)
from .tables import TableNormalizer

logger = logging.getLogger(__name__)

# ─── Line Patterns ────────────────────────────────────────────────────────────

HEADING_PATTERN = re.compile(r"^(#+)\s*(.*)$")

# ![alt](reference) at the start of a line
IMAGE_PATTERN = re.compile(r"^!\[(.*?)\]\((.*?)\)")

# Optional "title" after an image reference
IMAGE_TITLE_PATTERN = re.compile(r"""\s+(?:"[^"]*"|'[^']*')\s*$""")

CODE_FENCE = "```"
MATH_FENCE = "$$"
TABLE_MARKER = "|"
QUOTE_MARKER = ">"

MAX_HEADING_LEVEL = 6


class ScannerState(Enum):
    SCANNING = "SCANNING"
    IN_CODE_FENCE = "IN_CODE_FENCE"
    IN_BLOCK_MATH = "IN_BLOCK_MATH"
    IN_TABLE = "IN_TABLE"


class BlockScanner:
    """
    Finite state machine that transforms markup text into an ordered
    list of blocks. Each state has its own line handler; `finish` is the
    explicit end-of-input transition.
    """

    def __init__(
        self,
        resolver: Optional[ImageResolver] = None,
        tokenizer: Optional[InlineTokenizer] = None,
        table_normalizer: Optional[TableNormalizer] = None,
    ):
        self.resolver = resolver or ImageResolver()
        self.tokenizer = tokenizer or InlineTokenizer()
        self.table_normalizer = table_normalizer or TableNormalizer(self.tokenizer)
        self.reset()

    def reset(self):
        """Reset the state machine for a fresh scanning run."""
        self.state = ScannerState.SCANNING
        self.blocks: list[Block] = []
        self.anomalies: list[Anomaly] = []
        self.line_number = 0
        self._buffer: list[str] = []
        self._buffer_start = 0
        self._fence_language = ""

    def scan(self, markup: str) -> list[Block]:
        """Scan a whole document into blocks."""
        self.reset()

        for line in split_lines(markup):
            self.feed(line)
        self.finish()

        logger.debug(
            f"Scanned {self.line_number} lines into {len(self.blocks)} blocks"
        )
        return list(self.blocks)

    def feed(self, raw_line: str):
        """Consume one raw line in the current state."""
        self.line_number += 1
        self._handlers[self.state](self, raw_line)

    def finish(self):
        """End of input: flush whatever block is still open."""
        if self.state is ScannerState.IN_CODE_FENCE:
            self._record(
                AnomalyType.UNTERMINATED_CODE_FENCE,
                f"Code fence opened on line {self._buffer_start} was never "
                f"closed; kept {len(self._buffer)} line(s)",
                self._buffer_start,
            )
            self._flush_code()
        elif self.state is ScannerState.IN_BLOCK_MATH:
            self._record(
                AnomalyType.UNTERMINATED_BLOCK_MATH,
                f"Block math opened on line {self._buffer_start} was never closed",
                self._buffer_start,
            )
            self._flush_math()
        elif self.state is ScannerState.IN_TABLE:
            self._flush_table()

        self.state = ScannerState.SCANNING

    # ─── State Handlers ──────────────────────────────────────────────────

    def _on_scanning(self, raw_line: str):
        line = raw_line.strip()

        if not line:
            return

        if line.startswith("#"):
            self._emit_heading(line)
            return

        image_match = IMAGE_PATTERN.match(line)
        if image_match:
            self._emit_image(image_match.group(1), image_match.group(2))
            self._emit_trailing(line[image_match.end():])
            return

        if line.startswith(CODE_FENCE):
            self._enter(ScannerState.IN_CODE_FENCE)
            info = line[len(CODE_FENCE):].strip("` \t")
            self._fence_language = info.split()[0] if info else ""
            return

        if line.startswith(TABLE_MARKER):
            self._enter(ScannerState.IN_TABLE)
            self._buffer.append(line)
            return

        if line.startswith(MATH_FENCE):
            self._open_block_math(line[len(MATH_FENCE):])
            return

        if line.startswith(QUOTE_MARKER):
            self._emit(QuoteBlock(
                runs=self.tokenizer.tokenize(line[len(QUOTE_MARKER):].strip()),
                line_number=self.line_number,
            ))
            return

        self._emit_paragraph(line)

    def _on_code_fence(self, raw_line: str):
        if raw_line.strip().startswith(CODE_FENCE):
            self._flush_code()
            self.state = ScannerState.SCANNING
            return
        self._buffer.append(raw_line)

    def _on_block_math(self, raw_line: str):
        line = raw_line.strip()
        close = line.find(MATH_FENCE)

        if close == -1:
            if line:
                self._buffer.append(line)
            return

        before = line[:close].strip()
        if before:
            self._buffer.append(before)
        self._flush_math()
        self.state = ScannerState.SCANNING
        self._emit_trailing(line[close + len(MATH_FENCE):])

    def _on_table(self, raw_line: str):
        line = raw_line.strip()
        if line.startswith(TABLE_MARKER):
            self._buffer.append(line)
            return

        # First non-pipe line ends the table and is classified afresh
        self._flush_table()
        self.state = ScannerState.SCANNING
        self._on_scanning(raw_line)

    _handlers = {
        ScannerState.SCANNING: _on_scanning,
        ScannerState.IN_CODE_FENCE: _on_code_fence,
        ScannerState.IN_BLOCK_MATH: _on_block_math,
        ScannerState.IN_TABLE: _on_table,
    }

    # ─── Transitions ─────────────────────────────────────────────────────

    def _enter(self, state: ScannerState):
        self.state = state
        self._buffer = []
        self._buffer_start = self.line_number
        self._fence_language = ""

    def _open_block_math(self, rest: str):
        rest = rest.strip()
        if not rest:
            self._enter(ScannerState.IN_BLOCK_MATH)
            return

        # Single-line block math, closed or not
        close = rest.find(MATH_FENCE)
        if close == -1:
            expression, trailing = rest, ""
        else:
            expression = rest[:close].strip()
            trailing = rest[close + len(MATH_FENCE):]

        if expression:
            self._emit(MathBlock(expression=expression, line_number=self.line_number))
        else:
            self._record_empty_math(self.line_number)
        self._emit_trailing(trailing)

    # ─── Flushes ─────────────────────────────────────────────────────────

    def _flush_code(self):
        self._emit(CodeBlock(
            lines=list(self._buffer),
            language=self._fence_language,
            line_number=self._buffer_start,
        ))
        self._buffer = []

    def _flush_math(self):
        expression = "\n".join(self._buffer).strip()
        if expression:
            self._emit(MathBlock(
                expression=expression, line_number=self._buffer_start
            ))
        else:
            self._record_empty_math(self._buffer_start)
        self._buffer = []

    def _flush_table(self):
        rows = self.table_normalizer.normalize(self._buffer)
        if rows:
            self._emit(TableBlock(rows=rows, line_number=self._buffer_start))
        else:
            self._record(
                AnomalyType.EMPTY_TABLE,
                f"Table on line {self._buffer_start} has no content rows; skipped",
                self._buffer_start,
            )
        self._buffer = []

    # ─── Block Emitters ──────────────────────────────────────────────────

    def _emit(self, block: Block):
        self.blocks.append(block)
        logger.debug(f"Line {block.line_number}: {block.type.value} block")

    def _emit_heading(self, line: str):
        match = HEADING_PATTERN.match(line)
        level = min(len(match.group(1)), MAX_HEADING_LEVEL)
        self._emit(HeadingBlock(
            level=level,
            runs=self.tokenizer.tokenize(match.group(2).strip()),
            line_number=self.line_number,
        ))

    def _emit_paragraph(self, text: str):
        self._emit(ParagraphBlock(
            runs=self.tokenizer.tokenize(text),
            line_number=self.line_number,
        ))

    def _emit_trailing(self, text: str):
        """Text after a closed construct on the same line is classified afresh."""
        text = text.strip()
        if text:
            self._on_scanning(text)

    def _emit_image(self, alt_text: str, reference: str):
        reference = IMAGE_TITLE_PATTERN.sub("", reference.strip())
        image = self.resolver.resolve(reference)

        if image is None:
            self._record(
                AnomalyType.IMAGE_UNAVAILABLE,
                f"Image '{alt_text}' could not be resolved; placeholder emitted",
                self.line_number,
                context={"alt_text": alt_text},
            )
            self._emit(MissingImageBlock(
                alt_text=alt_text,
                reference=reference,
                line_number=self.line_number,
            ))
            return

        self._emit(ImageBlock(
            alt_text=alt_text,
            reference=reference,
            image=image,
            line_number=self.line_number,
        ))

    def _record_empty_math(self, line_number: int):
        self._record(
            AnomalyType.EMPTY_BLOCK_MATH,
            f"Block math on line {line_number} has no expression; skipped",
            line_number,
        )

    def _record(
        self,
        anomaly_type: AnomalyType,
        message: str,
        line_number: int,
        context: Optional[dict] = None,
    ):
        logger.warning(message)
        self.anomalies.append(Anomaly(
            type=anomaly_type,
            line_number=line_number,
            message=message,
            context=context,
        ))


def split_lines(markup: str) -> list[str]:
    """Split on LF, CRLF or CR only."""
    return markup.replace("\r\n", "\n").replace("\r", "\n").split("\n")
