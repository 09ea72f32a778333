"""
Inline Tokenizer
================
Turns one line of markup into an ordered list of styled TextRuns.

Three explicit passes:
    1. Math spans ($$...$$, then $...$) are cut out and replaced with
       opaque placeholders, so '_' or '*' inside an expression can never
       be read as an emphasis marker.
    2. Emphasis and code delimiters are scanned left to right over the
       placeholder text, longest marker first.
    3. Placeholders are substituted back as dedicated math runs.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .models import Emphasis, TextRun

logger = logging.getLogger(__name__)

# ─── Patterns ─────────────────────────────────────────────────────────────────

DISPLAY_MATH_PATTERN = re.compile(r"\$\$(.+?)\$\$")
INLINE_MATH_PATTERN = re.compile(r"\$(.+?)\$")

# Private-use code points: never markers, never produced by real markup
_PLACEHOLDER_OPEN = "\ue000"
_PLACEHOLDER_CLOSE = "\ue001"
PLACEHOLDER_PATTERN = re.compile(
    f"{_PLACEHOLDER_OPEN}(\\d+){_PLACEHOLDER_CLOSE}"
)
PLACEHOLDER_CHARS = re.compile(f"[{_PLACEHOLDER_OPEN}{_PLACEHOLDER_CLOSE}]")

EMPHASIS_MARKERS = "*_"
CODE_MARKER = "`"

EMPHASIS_BY_WIDTH = {
    3: Emphasis.BOLD_ITALIC,
    2: Emphasis.BOLD,
    1: Emphasis.ITALIC,
}


@dataclass(frozen=True)
class MathSpan:
    expression: str
    source: str
    # A placeholder character that was already in the input
    literal: bool = False


@dataclass(frozen=True)
class Segment:
    """Output of the delimiter pass, before math substitution."""
    text: str
    emphasis: Emphasis = Emphasis.NONE
    is_code: bool = False


class InlineTokenizer:
    """
    Stateless inline tokenizer.

    Unmatched delimiters are kept as literal text and empty delimiter
    pairs produce no run; tokenizing never raises on malformed markup.
    """

    def tokenize(self, line: str) -> list[TextRun]:
        if not line:
            return []

        text, spans = self.extract_math(line)
        segments = self.scan_delimiters(text)
        runs = self._restore_math(segments, spans)
        return merge_runs(runs)

    # ─── Pass 1: math extraction ─────────────────────────────────────────

    def extract_math(self, line: str) -> tuple[str, list[MathSpan]]:
        """
        Replace math spans with placeholders, display math first.

        Placeholder characters already present in the line are protected
        first as literal spans, so every placeholder left in the text was
        issued here.
        """
        spans: list[MathSpan] = []

        def _issue(span: MathSpan) -> str:
            spans.append(span)
            return f"{_PLACEHOLDER_OPEN}{len(spans) - 1}{_PLACEHOLDER_CLOSE}"

        def _expand(text: str) -> str:
            return PLACEHOLDER_PATTERN.sub(
                lambda m: spans[int(m.group(1))].source, text
            )

        def _replace(match: re.Match) -> str:
            expression = match.group(1).strip()
            if not expression:
                return match.group(0)
            return _issue(MathSpan(
                expression=_expand(expression), source=_expand(match.group(0))
            ))

        text = PLACEHOLDER_CHARS.sub(
            lambda m: _issue(MathSpan(
                expression=m.group(0), source=m.group(0), literal=True
            )),
            line,
        )
        text = DISPLAY_MATH_PATTERN.sub(_replace, text)
        text = INLINE_MATH_PATTERN.sub(_replace, text)
        return text, spans

    # ─── Pass 2: delimiter scan ──────────────────────────────────────────

    def scan_delimiters(self, text: str) -> list[Segment]:
        segments: list[Segment] = []
        plain: list[str] = []

        def _flush():
            if plain:
                segments.append(Segment(text="".join(plain)))
                plain.clear()

        i = 0
        n = len(text)
        while i < n:
            ch = text[i]

            if ch == CODE_MARKER:
                close = text.find(CODE_MARKER, i + 1)
                if close == -1:
                    plain.append(ch)
                    i += 1
                    continue
                _flush()
                content = text[i + 1:close]
                if content:
                    segments.append(Segment(text=content, is_code=True))
                i = close + 1
                continue

            if ch in EMPHASIS_MARKERS:
                run_len = 1
                while i + run_len < n and text[i + run_len] == ch:
                    run_len += 1

                consumed = self._match_emphasis(text, i, ch, run_len, segments, _flush)
                if consumed:
                    i = consumed
                else:
                    plain.append(text[i:i + run_len])
                    i += run_len
                continue

            plain.append(ch)
            i += 1

        _flush()
        return segments

    def _match_emphasis(self, text, start, marker_char, run_len, segments, flush) -> int:
        """
        Try markers from widest to narrowest at `start`.
        Returns the index after the closing marker, or 0 when unmatched.
        """
        for width in range(min(run_len, 3), 0, -1):
            marker = marker_char * width
            # The whole run opens; markers beyond `width` stay literal
            content_start = start + run_len
            close = text.find(marker, content_start)

            if close == -1:
                # "**" directly followed by "**" is an empty pair: no run
                if width >= 2 and run_len == 2 * width:
                    flush()
                    return start + run_len
                continue

            flush()
            surplus = run_len - width
            if surplus:
                segments.append(Segment(text=marker_char * surplus))
            content = text[content_start:close]
            if content:
                segments.append(
                    Segment(text=content, emphasis=EMPHASIS_BY_WIDTH[width])
                )
            return close + width
        return 0

    # ─── Pass 3: math substitution ───────────────────────────────────────

    def _restore_math(
        self, segments: list[Segment], spans: list[MathSpan]
    ) -> list[TextRun]:
        runs: list[TextRun] = []

        for seg in segments:
            if seg.is_code:
                # Code is verbatim: put the original $...$ source back
                runs.append(TextRun(
                    text=PLACEHOLDER_PATTERN.sub(
                        lambda m: spans[int(m.group(1))].source, seg.text
                    ),
                    is_code=True,
                ))
                continue

            pos = 0
            for match in PLACEHOLDER_PATTERN.finditer(seg.text):
                if match.start() > pos:
                    runs.append(TextRun(
                        text=seg.text[pos:match.start()], emphasis=seg.emphasis
                    ))
                span = spans[int(match.group(1))]
                if span.literal:
                    runs.append(TextRun(text=span.source, emphasis=seg.emphasis))
                else:
                    runs.append(TextRun(text=span.expression, is_math=True))
                pos = match.end()
            if pos < len(seg.text):
                runs.append(TextRun(text=seg.text[pos:], emphasis=seg.emphasis))

        return runs


def merge_runs(runs: list[TextRun]) -> list[TextRun]:
    """Join neighbouring text runs that share one style."""
    merged: list[TextRun] = []
    for run in runs:
        if (
            merged
            and not run.is_code and not run.is_math
            and not merged[-1].is_code and not merged[-1].is_math
            and merged[-1].emphasis == run.emphasis
        ):
            merged[-1] = TextRun(
                text=merged[-1].text + run.text, emphasis=run.emphasis
            )
        else:
            merged.append(run)
    return merged


_default_tokenizer = InlineTokenizer()


def tokenize(line: str) -> list[TextRun]:
    """Tokenize a single line with the shared default tokenizer."""
    return _default_tokenizer.tokenize(line)
