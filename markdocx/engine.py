"""
Conversion Engine
=================
Main orchestrator that combines block scanning, document assembly,
reporting and serialization into a complete conversion pipeline.

Usage:
    engine = ConverterEngine(config)
    document = engine.convert("# Title\\n\\nHello **world**")
    result = engine.convert_file("notes.md")   # also writes notes.docx

Architecture:
    markup → BlockScanner (InlineTokenizer, TableNormalizer, ImageResolver)
    → Blocks → DocumentAssembler → DocumentModel → DocxSerializer (.docx)

Each run owns its scanner, block list and document model, so separate
conversions never share mutable state.
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from . import __version__
from .assembler import DocumentAssembler
from .images import DEFAULT_TIMEOUT, MAX_DISPLAY_WIDTH, ImageResolver
from .models import ConversionInfo, ConversionResult, DocumentModel
from .report import ReportBuilder
from .serializer import DocxSerializer
from .state_machine import BlockScanner, split_lines
from .styles import StyleConfig, Template, parse_template, resolve_style

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class ConverterConfig:
    """Configuration for the conversion engine."""

    # Style
    template: str = Template.STANDARD.value
    style_overrides: dict[str, Any] = field(default_factory=dict)

    # Images
    image_timeout: float = DEFAULT_TIMEOUT
    max_image_width: int = MAX_DISPLAY_WIDTH
    allow_remote_images: bool = True
    allow_local_images: bool = True
    image_base_dir: Optional[str] = None

    # Output
    output_dir: Optional[str] = None
    save_block_snapshot: bool = False

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None


class ConverterEngine:
    """
    Markup to DOCX conversion engine.

    Orchestrates the full pipeline:
        1. Style resolution (template + overrides)
        2. Block scanning (with in-order image resolution)
        3. Document assembly
        4. Reporting
        5. Serialization (convert_file only)
    """

    def __init__(self, config: Optional[ConverterConfig] = None):
        self.config = config or ConverterConfig()
        self._setup_logging()

    def _setup_logging(self):
        """Configure the package logger from config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        package_logger = logging.getLogger("markdocx")
        package_logger.setLevel(log_level)

        if not package_logger.handlers:
            console = logging.StreamHandler()
            console.setLevel(log_level)
            console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
            package_logger.addHandler(console)
        else:
            for handler in package_logger.handlers:
                handler.setLevel(log_level)

        if self.config.log_file:
            log_path = os.path.abspath(self.config.log_file)
            already = any(
                isinstance(h, logging.FileHandler) and h.baseFilename == log_path
                for h in package_logger.handlers
            )
            if not already:
                Path(log_path).parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.FileHandler(log_path, encoding="utf-8")
                file_handler.setLevel(log_level)
                file_handler.setFormatter(
                    logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
                )
                package_logger.addHandler(file_handler)

    # ─── Public API ──────────────────────────────────────────────────────

    def resolve_style(self, style: Optional[StyleConfig] = None) -> StyleConfig:
        """Explicit style wins; otherwise template + configured overrides."""
        if style is not None:
            return style
        return resolve_style(self.config.template, self.config.style_overrides)

    def convert(
        self, markup: str, style: Optional[StyleConfig] = None
    ) -> DocumentModel:
        """Convert markup text into a styled DocumentModel."""
        return self.run(markup, style).document

    def run(
        self,
        markup: str,
        style: Optional[StyleConfig] = None,
        source: str = "",
        base_dir: Optional[str] = None,
    ) -> ConversionResult:
        """
        Convert markup and keep the block snapshot and report.

        Raises:
            StyleConfigError: If the style configuration is invalid.
        """
        start_time = time.time()
        resolved_style = self.resolve_style(style)

        # ── Step 1: Block scanning ───────────────────────────────────
        logger.info("Phase 1: Block scanning")
        scanner = BlockScanner(resolver=self._build_resolver(base_dir))
        blocks = scanner.scan(markup)

        # ── Step 2: Document assembly ────────────────────────────────
        logger.info("Phase 2: Document assembly")
        document = DocumentAssembler().assemble(blocks, resolved_style)

        # ── Step 3: Report ───────────────────────────────────────────
        report = ReportBuilder().build(blocks, scanner.anomalies)

        info = ConversionInfo(
            converter_version=__version__,
            source=source,
            template=self._template_name(style),
            line_count=len(split_lines(markup)),
            block_count=len(blocks),
        )

        elapsed = time.time() - start_time
        logger.info(
            f"Conversion complete in {elapsed:.2f}s, "
            f"{len(document.units)} blocks assembled"
        )

        return ConversionResult(
            info=info,
            document=document,
            blocks=blocks,
            report=report,
        )

    def convert_file(
        self,
        input_path: Union[str, Path],
        output_path: Optional[Union[str, Path]] = None,
        style: Optional[StyleConfig] = None,
    ) -> ConversionResult:
        """
        Convert a markup file and write the .docx package.

        Relative image paths resolve against the input file's directory
        unless image_base_dir is configured.

        Raises:
            FileNotFoundError: If the input file doesn't exist.
            StyleConfigError: If the style configuration is invalid.
        """
        input_path = Path(input_path).resolve()
        if not input_path.exists():
            raise FileNotFoundError(f"Markup file not found: {input_path}")

        logger.info(f"Starting conversion of: {input_path}")
        markup = input_path.read_text(encoding="utf-8")

        base_dir = self.config.image_base_dir or str(input_path.parent)
        result = self.run(markup, style, source=input_path.name, base_dir=base_dir)

        output = self._output_path(input_path, output_path)
        DocxSerializer().save(result.document, output)
        result.output_path = str(output)

        if self.config.save_block_snapshot:
            snapshot = output.with_name(f"{output.stem}_blocks.json")
            self._save_snapshot(result, snapshot)

        return result

    # ─── Internals ───────────────────────────────────────────────────────

    def _build_resolver(self, base_dir: Optional[str]) -> ImageResolver:
        return ImageResolver(
            timeout=self.config.image_timeout,
            max_width=self.config.max_image_width,
            allow_remote=self.config.allow_remote_images,
            allow_local=self.config.allow_local_images,
            base_dir=base_dir or self.config.image_base_dir,
        )

    def _template_name(self, style: Optional[StyleConfig]) -> str:
        if style is not None:
            return Template.CUSTOM.value
        return parse_template(self.config.template).value

    def _output_path(
        self, input_path: Path, output_path: Optional[Union[str, Path]]
    ) -> Path:
        if output_path:
            return Path(output_path)
        output_dir = Path(self.config.output_dir) if self.config.output_dir else input_path.parent
        return output_dir / f"{input_path.stem}.docx"

    def _save_snapshot(self, result: ConversionResult, filepath: Path):
        """Save the block model and report next to the .docx."""
        try:
            data = {
                "info": result.info.model_dump(),
                "blocks": [b.model_dump(mode="json") for b in result.blocks],
                "report": result.report.model_dump(mode="json"),
            }
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False, default=str)
            logger.info(f"Saved block snapshot: {filepath}")
        except OSError as e:
            logger.error(f"Failed to save block snapshot: {e}")


def convert(markup: str, style: Optional[StyleConfig] = None) -> DocumentModel:
    """
    Convert markup into a DocumentModel.
    Uses the standard preset when no style is given.
    """
    if style is None:
        style = resolve_style(Template.STANDARD)
    scanner = BlockScanner()
    blocks = scanner.scan(markup)
    return DocumentAssembler().assemble(blocks, style)
