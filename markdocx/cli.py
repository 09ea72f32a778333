"""
CLI Interface
=============
Command-line interface for the markup to DOCX compiler.

Usage:
    python -m markdocx convert <input.md> [options]
    python -m markdocx batch <directory> [options]
    python -m markdocx inspect <input.md>
    python -m markdocx presets
    python -m markdocx html2md <input.html> [-o output.md]
    python -m markdocx serve [options]
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from . import __version__
from .engine import ConverterConfig, ConverterEngine
from .html_import import html_to_markup
from .styles import PRESETS, StyleConfigError, Template

console = Console()

TEMPLATE_CHOICES = [t.value for t in Template] + ["compact-note"]


def _load_style_overrides(
    style_file: Optional[str],
    font: Optional[str],
    font_size: Optional[float],
    alignment: Optional[str],
) -> dict:
    """Merge a JSON style file with individual CLI flags (flags win)."""
    overrides: dict = {}
    if style_file:
        with open(style_file, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise StyleConfigError(f"Style file must hold a JSON object: {style_file}")
        overrides.update(data)
    if font is not None:
        overrides["font_face"] = font
    if font_size is not None:
        overrides["base_font_size"] = font_size
    if alignment is not None:
        overrides["alignment"] = alignment
    return overrides


@click.group()
@click.version_option(version=__version__, prog_name="markdocx")
def cli():
    """markdocx: Markup to DOCX compiler."""
    pass


@cli.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--output", "-o",
    default=None,
    help="Output .docx path (defaults to <input>.docx)",
)
@click.option(
    "--template", "-t",
    default="standard",
    type=click.Choice(TEMPLATE_CHOICES),
    help="Style preset",
)
@click.option(
    "--style-file",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="JSON file with style fields (required fields for 'custom')",
)
@click.option("--font", default=None, help="Override font face")
@click.option("--font-size", default=None, type=float, help="Override base font size (pt)")
@click.option(
    "--alignment",
    default=None,
    type=click.Choice(["left", "center", "right", "justify"]),
    help="Override paragraph alignment",
)
@click.option(
    "--image-dir",
    default=None,
    help="Base directory for relative image paths",
)
@click.option(
    "--image-timeout",
    default=15.0,
    type=float,
    help="Timeout for remote image fetches (seconds)",
)
@click.option(
    "--no-remote-images",
    is_flag=True,
    default=False,
    help="Do not fetch http(s) images; show placeholders instead",
)
@click.option(
    "--snapshot",
    is_flag=True,
    default=False,
    help="Also save a JSON snapshot of the block model",
)
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
@click.option("--log-file", default=None, help="Path to log file")
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Print the conversion result as JSON (for programmatic use)",
)
def convert(
    input_path: str,
    output: Optional[str],
    template: str,
    style_file: Optional[str],
    font: Optional[str],
    font_size: Optional[float],
    alignment: Optional[str],
    image_dir: Optional[str],
    image_timeout: float,
    no_remote_images: bool,
    snapshot: bool,
    log_level: str,
    log_file: Optional[str],
    json_output: bool,
):
    """Convert a markup file into a .docx document."""

    if json_output:
        log_level = "ERROR"

    try:
        config = ConverterConfig(
            template=template,
            style_overrides=_load_style_overrides(style_file, font, font_size, alignment),
            image_timeout=image_timeout,
            allow_remote_images=not no_remote_images,
            image_base_dir=image_dir,
            save_block_snapshot=snapshot,
            log_level=log_level,
            log_file=log_file,
        )

        if not json_output:
            console.print()
            console.print(
                Panel.fit(
                    f"[bold cyan]markdocx v{__version__}[/]\n"
                    f"[dim]Converting: {Path(input_path).name}[/]",
                    border_style="cyan",
                )
            )
            console.print()

        engine = ConverterEngine(config)
        result = engine.convert_file(input_path, output)

        if json_output:
            click.echo(json.dumps(
                result.model_dump(mode="json"),
                indent=2,
                ensure_ascii=False,
                default=str,
            ))
        else:
            _display_report(result.report.model_dump())
            console.print(f"[green]✓[/] Saved: {result.output_path}")
            console.print()

    except StyleConfigError as e:
        console.print(f"[red]Style error:[/] {e}")
        sys.exit(1)
    except (FileNotFoundError, json.JSONDecodeError) as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Unexpected error:[/] {e}")
        if log_level == "DEBUG":
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option("--output", "-o", default=None, help="Output directory")
@click.option(
    "--template", "-t",
    default="standard",
    type=click.Choice(TEMPLATE_CHOICES),
    help="Style preset",
)
@click.option("--log-level", default="WARNING", help="Logging level")
@click.option(
    "--no-remote-images",
    is_flag=True,
    default=False,
    help="Do not fetch http(s) images",
)
def batch(
    directory: str,
    output: Optional[str],
    template: str,
    log_level: str,
    no_remote_images: bool,
):
    """Convert every .md file in a directory."""

    md_files = sorted(Path(directory).glob("*.md"))

    if not md_files:
        console.print(f"[yellow]No markup files found in: {directory}[/]")
        return

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Batch Conversion[/]\n"
            f"[dim]Found {len(md_files)} files in: {directory}[/]",
            border_style="cyan",
        )
    )
    console.print()

    config = ConverterConfig(
        template=template,
        output_dir=output,
        allow_remote_images=not no_remote_images,
        log_level=log_level,
    )

    results = []
    errors = []

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeRemainingColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Converting...", total=len(md_files))

        for md_file in md_files:
            progress.update(task, description=f"Converting: {md_file.name}")
            try:
                engine = ConverterEngine(config)
                results.append((md_file.name, engine.convert_file(md_file)))
            except Exception as e:
                errors.append((md_file.name, str(e)))
            progress.advance(task)

    _display_batch_summary(results, errors)

    if errors:
        sys.exit(1)


@cli.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--no-remote-images",
    is_flag=True,
    default=False,
    help="Do not fetch http(s) images",
)
def inspect(input_path: str, no_remote_images: bool):
    """Show the block model and report without writing a document."""

    path = Path(input_path)
    config = ConverterConfig(
        allow_remote_images=not no_remote_images,
        log_level="ERROR",
    )
    engine = ConverterEngine(config)
    result = engine.run(
        path.read_text(encoding="utf-8"),
        source=path.name,
        base_dir=str(path.parent),
    )

    table = Table(title=f"Blocks: {path.name}", border_style="cyan")
    table.add_column("#", justify="right")
    table.add_column("Line", justify="right")
    table.add_column("Type", style="bold")
    table.add_column("Summary")

    for index, block in enumerate(result.blocks, start=1):
        table.add_row(
            str(index),
            str(block.line_number),
            block.type.value,
            _summarize_block(block),
        )

    console.print()
    console.print(table)
    console.print()
    _display_report(result.report.model_dump())


@cli.command()
def presets():
    """List the built-in style presets."""

    table = Table(title="Style Presets", border_style="cyan")
    table.add_column("Template", style="bold")
    table.add_column("Font")
    table.add_column("Size", justify="right")
    table.add_column("Line", justify="right")
    table.add_column("Heading")
    table.add_column("Body")
    table.add_column("Align")
    table.add_column("Spacing", justify="right")

    for template, style in PRESETS.items():
        table.add_row(
            template.value,
            style.font_face,
            f"{style.base_font_size:g}",
            f"{style.line_spacing:g}",
            f"#{style.heading_color}",
            f"#{style.body_color}",
            style.alignment.value,
            str(style.paragraph_spacing),
        )

    console.print()
    console.print(table)
    console.print()


@cli.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", default=None, help="Output markup file (stdout if omitted)")
def html2md(input_path: str, output: Optional[str]):
    """Convert an HTML file into markup."""

    html = Path(input_path).read_text(encoding="utf-8")
    markup = html_to_markup(html)

    if output:
        Path(output).write_text(markup + "\n", encoding="utf-8")
        console.print(f"[green]✓[/] Saved: {output}")
    else:
        click.echo(markup)


@cli.command()
@click.option("--host", default="0.0.0.0", help="Server host")
@click.option("--port", default=5000, type=int, help="Server port")
@click.option("--debug", is_flag=True, default=False, help="Debug mode")
def serve(host: str, port: int, debug: bool):
    """Start the HTTP conversion service."""
    from .server import run_server

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]markdocx Conversion Service[/]\n"
            f"[dim]Starting on {host}:{port}[/]",
            border_style="cyan",
        )
    )
    console.print()

    run_server(host=host, port=port, debug=debug)


# ─── Display Helpers ──────────────────────────────────────────────────────────


def _summarize_block(block, limit: int = 60) -> str:
    if hasattr(block, "runs"):
        text = "".join(r.text for r in block.runs)
    elif block.type.value == "code":
        text = f"{len(block.lines)} line(s) {block.language}".strip()
    elif block.type.value == "table":
        text = f"{len(block.rows)} row(s) x {block.column_count} col(s)"
    elif block.type.value == "math":
        text = block.expression
    elif block.type.value == "image":
        text = f"{block.alt_text} ({block.width}x{block.height})"
    else:
        text = f"{block.alt_text} [unavailable]"

    text = text.replace("\n", " ")
    return text if len(text) <= limit else text[:limit - 3] + "..."


def _display_report(report: dict):
    """Display the conversion report as a rich table."""
    table = Table(title="Conversion Report", border_style="green")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Status", justify="center")

    def status_icon(count):
        return "[green]✓[/]" if count == 0 else "[yellow]⚠[/]"

    table.add_row("Blocks", str(report.get("total_blocks", 0)), "[green]✓[/]")

    for block_type, count in report.get("block_breakdown", {}).items():
        table.add_row(f"  {block_type}", str(count), "")

    table.add_row(
        "Images Resolved",
        str(report.get("images_resolved", 0)),
        "[green]✓[/]",
    )
    unavailable = report.get("images_unavailable", 0)
    table.add_row("Images Unavailable", str(unavailable), status_icon(unavailable))

    anomalies = report.get("anomalies", [])
    table.add_row("Anomalies", str(len(anomalies)), status_icon(len(anomalies)))

    console.print(table)
    console.print()

    if anomalies:
        anomaly_table = Table(title="Anomalies", border_style="yellow")
        anomaly_table.add_column("Line", justify="right")
        anomaly_table.add_column("Type", style="bold")
        anomaly_table.add_column("Message")
        for anomaly in anomalies:
            anomaly_type = anomaly["type"]
            anomaly_table.add_row(
                str(anomaly.get("line_number", "")),
                getattr(anomaly_type, "value", anomaly_type),
                anomaly.get("message", ""),
            )
        console.print(anomaly_table)
        console.print()


def _display_batch_summary(results, errors):
    """Display batch conversion summary."""
    console.print()

    table = Table(title="Batch Conversion Summary", border_style="cyan")
    table.add_column("File", style="bold")
    table.add_column("Blocks", justify="right")
    table.add_column("Images", justify="right")
    table.add_column("Anomalies", justify="right")
    table.add_column("Status", justify="center")

    total_blocks = 0
    for name, result in results:
        report = result.report
        total_blocks += report.total_blocks
        table.add_row(
            name,
            str(report.total_blocks),
            f"{report.images_resolved}/{report.images_resolved + report.images_unavailable}",
            str(len(report.anomalies)),
            "[green]✓[/]" if report.is_complete else "[yellow]⚠[/]",
        )

    for name, error in errors:
        table.add_row(name, "-", "-", "-", "[red]✗ FAILED[/]")

    console.print(table)
    console.print()
    console.print(
        f"[bold]Total:[/] {total_blocks} blocks from "
        f"{len(results)} files, {len(errors)} failures"
    )
    console.print()


if __name__ == "__main__":
    cli()
