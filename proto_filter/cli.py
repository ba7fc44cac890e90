"""Typer-based CLI for proto-filter."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import FilterConfig, load_config
from .errors import InputError, ProtoFilterError
from .models import FilterStats
from .pipeline import FilterPipeline

app = typer.Typer(
    help="✂️  proto-filter: emit a self-consistent subset of a .proto tree.",
    add_completion=False,
    rich_markup_mode="rich",
)

err_console = Console(stderr=True)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"proto-filter v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _fail(exc: ProtoFilterError) -> None:
    typer.echo(f"proto-filter: error: {exc}", err=True)
    raise typer.Exit(code=exc.exit_code)


def _check_directories(input_dir: Optional[Path], output_dir: Optional[Path]) -> Tuple[Path, Path]:
    if input_dir is None or output_dir is None:
        raise InputError("--input and --output flags are required")
    abs_input = input_dir.resolve()
    abs_output = output_dir.resolve()
    if abs_input == abs_output:
        raise InputError("input and output directories must be different")
    if not abs_input.exists():
        raise InputError(f"input directory not found: {abs_input}")
    if not abs_input.is_dir():
        raise InputError(f"input path is not a directory: {abs_input}")
    return abs_input, abs_output


def _print_summary(cfg: FilterConfig, stats: FilterStats, output_dir: Path) -> None:
    table = Table(title="proto-filter summary", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Files processed", str(stats.files_processed))
    table.add_row("Definitions", str(stats.total_definitions))
    table.add_row("Included", str(stats.included))
    table.add_row("Excluded", str(stats.excluded))
    if cfg.has_annotations():
        table.add_row("Services removed by annotation", str(stats.services_removed))
        table.add_row("Methods removed by annotation", str(stats.methods_removed))
        table.add_row("Fields removed by annotation", str(stats.fields_removed))
        table.add_row("Orphaned definitions removed", str(stats.orphans_removed))
    if cfg.has_substitutions():
        table.add_row("Annotations substituted", str(stats.substitutions))
    table.add_row("Files written", str(stats.files_written))
    err_console.print(table)
    err_console.print(f"Output: {output_dir}")


@app.command()
def main(
    input_dir: Optional[Path] = typer.Option(
        None, "--input", "-i", help="Directory containing source .proto files."
    ),
    output_dir: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Directory where filtered .proto files are written."
    ),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="YAML filter configuration file."
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Print a processing summary to stderr."),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
):
    """Filter a tree of .proto files down to the declarations you need.

    Exit codes: 0 success, 1 I/O or argument error, 2 configuration error.
    """
    _configure_logging(verbose)

    try:
        abs_input, abs_output = _check_directories(input_dir, output_dir)
        cfg = FilterConfig()
        if config_file is not None:
            cfg = load_config(config_file)
            cfg.validate()

        pipeline = FilterPipeline(cfg)
        stats = pipeline.run(abs_input, abs_output)
    except ProtoFilterError as exc:
        _fail(exc)
        return

    if stats.files_processed == 0:
        typer.echo("proto-filter: warning: no .proto files found in input directory", err=True)
        raise typer.Exit(code=0)

    if verbose:
        _print_summary(cfg, stats, output_dir)


if __name__ == "__main__":
    app()
