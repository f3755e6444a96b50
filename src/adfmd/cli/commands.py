"""CLI command implementations"""

from pathlib import Path
from typing import Annotated, Optional

import typer

from adfmd.config import Settings, load_config
from adfmd.core.batch import run_roundtrip, run_to_adf, run_to_markdown
from adfmd.core.pipeline import ConversionEngine
from adfmd.logging_config import configure_logging


def _fail(msg: str, cause: Exception = None) -> None:
    """Print a user-friendly error to stderr and exit 1."""
    typer.echo(f"Error: {msg}", err=True)
    if cause:
        typer.echo(f"  {cause}", err=True)
    raise typer.Exit(1)


def _settings(overrides: dict = None) -> Settings:
    """Load config with standard CLI error handling, then configure logging from it."""
    try:
        settings = load_config(overrides=overrides)
    except ValueError as e:
        _fail(str(e))
    configure_logging(settings.log_level)
    return settings


def to_adf_cmd(
    path: Annotated[str, typer.Argument(help="Markdown file or directory to convert")],
    out: Annotated[Optional[str], typer.Option("--out-dir", help="Output directory")] = None,
    strict: Annotated[bool, typer.Option("--strict", help="Fail on the first conversion error")] = False,
    indent: Annotated[Optional[int], typer.Option("--indent", help="JSON indent; 0 = compact")] = None,
    log_level: Annotated[Optional[str], typer.Option("--log-level", help="Log level for stderr output")] = None,
    ):
    """Convert extended markdown to ADF JSON documents."""
    settings = _settings(overrides={
        "output_dir": out, "strict": strict or None, "indent": indent, "log_level": log_level,
    })
    output_dir = Path(settings.output_dir)
    try:
        results = run_to_adf(path, ConversionEngine(settings), output_dir, settings.indent)
    except RuntimeError as e:
        _fail(str(e))
    if not results:
        typer.echo(f"No markdown files found at {path}.")
        raise typer.Exit(1)
    for src, out_file, warnings in results:
        suffix = f" ({len(warnings)} warning(s))" if warnings else ""
        typer.echo(f"  {src} -> {out_file}{suffix}")
    typer.echo(f"Converted {len(results)} document(s) to {output_dir}/")


def to_md_cmd(
    path: Annotated[str, typer.Argument(help="ADF JSON file or directory to convert")],
    out: Annotated[Optional[str], typer.Option("--out-dir", help="Output directory")] = None,
    strict: Annotated[bool, typer.Option("--strict", help="Fail on the first conversion error")] = False,
    log_level: Annotated[Optional[str], typer.Option("--log-level", help="Log level for stderr output")] = None,
    ):
    """Convert ADF JSON documents to extended markdown."""
    settings = _settings(overrides={"output_dir": out, "strict": strict or None, "log_level": log_level})
    output_dir = Path(settings.output_dir)
    try:
        results = run_to_markdown(path, ConversionEngine(settings), output_dir)
    except RuntimeError as e:
        _fail(str(e))
    if not results:
        typer.echo(f"No ADF files found at {path}.")
        raise typer.Exit(1)
    for src, out_file in results:
        typer.echo(f"  {src} -> {out_file}")
    typer.echo(f"Converted {len(results)} document(s) to {output_dir}/")


def roundtrip_cmd(
    path: Annotated[str, typer.Argument(help="Markdown file or directory to check")],
    log_level: Annotated[Optional[str], typer.Option("--log-level", help="Log level for stderr output")] = None,
    ):
    """Convert markdown to ADF and back, printing a diff wherever the text changed."""
    settings = _settings(overrides={"log_level": log_level})
    try:
        results = run_roundtrip(path, ConversionEngine(settings))
    except RuntimeError as e:
        _fail(str(e))
    changed = 0
    for src, diff in results:
        if diff:
            changed += 1
            typer.echo("".join(diff), nl=False)
        else:
            typer.echo(f"  {src}: unchanged")
    typer.echo(f"Checked {len(results)} document(s), {changed} changed")
