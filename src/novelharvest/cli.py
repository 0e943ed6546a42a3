from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv

from .workflows.doctor import build_doctor_report, collect_environment_warnings, format_doctor_report
from .workflows.errors import HarvestError, NoUsableCatalogueError
from .workflows.harvest import HarvestConfig, run_harvest
from .workflows.text_writer import summarize, write_text
from .workflows.web_fetch import FetchConfig

app = typer.Typer(add_help_option=False, no_args_is_help=False)

DEFAULT_OUTPUT_STEM = "novel"


def _minimal_help() -> str:
    return """novelharvest

Usage:
  novelharvest get <url>... [--out <PATH>] [--title <T>] [--author <A>] [--no-reconcile]
                            [--max-turns <N>] [--no-cache] [--json] [--verbose]
  novelharvest doctor

Common options:
  --out <PATH>       Output text file (".txt" appended when missing).
  --no-reconcile     Keep every source separate instead of validating and merging.
  --max-turns <N>    Retry rounds for chapters that failed to download.
  --no-cache         Neither read nor write the on-disk page cache.
  --json             Print the run summary JSON to stdout.

Environment:
  NOVELHARVEST_CONCURRENCY, NOVELHARVEST_TIMEOUT, NOVELHARVEST_MAX_ATTEMPTS,
  NOVELHARVEST_RETRY_PAUSE, NOVELHARVEST_USE_COOKIE, NOVELHARVEST_CACHE_DIR,
  NOVELHARVEST_CACHE_MAX_BYTES, NOVELHARVEST_CACHE_DISABLE, NOVELHARVEST_MAX_TURNS,
  NOVELHARVEST_TURN_PAUSE, NOVELHARVEST_SIMILARITY_RATIO, NOVELHARVEST_RECONCILE
"""


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _echo_environment_warnings() -> None:
    for warning in collect_environment_warnings():
        message = warning.get("message") or warning.get("code") or "environment warning"
        remedy = warning.get("remedy")
        if remedy:
            print(f"[novelharvest] warning: {message} ({remedy})", file=sys.stderr)
        else:
            print(f"[novelharvest] warning: {message}", file=sys.stderr)


def _output_paths(out: Optional[Path], title: Optional[str], count: int) -> List[Path]:
    base = out or Path(title or DEFAULT_OUTPUT_STEM)
    if count == 1:
        return [base]
    stem = base.name[:-4] if base.name.lower().endswith(".txt") else base.name
    return [base.with_name(f"{stem}-{index}") for index in range(1, count + 1)]


def _fatal(exc: Exception, json_out: bool) -> None:
    typer.echo(f"fatal: {exc}", err=True)
    if json_out:
        sys.stdout.write(json.dumps({"ok": False, "error": str(exc), "exit_code": 3}, ensure_ascii=False) + "\n")
    raise typer.Exit(code=3)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    help: bool = typer.Option(False, "--help", "-h", is_eager=True, help="Show minimal help."),
) -> None:
    load_dotenv()
    if help or ctx.invoked_subcommand is None:
        typer.echo(_minimal_help())
        raise typer.Exit(code=0)


@app.command("doctor", add_help_option=True)
def doctor_cmd() -> None:
    """Print cache and dependency diagnostics."""
    report = build_doctor_report()
    typer.echo(format_doctor_report(report))
    raise typer.Exit(code=0 if report.get("ok", True) else 2)


@app.command("get", add_help_option=True)
def get_novel(
    urls: List[str] = typer.Argument(..., help="Catalogue page URL(s), best guess first."),
    out: Optional[Path] = typer.Option(None, "--out", help="Output text file."),
    title: Optional[str] = typer.Option(None, "--title", help="Novel title written in the header."),
    author: Optional[str] = typer.Option(None, "--author", help="Author written in the header."),
    reconcile: Optional[bool] = typer.Option(None, "--reconcile/--no-reconcile", help="Validate and merge multiple sources."),
    max_turns: Optional[int] = typer.Option(None, "--max-turns", min=0, help="Retry rounds for failed chapters."),
    no_cache: bool = typer.Option(False, "--no-cache", help="Bypass the on-disk page cache."),
    json_out: bool = typer.Option(False, "--json", help="Print summary JSON to stdout."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    _configure_logging(verbose)
    cleaned = [url.strip() for url in urls if url and url.strip()]
    if not cleaned:
        typer.echo("error: at least one non-empty URL is required", err=True)
        raise typer.Exit(code=2)
    _echo_environment_warnings()

    fetch_config = FetchConfig.from_env(disable_cache=True if no_cache else None)
    harvest_config = HarvestConfig.from_env(reconcile=reconcile, max_turns=max_turns)
    try:
        result = run_harvest(cleaned, fetch_config, harvest_config)
    except NoUsableCatalogueError as exc:
        _fatal(exc, json_out)

    written: List[str] = []
    try:
        for path, catalogue in zip(_output_paths(out, title, len(result.catalogues)), result.catalogues):
            written.append(str(write_text(catalogue, path, title=title, author=author)))
    except (OSError, HarvestError) as exc:
        _fatal(exc, json_out)

    summary = summarize(result)
    summary["outputs"] = written
    if json_out:
        sys.stdout.write(json.dumps(summary, ensure_ascii=False) + "\n")
    else:
        for source, message in result.source_errors.items():
            typer.echo(f"skipped {source}: {message}", err=True)
        for path in written:
            typer.echo(f"wrote {path}")
    raise typer.Exit(code=0)
