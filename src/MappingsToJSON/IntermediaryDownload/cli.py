# === NAVMAP v1 ===
# {
#   "module": "MappingsToJSON.IntermediaryDownload.cli",
#   "purpose": "Typer CLI exposing the batch export, catalog listing, and local decode commands",
#   "sections": [
#     {"id": "clicontext", "name": "CliContext", "anchor": "class-clicontext", "kind": "class"},
#     {"id": "main", "name": "main", "anchor": "function-main", "kind": "function"},
#     {"id": "fetch-cmd", "name": "fetch_cmd", "anchor": "function-fetch-cmd", "kind": "function"},
#     {"id": "versions-cmd", "name": "versions_cmd", "anchor": "function-versions-cmd", "kind": "function"},
#     {"id": "decode-cmd", "name": "decode_cmd", "anchor": "function-decode-cmd", "kind": "function"},
#     {"id": "run", "name": "run", "anchor": "function-run", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Command line interface for the intermediary mapping exporter.

Commands:
- ``fetch``: export every catalog version to ``<output-dir>/<version>.json``
- ``versions``: list the versions published in the catalog
- ``decode``: convert a local jar or tiny file to JSON

Global options (``--config``, ``-v/-vv``, ``--log-dir``, ``--version``) go
before the command name::

    intermediary-fetch -v --config fetch.yaml fetch --workers 8
"""

from __future__ import annotations

import json
import zipfile
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.table import Table

from . import __version__
from .archives import find_entry, list_entries
from .catalog import fetch_catalog
from .emitter import emit
from .errors import CatalogError, UserConfigError, VersionError
from .formats.tiny import decode
from .logging_utils import setup_logging
from .net import HttpFetcher
from .pipeline import atomic_write_bytes, find_collisions, output_filename, run_pipeline
from .settings import FetcherConfig, load_config

EXIT_FAILURES = 1
EXIT_CATALOG = 2
EXIT_CONFIG = 3


class CliContext:
    """State shared by every command of one invocation."""

    def __init__(self, config: FetcherConfig) -> None:
        self.config = config
        self.console = Console()
        self.err_console = Console(stderr=True)

    def fail(self, message: str, code: int) -> typer.Exit:
        self.err_console.print(f"[red]Error:[/red] {message}", highlight=False)
        return typer.Exit(code)


app = typer.Typer(
    name="intermediary-fetch",
    help="Export Fabric intermediary mappings from Maven to per-version JSON files.",
    no_args_is_help=True,
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"intermediary-fetch {__version__}")
        raise typer.Exit(0)


_LEVELS_BY_DETAIL = ("ERROR", "WARNING", "INFO", "DEBUG")


def _raise_verbosity(configured: str, verbosity: int) -> str:
    """Return the more detailed of ``configured`` and the level ``-v``/``-vv`` asks for."""

    requested = "DEBUG" if verbosity >= 2 else "INFO"
    return max(configured, requested, key=_LEVELS_BY_DETAIL.index)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="INTERMEDIARY_FETCH_CONFIG",
        help="Path to a YAML configuration file",
    ),
    verbosity: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Log at least INFO with -v and DEBUG with -vv, whatever the configured level",
    ),
    log_dir: Optional[Path] = typer.Option(
        None,
        "--log-dir",
        help="Also write JSONL logs to this directory",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Resolve configuration and logging shared by all commands."""

    try:
        resolved = load_config(config)
        if log_dir is not None:
            resolved.logging.log_dir = log_dir
        if verbosity:
            resolved.logging.level = _raise_verbosity(resolved.logging.level, verbosity)
    except UserConfigError as exc:
        Console(stderr=True).print(f"[red]Error:[/red] {exc}", highlight=False)
        raise typer.Exit(EXIT_CONFIG) from exc

    settings = resolved.logging
    setup_logging(
        level=settings.level,
        retention_days=settings.retention_days,
        max_log_size_mb=settings.max_log_size_mb,
        log_dir=settings.log_dir,
    )
    ctx.obj = CliContext(resolved)


def _get_context(ctx: typer.Context) -> CliContext:
    obj = ctx.obj
    if not isinstance(obj, CliContext):
        raise RuntimeError("CLI context not initialized")
    return obj


@app.command("fetch")
def fetch_cmd(
    ctx: typer.Context,
    output_dir: Optional[Path] = typer.Option(
        None, "--output-dir", "-o", help="Directory receiving one JSON file per version"
    ),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", help="Number of versions processed in parallel"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Seconds to wait for the whole batch"
    ),
    only: Optional[List[str]] = typer.Option(
        None, "--only", help="Restrict the batch to this version (repeatable)"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-n", help="List the files that would be written and exit"
    ),
    strict: bool = typer.Option(
        False, "--strict", help="Exit non-zero when any version fails or times out"
    ),
) -> None:
    """Export every catalog version to JSON."""

    cli = _get_context(ctx)
    pipeline = cli.config.pipeline
    try:
        if output_dir is not None:
            pipeline.output_dir = output_dir
        if workers is not None:
            pipeline.workers = workers
        if timeout is not None:
            pipeline.timeout_sec = timeout
    except PydanticValidationError as exc:
        raise cli.fail(str(exc), EXIT_CONFIG) from exc

    if dry_run:
        _print_plan(cli, only)
        return

    try:
        summary = run_pipeline(cli.config, only=only or None)
    except CatalogError as exc:
        raise cli.fail(str(exc), EXIT_CATALOG) from exc

    cli.console.print(
        f"[bold]{summary.succeeded}[/bold] exported, "
        f"[bold]{summary.failed}[/bold] failed, "
        f"[bold]{len(summary.unfinished)}[/bold] unfinished "
        f"(of {summary.total})",
        highlight=False,
    )
    if strict and (summary.failed or summary.unfinished):
        raise typer.Exit(EXIT_FAILURES)


def _print_plan(cli: CliContext, only: Optional[List[str]]) -> None:
    with HttpFetcher(cli.config.http) as fetch:
        try:
            catalog = fetch_catalog(fetch, cli.config.repository.metadata_url)
        except CatalogError as exc:
            raise cli.fail(str(exc), EXIT_CATALOG) from exc
    versions = catalog.versions
    if only:
        wanted = set(only)
        versions = [version for version in versions if version in wanted]
    output_dir = cli.config.pipeline.output_dir
    for version in versions:
        cli.console.print(
            f"{version} -> {output_dir / output_filename(version)}",
            highlight=False,
            soft_wrap=True,
        )
    for name, members in find_collisions(versions).items():
        cli.err_console.print(
            f"[yellow]collision:[/yellow] {', '.join(members)} -> {name}", highlight=False
        )


@app.command("versions")
def versions_cmd(
    ctx: typer.Context,
    format_output: str = typer.Option(
        "table", "--format", "-f", help="Output format: table or json"
    ),
) -> None:
    """List the versions published in the catalog."""

    cli = _get_context(ctx)
    if format_output not in ("table", "json"):
        raise typer.BadParameter("format must be 'table' or 'json'", param_hint="--format")
    with HttpFetcher(cli.config.http) as fetch:
        try:
            catalog = fetch_catalog(fetch, cli.config.repository.metadata_url)
        except CatalogError as exc:
            raise cli.fail(str(exc), EXIT_CATALOG) from exc

    if format_output == "json":
        payload = {
            "latest": catalog.latest,
            "release": catalog.release,
            "versions": catalog.versions,
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    table = Table(title=f"{len(catalog.versions)} versions")
    table.add_column("Version")
    table.add_column("Output file")
    table.add_column("Tag")
    for version in catalog.versions:
        tags = [name for name in ("latest", "release") if getattr(catalog, name) == version]
        table.add_row(version, output_filename(version), ", ".join(tags))
    cli.console.print(table)


@app.command("decode")
def decode_cmd(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Jar, zip, or tiny file"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write JSON here instead of stdout"
    ),
) -> None:
    """Decode a local mapping artifact and print its JSON export."""

    cli = _get_context(ctx)
    data = path.read_bytes()
    try:
        if zipfile.is_zipfile(path):
            data = find_entry(list_entries(data), cli.config.repository.mapping_entry)
        model = decode(
            data,
            source_namespace=cli.config.namespaces.source,
            target_namespace=cli.config.namespaces.target,
        )
        payload = emit(model)
        if output is not None:
            atomic_write_bytes(output, payload)
    except VersionError as exc:
        raise cli.fail(f"{path}: {exc}", EXIT_FAILURES) from exc

    if output is None:
        typer.echo(payload.decode("utf-8"))
    else:
        cli.console.print(
            f"wrote {len(model.classes)} classes, {model.method_count} methods, "
            f"{model.field_count} fields to {output}",
            highlight=False,
            soft_wrap=True,
        )


def run() -> None:
    """Console-script entry point."""

    app()


__all__ = ["app", "CliContext", "main", "run"]
