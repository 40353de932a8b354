from __future__ import annotations

import logging
from contextlib import nullcontext
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from annexarchive.config import ExportConfig, load_config, save_config
from annexarchive.errors import ArchiveError
from annexarchive.exporter import export_repository
from annexarchive.filters import build_path_filter
from annexarchive.keypath import candidate_locations
from annexarchive.locator import ContentLocator, detect_store_layout
from annexarchive.makezip import make_zip
from annexarchive.models import ExportResult
from annexarchive.transfer_ui import ExportProgressUI


app = typer.Typer(help="Export annex-aware git trees to ZIP or TAR.GZ archives.")
console = Console()
err_console = Console(stderr=True)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _render_path_summary(title: str, paths: list[str], style: str) -> None:
    if not paths:
        return
    console.print(Text(f"{title} ({len(paths)}):", style=style))
    for path in paths:
        console.print(f"  {path}")


def _render_result(result: ExportResult) -> None:
    table = Table(title="Archive")
    table.add_column("Target")
    table.add_column("Type")
    table.add_column("Files", justify="right")
    table.add_column("Directories", justify="right")
    table.add_column("Bytes", justify="right")
    table.add_row(
        str(result.target),
        result.archive_format,
        str(result.file_count),
        str(result.directory_count),
        str(result.total_bytes),
    )
    console.print(table)
    if result.annexed_paths:
        console.print(f"Annexed content resolved: {len(result.annexed_paths)} file(s)")
    _render_path_summary("Skipped (annexed content missing)", result.skipped_paths, "yellow")


def _merge_config(
    archive_type: str | None,
    ref: str | None,
    on_missing: str | None,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
) -> ExportConfig:
    config = load_config()
    if archive_type is not None:
        config.archive_format = archive_type.lower().strip()
    if ref is not None:
        config.ref = ref
    if on_missing is not None:
        config.missing = on_missing.lower().strip()
    if include:
        config.include = include
    if exclude:
        config.exclude = exclude
    return config.validate()


def _export(
    repo: str,
    output: str | None,
    archive_type: str | None,
    ref: str | None,
    on_missing: str | None,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    quiet: bool,
) -> int:
    repo_path = Path(repo).expanduser().resolve()
    if not repo_path.is_dir():
        err_console.print(f"[red]{repo_path} does not appear to be a directory[/red]")
        return 1

    try:
        config = _merge_config(archive_type, ref, on_missing, include, exclude)
    except (OSError, ValueError) as exc:
        err_console.print(f"[red]{exc}[/red]")
        return 1

    target = Path(output).expanduser().resolve() if output else None
    path_filter = build_path_filter(config.include, config.exclude)

    progress = None if quiet else ExportProgressUI(err_console, transient=True)
    try:
        with progress if progress is not None else nullcontext():
            result = export_repository(
                repo_path,
                ref=config.ref,
                archive_format=config.archive_format,
                target=target,
                missing=config.missing,  # type: ignore[arg-type]
                path_filter=path_filter,
                progress=progress,
                chunk_size=config.chunk_size,
            )
    except KeyboardInterrupt:
        err_console.print("[yellow]Export interrupted.[/yellow] No archive was written.")
        return 130
    except (ArchiveError, OSError) as exc:
        err_console.print(f"[red]Export failed:[/red] {exc}")
        return 1

    _render_result(result)
    return 0


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log per-entry decisions."),
) -> None:
    _configure_logging(verbose)


@app.command()
def init(
    archive_type: str = typer.Option("zip", "--type", "-t", help="Default archive type: zip or tar."),
    ref: str = typer.Option("HEAD", "--ref", help="Default commit-ish to export."),
    on_missing: str = typer.Option(
        "strict",
        "--on-missing",
        help="Default policy for missing annexed content: strict or skip.",
    ),
) -> None:
    """Write export defaults to .annexarchive.json in the current directory."""
    try:
        config = ExportConfig(
            archive_format=archive_type.lower().strip(),
            ref=ref,
            missing=on_missing.lower().strip(),
        ).validate()
    except ValueError as exc:
        err_console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    path = save_config(config, Path.cwd())
    console.print(f"[green]Wrote defaults[/green] to {path}")


@app.command()
def export(
    repo: str = typer.Argument(..., help="Path to the git repository to export."),
    output: str | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Archive file or directory. Defaults to <commit>.zip/.tar.gz next to the repository.",
    ),
    archive_type: str | None = typer.Option(None, "--type", "-t", help="Archive type: zip or tar."),
    ref: str | None = typer.Option(None, "--ref", help="Commit-ish to export (default HEAD)."),
    on_missing: str | None = typer.Option(
        None,
        "--on-missing",
        help="strict aborts when annexed content is missing; skip leaves the file out.",
    ),
    include: list[str] | None = typer.Option(
        None,
        "--include",
        help="Include glob pattern(s) for paths to export (repeatable).",
    ),
    exclude: list[str] | None = typer.Option(
        None,
        "--exclude",
        help="Exclude glob pattern(s) for paths to skip (repeatable).",
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Do not show a progress bar."),
) -> None:
    """Export a commit's tree to an archive, replacing annexed files with their content."""
    raise typer.Exit(
        code=_export(
            repo,
            output,
            archive_type,
            ref,
            on_missing,
            tuple(include or ()),
            tuple(exclude or ()),
            quiet,
        )
    )


@app.command()
def makezip(
    source: str = typer.Argument(..., help="Directory to archive."),
    target: str = typer.Argument(..., help="ZIP file to create."),
    exclude: list[str] | None = typer.Option(
        None,
        "--exclude",
        help="Directory name to leave out, at any depth (repeatable).",
    ),
) -> None:
    """Zip a plain directory, skipping excluded names such as .git."""
    try:
        result = make_zip(source, target, tuple(exclude or ()))
    except (ArchiveError, OSError) as exc:
        err_console.print(f"[red]makezip failed:[/red] {exc}")
        raise typer.Exit(code=1)
    _render_result(result)


@app.command()
def locate(
    key: str = typer.Argument(..., help="Annex key, e.g. SHA256E-s1000--<digest>.dat"),
    repo: str | None = typer.Option(None, "--repo", help="Resolve the key in this repository's store."),
) -> None:
    """Show where an annex key lives under each hashing scheme."""
    for name, location in candidate_locations(key):
        console.print(f"{name}: {location}")

    if repo is None:
        return

    try:
        locator = ContentLocator(detect_store_layout(Path(repo).expanduser()))
        content = locator.locate(key)
    except ArchiveError as exc:
        err_console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    console.print(f"content: {content.path} (mode {content.mode:o}, {content.size} bytes)")
