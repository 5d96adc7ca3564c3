"""Guion command line interface."""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from guion import __version__
from guion.cli.handler import CLIHandler, progress_display, run_cancellable
from guion.config import (
    configure_logging,
    get_logger,
    get_settings,
    get_settings_for_cli,
    set_settings,
)
from guion.exceptions import GuionError
from guion.models import ParsedScreenplay
from guion.parser import BundleResolver
from guion.pipeline import (
    EXPORT_FORMATS,
    BulkImporter,
    BulkImportResult,
    ScreenplayPipeline,
)
from guion.storage import ElementStore

logger = get_logger(__name__)
console = Console()

app = typer.Typer(
    name="guion",
    help="Parse, order, store and export screenplays",
    pretty_exceptions_enable=False,
    add_completion=False,
    rich_markup_mode="rich",
)


@app.callback()
def main_callback(
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (YAML, TOML, or JSON)",
            envvar="GUION_CONFIG",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose logging (INFO level)"),
    ] = False,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure global options."""
    overrides: dict[str, Any] = {}
    if debug:
        overrides.update(debug=True, log_level="DEBUG")
    elif verbose:
        overrides["log_level"] = "INFO"

    if config is None and not overrides:
        return

    try:
        settings = get_settings_for_cli(config_file=config, cli_overrides=overrides)
    except GuionError as e:
        CLIHandler(console).handle_error(e)
    set_settings(settings)
    configure_logging(settings)
    logger.debug("Settings loaded", config=str(config) if config else None)


def _summary_table(screenplay: ParsedScreenplay) -> Table:
    table = Table(title=screenplay.title or screenplay.filename or "Screenplay")
    table.add_column("Element", style="cyan")
    table.add_column("Count", justify="right", style="bold")
    counts = Counter(element.element_type.value for element in screenplay.elements)
    for kind, count in sorted(counts.items()):
        table.add_row(kind, str(count))
    table.add_row("Characters", str(len(screenplay.extract_characters())))
    chapters = {element.chapter_index for element in screenplay.elements}
    table.add_row("Chapters", str(len(chapters)))
    return table


@app.command()
def parse(
    file: Annotated[Path, typer.Argument(help="Screenplay file or bundle")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    fountain: Annotated[
        bool, typer.Option("--fountain", help="Print the normalised Fountain text")
    ] = False,
    show_progress: Annotated[
        bool, typer.Option("--progress", help="Show a progress bar")
    ] = False,
) -> None:
    """Parse a screenplay and summarise its elements."""
    handler = CLIHandler(console)
    settings = get_settings()
    resolver = BundleResolver(settings)
    try:
        with progress_display(
            console, show_progress, settings.progress_update_interval
        ) as progress:
            screenplay = run_cancellable(
                lambda: resolver.load(file, progress=progress), progress
            )
    except GuionError as e:
        handler.handle_error(e, json_output)

    if json_output:
        handler.print_json(screenplay.to_dict())
    elif fountain:
        typer.echo(screenplay.to_fountain(), nl=False)
    else:
        console.print(_summary_table(screenplay))


@app.command()
def export(
    file: Annotated[Path, typer.Argument(help="Screenplay file or bundle")],
    destination: Annotated[Path, typer.Argument(help="Bundle or Highland file to write")],
    export_format: Annotated[
        str,
        typer.Option("--format", "-f", help="Export format: textbundle or highland"),
    ] = "textbundle",
    force: Annotated[
        bool, typer.Option("--force", help="Replace an existing destination")
    ] = False,
    show_progress: Annotated[
        bool, typer.Option("--progress", help="Show a progress bar")
    ] = False,
) -> None:
    """Export a screenplay as a TextBundle directory or Highland file."""
    handler = CLIHandler(console)
    fmt = export_format.lower()
    if fmt not in EXPORT_FORMATS:
        console.print(
            f"[red]Error: Unknown export format '{export_format}'. "
            f"Use one of: {', '.join(EXPORT_FORMATS)}[/red]"
        )
        raise typer.Exit(1)

    settings = get_settings()
    pipeline = ScreenplayPipeline(settings)
    try:
        with progress_display(
            console, show_progress, settings.progress_update_interval
        ) as progress:
            result = run_cancellable(
                lambda: pipeline.run(
                    file,
                    export_to=destination,
                    export_format=fmt,
                    progress=progress,
                    overwrite=force,
                ),
                progress,
            )
    except GuionError as e:
        handler.handle_error(e)

    console.print(
        f"[green]Exported {len(result.screenplay.elements)} elements to "
        f"{result.export_path}[/green]"
    )


def _display_import_results(result: BulkImportResult) -> None:
    table = Table(title="Import Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="bold")
    table.add_row("Files", str(result.total_files))
    table.add_row("Imported", str(result.successful_imports))
    table.add_row("Failed", str(result.failed_imports))
    table.add_row("Skipped", str(result.skipped_files))
    console.print(table)

    for file_path, error in result.errors.items():
        console.print(
            f"  [red]✗[/red] [cyan]{file_path}[/cyan] "
            f"({error['category'].value}): {error['message']}",
            highlight=False,
        )


@app.command(name="import")
def import_command(
    files: Annotated[list[Path], typer.Argument(help="Screenplay files or bundles")],
    db_path: Annotated[
        Path | None,
        typer.Option("--db", "-d", help="Path to the SQLite database file"),
    ] = None,
    workers: Annotated[
        int | None,
        typer.Option("--workers", "-w", min=1, help="Concurrent import workers"),
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    show_progress: Annotated[
        bool, typer.Option("--progress", help="Show a progress bar")
    ] = False,
) -> None:
    """Import screenplays into the element store."""
    handler = CLIHandler(console)
    settings = get_settings()
    importer = BulkImporter(settings)
    try:
        with ElementStore(db_path, settings) as store, progress_display(
            console, show_progress and not json_output, settings.progress_update_interval
        ) as progress:
            result = run_cancellable(
                lambda: importer.import_files(
                    files, store, progress=progress, max_workers=workers
                ),
                progress,
            )
    except GuionError as e:
        handler.handle_error(e, json_output)

    if json_output:
        handler.print_json(result.to_dict())
    else:
        _display_import_results(result)
    if result.failed_imports:
        raise typer.Exit(1)


@app.command(name="list")
def list_command(
    db_path: Annotated[
        Path | None,
        typer.Option("--db", "-d", help="Path to the SQLite database file"),
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """List screenplays in the element store."""
    handler = CLIHandler(console)
    try:
        with ElementStore(db_path, get_settings()) as store:
            scripts = store.list_scripts()
    except GuionError as e:
        handler.handle_error(e, json_output)

    if json_output:
        handler.print_json(scripts)
        return
    if not scripts:
        console.print("[yellow]No screenplays stored.[/yellow]")
        return

    table = Table(title="Stored Screenplays")
    table.add_column("ID", justify="right", style="bold")
    table.add_column("Title", style="cyan")
    table.add_column("File", style="blue")
    table.add_column("Elements", justify="right")
    table.add_column("Chapters", justify="right")
    for script in scripts:
        table.add_row(
            str(script["id"]),
            script["title"] or "-",
            script["filename"] or "-",
            str(script["element_count"]),
            str(script["chapter_count"]),
        )
    console.print(table)


@app.command()
def version(
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Show Guion version."""
    if json_output:
        CLIHandler.print_json({"name": "guion", "version": __version__})
    else:
        console.print(f"Guion v{__version__}")


def main() -> None:
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
