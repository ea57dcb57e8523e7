"""CLI interface for modshelf using Typer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from modshelf import __version__
from modshelf.config import Settings, load_settings, save_settings
from modshelf.errors import ModShelfError
from modshelf.models import ContentItem
from modshelf.service import ModService, build_service, create_loader

app = typer.Typer(
    name="modshelf",
    help="Scan, catalog and offline-translate Steam Workshop mods.",
    add_completion=False,
)
config_app = typer.Typer(help="Show or change persisted settings.")
app.add_typer(config_app, name="config")

console = Console()

_verbose = False
_quiet = False
_dummy = False
_data_dir: Path | None = None


def _print(msg: str, *, verbose_only: bool = False) -> None:
    """Print respecting --verbose/--quiet flags. Errors bypass --quiet."""
    if _quiet:
        return
    if verbose_only and not _verbose:
        return
    console.print(msg)


def _fail(message: object) -> typer.Exit:
    console.print(f"[red]Error:[/red] {message}")
    return typer.Exit(1)


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    logger = logging.getLogger("modshelf")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    handler.setLevel(level)
    logger.addHandler(handler)
    logger.setLevel(level)


def _settings() -> Settings:
    try:
        return load_settings(data_dir=_data_dir)
    except ValueError as e:
        raise _fail(e) from e


@contextmanager
def _service() -> Iterator[ModService]:
    """Open the store and services for one command; ModShelfError exits with 1."""
    settings = _settings()
    try:
        service = build_service(settings, loader=create_loader(settings, dummy=_dummy))
    except (ModShelfError, ImportError) as e:
        raise _fail(e) from e
    try:
        yield service
    except ModShelfError as e:
        raise _fail(e) from e
    finally:
        service.close()


def _mod_table(title: str, mods: list[ContentItem]) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Lang")
    table.add_column("Subs", justify="right")
    table.add_column("Updated")
    table.add_column("Translated", justify="center")
    for mod in mods:
        table.add_row(
            mod.id,
            escape(mod.title[:60]),
            mod.language or "-",
            str(mod.subscriptions),
            mod.time_updated.strftime("%Y-%m-%d"),
            "[green]yes[/green]" if mod.is_translated else "[dim]no[/dim]",
        )
    return table


def version_callback(value: bool) -> None:
    if value:
        console.print(f"modshelf {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Show debug logging and extra info.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Only show errors.",
    ),
    data_dir: Path | None = typer.Option(
        None, "--data-dir",
        help="Directory for the database, models and settings (default: ~/.modshelf).",
    ),
    use_dummy: bool = typer.Option(
        False, "--dummy",
        help="Use the dummy translator (no model download).",
    ),
) -> None:
    """modshelf: Steam Workshop mod library with offline translation."""
    global _verbose, _quiet, _dummy, _data_dir
    _verbose = verbose
    _quiet = quiet
    _dummy = use_dummy
    _data_dir = data_dir
    _configure_logging(verbose, quiet)


@app.command()
def scan(
    report: Path | None = typer.Option(
        None, "--report", "-r",
        help="Save a sync report (.json, .md or .csv).",
    ),
) -> None:
    """Scan the workshop folder, fetch metadata and translate new or changed mods."""
    from modshelf.reporting.formatters import save_report
    from modshelf.reporting.report import SyncReport

    with _service() as service:
        engine = service.engine
        sync_report = SyncReport(
            workshop_path=str(service.scanner.workshop_path or ""),
            backend=engine.model_info().loader,
            model=engine.model_id,
        )
        with console.status("Scanning and syncing mods..."):
            result = asyncio.run(service.scan_and_sync())
        sync_report.finish()

        sync_report.mods_scanned = result.scanned
        sync_report.mods_synced = len(result.synced)
        sync_report.mods_translated = result.translated
        sync_report.mods_skipped = len(result.skipped)
        sync_report.cache_hits = engine.stats.cache_hits
        sync_report.cache_misses = engine.stats.cache_misses
        sync_report.skipped = list(result.skipped)
        sync_report.errors = list(result.errors)

    summary = Table(title="Sync Summary")
    summary.add_column("Metric", style="bold")
    summary.add_column("Count", justify="right")
    summary.add_row("Scanned", str(result.scanned))
    summary.add_row("Synced", f"[green]{len(result.synced)}[/green]")
    summary.add_row("Translated", f"[green]{result.translated}[/green]")
    summary.add_row("Skipped", f"[yellow]{len(result.skipped)}[/yellow]")
    summary.add_row("Errors", f"[red]{len(result.errors)}[/red]")
    if not _quiet:
        console.print(summary)
    _print(
        f"Cache: {sync_report.cache_hits} hits, {sync_report.cache_misses} misses "
        f"({sync_report.duration_seconds:.1f}s)",
        verbose_only=True,
    )

    if result.errors:
        err_table = Table(title="Errors")
        err_table.add_column("Mod", style="red")
        err_table.add_column("Error")
        for entry in result.errors:
            mod_id, _, message = entry.partition(": ")
            err_table.add_row(mod_id, message)
        console.print(err_table)

    if report:
        save_report(sync_report, report)
        _print(f"Report saved: [cyan]{report}[/cyan]")


@app.command(name="list")
def list_mods(
    limit: int = typer.Option(100, "--limit", "-n", help="Maximum rows."),
    offset: int = typer.Option(0, "--offset", help="Rows to skip."),
) -> None:
    """List stored mods, most recently updated first."""
    with _service() as service:
        mods = service.list_mods(limit=limit, offset=offset)
    if not mods:
        console.print("[yellow]No mods stored. Run 'modshelf scan' first.[/yellow]")
        return
    console.print(_mod_table("Mods", mods))


@app.command()
def search(
    term: str = typer.Argument(..., help="Substring of a title or description."),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum rows."),
) -> None:
    """Search original and translated titles and descriptions."""
    with _service() as service:
        mods = service.search_mods(term, limit=limit)
    if not mods:
        console.print(f"[yellow]No mods matching '{term}'.[/yellow]")
        return
    console.print(_mod_table(f"Mods matching '{term}'", mods))


@app.command()
def show(
    mod_id: str = typer.Argument(..., help="Workshop ID."),
    original: bool = typer.Option(
        False, "--original", help="Show only the original catalog text.",
    ),
) -> None:
    """Show one mod."""
    with _service() as service:
        mod = service.get_mod(mod_id, include_translation=not original)
    if mod is None:
        raise _fail(f"Mod not found: {mod_id}")

    console.print(f"[bold]{escape(mod.title)}[/bold] [dim]({mod.id})[/dim]")
    if mod.is_translated:
        console.print(f"Original title: {escape(mod.original_title)}")
    console.print(f"Language: [cyan]{mod.language or 'unknown'}[/cyan]")
    console.print(f"Creator: {mod.creator or '-'}  Subscriptions: {mod.subscriptions}")
    console.print(f"Tags: {escape(', '.join(mod.tags)) or '-'}")
    console.print(f"Updated: {mod.time_updated:%Y-%m-%d %H:%M} UTC")
    if mod.last_translated:
        console.print(f"Translated: {mod.last_translated:%Y-%m-%d %H:%M} UTC")
    console.print()
    console.print(escape(mod.description) if mod.description else "[dim](no description)[/dim]")


@app.command()
def translate(
    mod_id: str = typer.Argument(..., help="Workshop ID."),
    force: bool = typer.Option(False, "--force", "-f", help="Retranslate even if translated."),
) -> None:
    """Translate one stored mod."""
    with _service() as service:
        mod = service.get_mod(mod_id)
        if mod is None:
            raise _fail(f"Mod not found: {mod_id}")
        with console.status("Translating..."):
            mod = asyncio.run(service.translate_mod(mod, force=force))

    if mod.is_translated:
        _print(f"[green]{mod.id}[/green]: {mod.title}")
    else:
        _print(f"[yellow]{mod.id}[/yellow]: nothing to translate")


@app.command()
def refresh(
    language: str | None = typer.Option(
        None, "--language", "-l", help="Only mods detected as this language (e.g. zh).",
    ),
) -> None:
    """Force retranslation of stored mods."""
    with _service() as service:
        with console.status("Refreshing translations..."):
            result = asyncio.run(service.refresh_translations(language))

    _print(f"Refreshed [green]{result.refreshed}[/green] mods.")
    if result.failed:
        console.print(f"[red]{result.failed} failed:[/red]")
        for err in result.errors:
            console.print(f"  {err}")


@app.command()
def export(
    mod_ids: list[str] = typer.Argument(..., help="Workshop IDs to export."),
    output: Path = typer.Option(
        Path("modshelf-export.zip"), "--output", "-o", help="Zip file to write.",
    ),
) -> None:
    """Export local mod folders into a zip archive."""
    with _service() as service:
        with console.status("Exporting..."):
            result = service.export_mods(mod_ids, output)

    _print(f"Exported [green]{result.exported_count}[/green] mods to [cyan]{result.zip_path}[/cyan]")
    if result.missing_mods:
        console.print(
            f"[yellow]Missing local folders:[/yellow] {', '.join(result.missing_mods)}"
        )


@app.command()
def stats() -> None:
    """Show library statistics."""
    with _service() as service:
        mod_stats = service.get_statistics()

    table = Table(title="Library")
    table.add_column("Metric", style="bold")
    table.add_column("Count", justify="right")
    table.add_row("Total mods", str(mod_stats.total_mods))
    table.add_row("Translated", f"[green]{mod_stats.translated_mods}[/green]")
    table.add_row("Updated in last 7 days", str(mod_stats.recent_updates))
    console.print(table)

    if mod_stats.language_breakdown:
        langs = Table(title="Languages")
        langs.add_column("Language")
        langs.add_column("Mods", justify="right")
        for lang, count in sorted(
            mod_stats.language_breakdown.items(), key=lambda kv: (-kv[1], kv[0])
        ):
            langs.add_row(lang, str(count))
        console.print(langs)


@app.command(name="cache-info")
def cache_info() -> None:
    """Show translation cache statistics."""
    with _service() as service:
        cache_stats = service.engine.get_cache_stats()
        info = service.engine.model_info()
        db_path = service.store.path
    console.print(f"Cached translations: [green]{cache_stats.cached}[/green]")
    console.print(f"Model: [cyan]{info.name}[/cyan] ({info.source} -> {info.target})")
    console.print(f"Cache location: [dim]{db_path}[/dim]")


@app.command(name="cache-prune")
def cache_prune() -> None:
    """Remove expired cached translations."""
    with _service() as service:
        deleted = service.engine.clear_expired_cache()
    console.print(f"Removed [yellow]{deleted}[/yellow] expired translations.")


@app.command(name="cache-clear")
def cache_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Delete every cached translation."""
    if not yes:
        typer.confirm("Delete ALL cached translations?", abort=True)
    with _service() as service:
        deleted = service.engine.clear_all_cache()
    console.print(f"Cleared [yellow]{deleted}[/yellow] cached translations.")


@app.command()
def validate(
    check_catalog: bool = typer.Option(
        False, "--catalog", help="Also check the Steam Workshop API.",
    ),
) -> None:
    """Load the translation model and run a test translation."""
    with _service() as service:
        with console.status("Loading translation model..."):
            validation = asyncio.run(service.engine.validate_configuration())
        catalog_ok = None
        if check_catalog:
            with console.status("Contacting Steam Workshop API..."):
                catalog_ok = asyncio.run(service.catalog.validate_connection())

    if validation.valid:
        console.print(f"[green]OK[/green] {validation.message}")
    else:
        console.print(f"[red]FAILED[/red] {validation.message}")
    if catalog_ok is not None:
        if catalog_ok:
            console.print("[green]OK[/green] Steam Workshop API reachable")
        else:
            console.print("[red]FAILED[/red] Steam Workshop API unreachable")

    if not validation.valid or catalog_ok is False:
        raise typer.Exit(1)


@config_app.command("show")
def config_show() -> None:
    """Show the effective settings."""
    settings = _settings()
    table = Table(title=f"Settings ({settings.settings_path})")
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key, value in settings.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)
    if not settings.workshop_configured:
        console.print(
            "[yellow]Workshop path not configured.[/yellow] "
            "Use 'modshelf config set-workshop PATH'."
        )


@config_app.command("set-workshop")
def config_set_workshop(
    path: Path = typer.Argument(..., help="Steam workshop content folder (.../content/<appid>)."),
) -> None:
    """Persist the workshop content folder."""
    settings = _settings()
    if not path.is_dir():
        console.print(f"[yellow]Warning:[/yellow] {path} is not a directory (yet).")
    settings = save_settings(settings, workshop_path=str(path))
    _print(f"Workshop path set to [cyan]{settings.workshop_path}[/cyan]")


if __name__ == "__main__":
    app()
