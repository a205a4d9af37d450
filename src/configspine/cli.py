"""
CLI: ``configspine``: resolve configuration and inspect the durable store.

All commands read ``ConfigSpineSettings`` from the environment
(``CONFIGSPINE_*`` variables or ``.env``).
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from configspine import __version__
from configspine.core.errors import ConfigSpineError
from configspine.core.logging import configure_logging
from configspine.core.settings import ConfigSpineSettings, get_settings
from configspine.resolver.factory import build_resolver_from_settings, build_store
from configspine.resolver.resolver import is_absent
from configspine.store.service import DurableAssetStore

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="configspine",
    help="configspine: layered configuration with a durable fallback.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
assets_app = typer.Typer(no_args_is_help=True)
app.add_typer(assets_app, name="assets", help="Inspect and manage stored assets.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"configspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """configspine CLI: resolve configuration and manage stored assets."""
    settings = get_settings()
    configure_logging(settings.log_level, json_format=settings.json_logs)


# ── Helpers ──────────────────────────────────────────────────────────────


def _open_store(settings: ConfigSpineSettings) -> DurableAssetStore:
    if settings.database.url is None:
        err_console.print("[bold red]Error:[/bold red] CONFIGSPINE_DATABASE__URL is not set")
        raise typer.Exit(code=1)
    return build_store(settings.database, verbose=settings.verbose)


def _fail(error: ConfigSpineError) -> None:
    err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    raise typer.Exit(code=1)


def _fmt_time(value: Any) -> str:
    return value.isoformat(timespec="seconds") if value is not None else "-"


# ── Resolve ──────────────────────────────────────────────────────────────


@app.command("get")
def get_config(
    path: str | None = typer.Argument(None, help="Dotted path, e.g. database.host"),
) -> None:
    """Resolve configuration through the configured sources and print it as JSON."""

    async def _run() -> tuple[Any, str | None]:
        resolver = build_resolver_from_settings()
        try:
            value = await resolver.get_config(path)
            return value, resolver.last_load_source_name
        finally:
            await resolver.destroy()

    value, source_name = asyncio.run(_run())

    if is_absent(value):
        err_console.print("[bold red]No configuration available from any source[/bold red]")
        raise typer.Exit(code=1)

    typer.echo(json.dumps(value, indent=2, default=str))
    err_console.print(f"[dim]source: {source_name}[/dim]")


# ── Assets ───────────────────────────────────────────────────────────────


@assets_app.command("list")
def list_assets(
    category: str | None = typer.Option(None, "--category", "-c"),
) -> None:
    """List stored assets, newest first."""
    settings = get_settings()

    async def _run():
        async with _open_store(settings) as store:
            return await store.list_assets(category)

    try:
        summaries = asyncio.run(_run())
    except ConfigSpineError as e:
        _fail(e)

    if not summaries:
        console.print("[dim]No assets stored.[/dim]")
        return

    table = Table(title="Assets")
    table.add_column("Key", style="cyan")
    table.add_column("Category")
    table.add_column("Hash")
    table.add_column("Updated")
    table.add_column("Description")
    for summary in summaries:
        table.add_row(
            summary.asset_key,
            summary.asset_category,
            summary.content_hash[:12],
            _fmt_time(summary.created_at),
            summary.description or "",
        )
    console.print(table)


@assets_app.command("show")
def show_asset(
    key: str = typer.Argument(..., help="Asset key"),
    category: str | None = typer.Option(None, "--category", "-c"),
) -> None:
    """Print the current content of an asset."""
    settings = get_settings()

    async def _run():
        async with _open_store(settings) as store:
            return await store.get_asset(key, category)

    try:
        asset = asyncio.run(_run())
    except ConfigSpineError as e:
        _fail(e)

    if asset is None:
        err_console.print(f"[bold red]Asset not found:[/bold red] {key}")
        raise typer.Exit(code=1)

    err_console.print(
        f"[dim]{asset.asset_key} ({asset.asset_category}) "
        f"hash={asset.content_hash[:12]} updated={_fmt_time(asset.created_at)}[/dim]"
    )
    typer.echo(asset.content or "")


@assets_app.command("history")
def asset_history(
    key: str = typer.Argument(..., help="Asset key"),
) -> None:
    """Show archived versions of an asset, newest first."""
    settings = get_settings()

    async def _run():
        async with _open_store(settings) as store:
            return await store.get_asset_history(key)

    try:
        entries = asyncio.run(_run())
    except ConfigSpineError as e:
        _fail(e)

    if not entries:
        console.print(f"[dim]No history for {key}.[/dim]")
        return

    table = Table(title=f"History: {key}")
    table.add_column("Hash")
    table.add_column("Created")
    table.add_column("Size", justify="right")
    table.add_column("Description")
    for entry in entries:
        table.add_row(
            entry.content_hash[:12],
            _fmt_time(entry.created_at),
            str(len(entry.content or "")),
            entry.description or "",
        )
    console.print(table)


@assets_app.command("delete")
def delete_asset(
    key: str = typer.Argument(..., help="Asset key"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete an asset together with its history."""
    settings = get_settings()

    if not yes:
        typer.confirm(f"Delete asset {key!r} and all of its history?", abort=True)

    async def _run() -> bool:
        async with _open_store(settings) as store:
            return await store.delete_asset(key)

    try:
        deleted = asyncio.run(_run())
    except ConfigSpineError as e:
        _fail(e)

    if not deleted:
        err_console.print(f"[yellow]Asset not found:[/yellow] {key}")
        raise typer.Exit(code=1)

    console.print(f"[green]Deleted[/green] {key}")


if __name__ == "__main__":
    app()
