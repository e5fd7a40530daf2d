"""Command line interface for lightnotes.

Manage the remote sync configuration, inspect local notes and run the sync
flows by hand.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import cyclopts
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from lightnotes import __version__
from lightnotes.backup import BackupError, export_zip, import_zip
from lightnotes.config import ClientConfig, default_home
from lightnotes.paths import INDEX_PATH
from lightnotes.sync.exceptions import SyncError
from lightnotes.sync.orchestrator import SyncOrchestrator, SyncStatus, create_orchestrator

app = cyclopts.App(
    name="lightnotes",
    help="Local-first notes with background sync",
    version=__version__,
)

STATUS_STYLES = {
    SyncStatus.SYNCED: "green",
    SyncStatus.SYNCING: "cyan",
    SyncStatus.OFFLINE: "yellow",
}


def _get_console() -> Console:
    """Get a Rich console for output."""
    return Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _resolve_home(home: Path | None) -> Path:
    return Path(home).expanduser() if home else default_home()


def _open(home: Path | None) -> SyncOrchestrator:
    home = _resolve_home(home)
    config = ClientConfig.load(home / "config.json")
    return create_orchestrator(home, config)


def _print_status(console: Console, orchestrator: SyncOrchestrator, ok: bool) -> None:
    state = orchestrator.status
    style = STATUS_STYLES[state]
    pending = len(orchestrator.queue)
    suffix = f" ({pending} queued)" if pending else ""
    mark = "✓" if ok else "✗"
    console.print(f"[{style}]{mark} {state.value}{suffix}[/{style}]")


async def _run(home: Path | None, action) -> bool:
    orchestrator = _open(home)
    try:
        return await action(orchestrator)
    finally:
        await orchestrator.aclose()


HomeOption = Annotated[
    Optional[Path], cyclopts.Parameter(help="Data directory (default ~/.lightnotes)")
]
VerboseOption = Annotated[bool, cyclopts.Parameter(help="Enable debug logging")]


@app.command
def setup(
    url: Annotated[str, cyclopts.Parameter(help="Object store endpoint URL")],
    token: Annotated[str, cyclopts.Parameter(help="Bearer token")],
    *,
    home: HomeOption = None,
):
    """Configure the remote endpoint and credential.

    Example:
        lightnotes setup https://notes.example.com sec_xxx
    """
    console = _get_console()
    config = ClientConfig.load(_resolve_home(home) / "config.json")
    config.setup(remote_url=url, auth_token=token)

    is_valid, errors = config.validate()
    if not is_valid:
        console.print("[yellow]Saved, but the configuration looks wrong:[/yellow]")
        for error in errors:
            console.print(f"  • {error}")
        return

    console.print(
        Panel(
            Text.assemble(
                ("✓ ", "green bold"),
                ("Remote sync configured\n\n", "green"),
                ("URL: ", "cyan"),
                (config.remote_url, "white"),
            ),
            title="Setup Complete",
            border_style="green",
        )
    )


@app.command
def status(*, home: HomeOption = None, verbose: VerboseOption = False):
    """Show configuration, queued operations and dirty notes."""
    _setup_logging(verbose)
    console = _get_console()

    async def collect(orchestrator: SyncOrchestrator):
        config = orchestrator.config
        table = Table(title="Sync Status", show_header=False, box=None)
        table.add_column("Key", style="cyan", no_wrap=True)
        table.add_column("Value", style="white")

        table.add_row("Configured", "✓ Yes" if config.is_configured else "✗ No")
        if config.remote_url:
            table.add_row("Remote URL", config.remote_url)
        is_valid, errors = config.validate()
        if config.is_configured and not is_valid:
            table.add_row("Validation", "[red]✗ Failed[/red]")
            for error in errors:
                table.add_row("", f"  • {error}")

        pending = orchestrator.queue.pending()
        table.add_row("Queued operations", str(len(pending)))
        for operation in pending:
            target = operation.note_id or ""
            table.add_row("", f"  • {operation.kind.value} {target}".rstrip())

        dirty = await orchestrator.dirty.dirty_notes()
        table.add_row("Unsynced notes", str(len(dirty)))

        if config.is_configured:
            try:
                tag = await orchestrator.client.probe(INDEX_PATH)
                reachable = "✓ Yes" if tag is not None else "✓ Yes (no index yet)"
            except SyncError as e:
                reachable = f"[red]✗ {e.code}[/red]"
            table.add_row("Reachable", reachable)

        console.print(table)
        return True

    asyncio.run(_run(home, collect))


@app.command
def notes(*, home: HomeOption = None):
    """List local notes."""
    console = _get_console()

    async def collect(orchestrator: SyncOrchestrator):
        table = Table(title="Notes")
        table.add_column("Id", style="dim", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Pinned", justify="center")
        table.add_column("Synced", justify="center")
        for entry in await orchestrator.store.list_entries():
            dirty = await orchestrator.dirty.is_dirty(entry.id)
            table.add_row(
                entry.id,
                entry.title or "(untitled)",
                "📌" if entry.pinned else "",
                "[yellow]✗[/yellow]" if dirty else "[green]✓[/green]",
            )
        console.print(table)
        return True

    asyncio.run(_run(home, collect))


@app.command
def sync(*, home: HomeOption = None, verbose: VerboseOption = False):
    """Run startup sync: merge the remote index and fetch missing notes."""
    _setup_logging(verbose)
    console = _get_console()

    async def action(orchestrator: SyncOrchestrator):
        ok = await orchestrator.startup_sync()
        _print_status(console, orchestrator, ok)
        return ok

    asyncio.run(_run(home, action))


@app.command
def push(*, home: HomeOption = None, verbose: VerboseOption = False):
    """Push all local changes now, then drain the offline queue."""
    _setup_logging(verbose)
    console = _get_console()

    async def action(orchestrator: SyncOrchestrator):
        ok = await orchestrator.push_now()
        _print_status(console, orchestrator, ok)
        return ok

    asyncio.run(_run(home, action))


@app.command
def drain(*, home: HomeOption = None, verbose: VerboseOption = False):
    """Replay queued operations."""
    _setup_logging(verbose)
    console = _get_console()

    async def action(orchestrator: SyncOrchestrator):
        result = await orchestrator.drain_queue()
        console.print(
            f"Replayed {len(result.succeeded)}, dropped {len(result.dropped)}, "
            f"{result.remaining} still queued"
        )
        return result.complete

    asyncio.run(_run(home, action))


@app.command
def reset(
    *,
    home: HomeOption = None,
    yes: Annotated[bool, cyclopts.Parameter(help="Skip confirmation")] = False,
    verbose: VerboseOption = False,
):
    """Replace everything on the remote with the local notes."""
    _setup_logging(verbose)
    console = _get_console()

    if not yes:
        answer = console.input(
            "[yellow]Delete all remote notes and re-upload local ones? [y/N] [/yellow]"
        )
        if answer.strip().lower() not in ("y", "yes"):
            console.print("Aborted")
            return

    async def action(orchestrator: SyncOrchestrator):
        ok = await orchestrator.full_reset_sync()
        _print_status(console, orchestrator, ok)
        return ok

    asyncio.run(_run(home, action))


@app.command(name="export")
def export_notes(
    path: Annotated[Path, cyclopts.Parameter(help="Zip file to write")],
    *,
    home: HomeOption = None,
):
    """Export all notes to a zip backup."""
    console = _get_console()

    async def action(orchestrator: SyncOrchestrator):
        count = await export_zip(orchestrator.store, path)
        console.print(f"[green]✓ Exported {count} notes to {path}[/green]")
        return True

    asyncio.run(_run(home, action))


@app.command(name="import")
def import_notes(
    path: Annotated[Path, cyclopts.Parameter(help="Zip backup to restore")],
    *,
    home: HomeOption = None,
    no_sync: Annotated[
        bool, cyclopts.Parameter(help="Do not reset the remote after importing")
    ] = False,
    verbose: VerboseOption = False,
):
    """Restore notes from a zip backup and make them authoritative remotely."""
    _setup_logging(verbose)
    console = _get_console()

    async def action(orchestrator: SyncOrchestrator):
        try:
            count = await import_zip(orchestrator.store, path)
        except BackupError as e:
            console.print(f"[red]{e}[/red]")
            return False
        console.print(f"[green]✓ Imported {count} notes[/green]")
        if no_sync or not orchestrator.config.is_configured:
            return True
        ok = await orchestrator.full_reset_sync()
        _print_status(console, orchestrator, ok)
        return ok

    asyncio.run(_run(home, action))


@app.command
def watch(*, home: HomeOption = None, verbose: VerboseOption = False):
    """Sync at startup, then keep retrying queued operations until interrupted."""
    _setup_logging(verbose)
    console = _get_console()

    async def action(orchestrator: SyncOrchestrator):
        orchestrator.add_status_listener(
            lambda state: console.print(
                f"[{STATUS_STYLES[state]}]{state.value}[/{STATUS_STYLES[state]}]"
            )
        )
        await orchestrator.startup_sync()
        orchestrator.retry.start()
        console.print(
            f"[dim]Retrying every {orchestrator.retry.interval:.0f}s, Ctrl-C to stop[/dim]"
        )
        while True:
            await asyncio.sleep(orchestrator.config.focus_cooldown)
            await orchestrator.focus_sync()

    try:
        asyncio.run(_run(home, action))
    except KeyboardInterrupt:
        console.print("Stopped")


@app.command
def serve(
    *,
    host: Annotated[str, cyclopts.Parameter(help="Bind address")] = "127.0.0.1",
    port: Annotated[int, cyclopts.Parameter(help="Port")] = 8787,
):
    """Run the reference object-store endpoint (needs S3 settings in the env)."""
    import uvicorn

    from lightnotes.server.app import create_app

    uvicorn.run(create_app(), host=host, port=port)


def main():
    load_dotenv()
    app()


if __name__ == "__main__":
    main()
