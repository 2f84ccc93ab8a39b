#!/usr/bin/env python3
"""
Inspection Sync CLI - Main Entry Point

Usage:
    inspection-sync status              # Online/offline, pending changes, last sync
    inspection-sync queue               # List queued changes
    inspection-sync sync                # Sync queued changes now
    inspection-sync watch               # Sync automatically whenever the connection returns
    inspection-sync requeue <id>        # Retry a change that hit the retry limit
    inspection-sync discard <id>        # Drop a queued change
    inspection-sync clear               # Drop cached inspections and queued changes
"""

import argparse
import asyncio
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm

from inspection_sync import __version__
from inspection_sync.api_client import InspectionAPIClient
from inspection_sync.config import SyncConfig
from inspection_sync.engine import SyncEngine
from inspection_sync.logging_config import setup_logging
from inspection_sync.mutation_store import LocalMutationStore
from inspection_sync.network import ConnectivityWatcher, NetworkMonitor
from inspection_sync.offline_cache import OfflineInspectionCache
from inspection_sync.statusbar import SyncStatusBar, format_timestamp
from inspection_sync.storage import LocalStorage


@dataclass
class SyncContext:
    """Everything a command needs, wired from one config"""
    config: SyncConfig
    storage: LocalStorage
    store: LocalMutationStore
    cache: OfflineInspectionCache
    monitor: NetworkMonitor
    watcher: ConnectivityWatcher
    api: InspectionAPIClient
    engine: SyncEngine


@asynccontextmanager
async def open_context(config: SyncConfig) -> AsyncIterator[SyncContext]:
    storage = LocalStorage(config.data_dir)
    store = LocalMutationStore(storage)
    await store.load()

    monitor = NetworkMonitor()
    async with InspectionAPIClient(config) as api:
        engine = SyncEngine(store, monitor, api, storage=storage, retry_limit=config.retry_limit)
        await engine.load()
        watcher = ConnectivityWatcher(
            monitor,
            config.api_base_url,
            interval=config.health_check_interval,
        )
        try:
            yield SyncContext(
                config=config,
                storage=storage,
                store=store,
                cache=OfflineInspectionCache(storage, store),
                monitor=monitor,
                watcher=watcher,
                api=api,
                engine=engine,
            )
        finally:
            engine.detach()
            await watcher.stop()


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI"""
    parser = argparse.ArgumentParser(
        prog="inspection-sync",
        description="Offline change queue and sync for cleaning inspections",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  inspection-sync status                     Show connection and queue state
  inspection-sync sync                       Push queued changes to the server
  inspection-sync watch                      Keep syncing whenever the connection returns
  inspection-sync requeue 3f2c...            Give a stuck change a fresh set of retries

Configuration:
  Settings are read from <data-dir>/config.json, then from INSPECTION_SYNC_*
  environment variables (a .env file is honoured), then from these flags.
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("status", help="Show connection and queue status")
    subparsers.add_parser("queue", help="List queued changes")
    subparsers.add_parser("sync", help="Sync queued changes now")
    subparsers.add_parser("watch", help="Sync automatically whenever the connection returns")

    requeue_parser = subparsers.add_parser("requeue", help="Retry a change that hit the retry limit")
    requeue_parser.add_argument("mutation_id", help="ID of the queued change")

    discard_parser = subparsers.add_parser("discard", help="Drop a queued change")
    discard_parser.add_argument("mutation_id", help="ID of the queued change")

    clear_parser = subparsers.add_parser("clear", help="Drop cached inspections and queued changes")
    clear_parser.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")

    parser.add_argument(
        "--server-url",
        type=str,
        help="Inspection API base URL (default: http://localhost:3000/api)"
    )

    parser.add_argument(
        "--data-dir",
        type=str,
        help="Directory holding the queue and cached inspections"
    )

    parser.add_argument(
        "--token",
        type=str,
        help="Bearer token for the inspection API (or set INSPECTION_SYNC_TOKEN)"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to config file"
    )

    parser.add_argument(
        "--retry-limit",
        type=int,
        help="Failed attempts before a change needs manual attention (default: 3)"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def build_config(args: argparse.Namespace) -> SyncConfig:
    """Defaults < config file < environment < flags"""
    config = SyncConfig.load_default(data_dir=args.data_dir)

    if args.config:
        config.load_from_file(args.config)
        config._load_from_env()

    if args.server_url:
        config.api_base_url = args.server_url
    if args.token:
        config.auth_token = args.token
    if args.retry_limit is not None:
        if args.retry_limit < 1:
            raise ValueError("--retry-limit must be at least 1")
        config.retry_limit = args.retry_limit
    if args.verbose:
        config.verbose = True
        config.log_level = "DEBUG"

    return config


# ==================== Commands ====================

async def cmd_status(ctx: SyncContext, console: Console) -> int:
    await ctx.watcher.poll_once()
    pending = await ctx.engine.pending_count()
    stalled = await ctx.engine.stalled_records()

    online = ctx.monitor.is_online
    console.print(Panel(
        f"Server: [cyan]{ctx.config.api_base_url}[/cyan]\n"
        f"Connection: {'[green]online[/green]' if online else '[red]offline[/red]'}\n"
        f"Pending changes: [yellow]{pending}[/yellow]\n"
        f"Needing attention: {'[red]' + str(len(stalled)) + '[/red]' if stalled else '0'}\n"
        f"Last sync: {format_timestamp(ctx.engine.last_sync_time)}",
        title="Inspection Sync",
        border_style="cyan"
    ))
    SyncStatusBar(console).render(online, ctx.engine.is_syncing, pending)
    return 0


async def cmd_queue(ctx: SyncContext, console: Console) -> int:
    records = await ctx.store.list()
    SyncStatusBar(console).render_queue(records, ctx.engine.retry_limit)
    return 0


async def cmd_sync(ctx: SyncContext, console: Console) -> int:
    await ctx.watcher.poll_once()
    if not ctx.monitor.is_online:
        pending = await ctx.engine.pending_count()
        SyncStatusBar(console).render(False, False, pending)
        return 1

    with console.status("Syncing data...", spinner="dots"):
        report = await ctx.engine.sync_all()

    SyncStatusBar(console).render_report(report)
    return 0 if report is not None and report.failed == 0 and not report.aborted_offline else 1


async def cmd_watch(ctx: SyncContext, console: Console) -> int:
    bar = SyncStatusBar(console)
    ctx.engine.attach()
    await ctx.watcher.start()
    console.print(f"[dim]Watching {ctx.config.api_base_url} (Ctrl+C to stop)[/dim]")

    last_line = None
    try:
        while True:
            # Passes are started by the engine on every reconnect
            report = await ctx.engine.wait_for_auto_sync()
            if report is not None:
                bar.render_report(report)

            pending = await ctx.engine.pending_count()
            line = bar.get_status_line(ctx.monitor.is_online, ctx.engine.is_syncing, pending)
            if line != last_line:
                if line:
                    console.print(line)
                else:
                    console.print("[green]● All changes synced[/green]")
                last_line = line

            await asyncio.sleep(ctx.config.health_check_interval)
    except asyncio.CancelledError:
        pass
    finally:
        await ctx.watcher.stop()
    return 0


async def cmd_requeue(ctx: SyncContext, console: Console, mutation_id: str) -> int:
    fresh = await ctx.store.requeue(mutation_id)
    if fresh is None:
        console.print(f"[red]No queued change with ID {mutation_id}[/red]")
        return 1
    console.print(f"[green]✓ Requeued as {fresh.id}[/green]")
    return 0


async def cmd_discard(ctx: SyncContext, console: Console, mutation_id: str) -> int:
    if not await ctx.store.remove_by_id(mutation_id):
        console.print(f"[red]No queued change with ID {mutation_id}[/red]")
        return 1
    console.print(f"[green]✓ Discarded {mutation_id}[/green]")
    return 0


async def cmd_clear(ctx: SyncContext, console: Console, assume_yes: bool) -> int:
    pending = await ctx.engine.pending_count()
    if pending and not assume_yes:
        if not Confirm.ask(f"Discard {pending} unsynced change(s)?", default=False):
            return 1
    await ctx.cache.clear()
    console.print("[green]✓ Offline data cleared[/green]")
    return 0


async def run_command(args: argparse.Namespace, config: SyncConfig, console: Console) -> int:
    async with open_context(config) as ctx:
        command = args.command or "status"
        if command == "status":
            return await cmd_status(ctx, console)
        if command == "queue":
            return await cmd_queue(ctx, console)
        if command == "sync":
            return await cmd_sync(ctx, console)
        if command == "watch":
            return await cmd_watch(ctx, console)
        if command == "requeue":
            return await cmd_requeue(ctx, console, args.mutation_id)
        if command == "discard":
            return await cmd_discard(ctx, console, args.mutation_id)
        if command == "clear":
            return await cmd_clear(ctx, console, args.yes)
    return 2


def main(argv: Optional[list] = None):
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)
    console = Console()

    try:
        config = build_config(args)
    except (ValueError, OSError) as e:
        console.print(f"[red]✗ Invalid configuration: {e}[/red]")
        sys.exit(2)

    setup_logging(config.log_level, config.log_format, config.log_file)

    try:
        sys.exit(asyncio.run(run_command(args, config, console)))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped[/dim]")
        sys.exit(0)
    except httpx.HTTPError as e:
        console.print(f"\n[red]❌ Connection Error: {e}[/red]")
        console.print("The inspection server is not available. Queued changes are kept.")
        sys.exit(1)
    except Exception as e:
        if args.verbose:
            console.print_exception()
        else:
            console.print(f"\n[red]❌ Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
