"""
Sync Status Bar

Terminal rendering of the offline indicators:
  - online/offline state
  - number of changes waiting to sync
  - "sync now" hint when online with pending changes
plus the queue table and pass report used by the CLI.
"""

from datetime import datetime
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from inspection_sync.engine import SyncReport
from inspection_sync.models import MutationRecord, MutationState


def format_timestamp(timestamp: Optional[float]) -> str:
    if not timestamp:
        return "never"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


class SyncStatusBar:
    """
    Renders connectivity and queue state.

    Usage:
        bar = SyncStatusBar(console)
        bar.render(is_online=True, is_syncing=False, pending=3)
    """

    def __init__(self, console: Console):
        self.console = console

    def get_status_line(self, is_online: bool, is_syncing: bool, pending: int) -> str:
        """Status text; empty when online with nothing to sync"""
        if is_online and pending == 0:
            return ""

        if not is_online:
            return (
                "[red]● You're offline. "
                "Changes will sync when connection is restored.[/red]"
            )

        if is_syncing:
            return "[yellow]● Syncing data...[/yellow]"

        noun = "change" if pending == 1 else "changes"
        return (
            f"[yellow]● {pending} pending {noun} to sync[/yellow]"
            " [dim](run 'inspection-sync sync' to sync now)[/dim]"
        )

    def can_sync_now(self, is_online: bool, is_syncing: bool, pending: int) -> bool:
        """Whether a manual sync should be offered"""
        return is_online and pending > 0 and not is_syncing

    def render(self, is_online: bool, is_syncing: bool, pending: int) -> None:
        status = self.get_status_line(is_online, is_syncing, pending)
        if status:
            self.console.print(f"[dim]─[/dim] {status} [dim]─[/dim]")

    # ==================== Queue & report ====================

    def render_queue(self, records: List[MutationRecord], retry_limit: int) -> None:
        """Show queued mutations, oldest first"""
        if not records:
            self.console.print("[green]✓ Nothing waiting to sync[/green]")
            return

        table = Table(title="Queued changes", show_header=True, header_style="bold")
        table.add_column("ID", style="dim")
        table.add_column("Kind")
        table.add_column("Action")
        table.add_column("Queued at")
        table.add_column("Retries", justify="right")
        table.add_column("State")
        table.add_column("Last error", style="dim")

        for record in records:
            if record.is_stalled(retry_limit):
                state = "[red]needs attention[/red]"
            elif record.state == MutationState.FAILED:
                state = "[yellow]failed[/yellow]"
            else:
                state = record.state.value.lower()

            table.add_row(
                record.id,
                record.kind.value,
                record.action.value,
                format_timestamp(record.enqueued_at),
                f"{record.retry_count}/{retry_limit}",
                state,
                (record.last_error or "")[:60],
            )

        self.console.print(table)

    def render_report(self, report: Optional[SyncReport]) -> None:
        """Show the outcome of a sync pass"""
        if report is None:
            self.console.print("[yellow]A sync is already running[/yellow]")
            return

        if report.attempted == 0 and report.aborted_offline:
            self.console.print("[red]✗ Offline, nothing was synced[/red]")
            return

        if report.attempted == 0:
            self.console.print("[green]✓ Nothing to sync[/green]")
        elif report.failed == 0:
            self.console.print(f"[green]✓ Synced {report.synced} change(s)[/green]")
        else:
            self.console.print(
                f"[yellow]⚠️  Synced {report.synced}, failed {report.failed} "
                f"of {report.attempted} change(s)[/yellow]"
            )
            for mutation_id, error in report.errors.items():
                self.console.print(f"  [dim]{mutation_id}[/dim] {error}")

        if report.aborted_offline:
            self.console.print("[yellow]Connection lost, remaining changes will sync later[/yellow]")
        if report.skipped:
            self.console.print(
                f"[dim]{report.skipped} change(s) skipped "
                f"(retry limit reached, use 'requeue')[/dim]"
            )
