"""
Unit Tests for SyncStatusBar
"""
import pytest
from rich.console import Console

from inspection_sync.engine import SyncReport
from inspection_sync.models import MutationAction, MutationKind, MutationRecord, MutationState
from inspection_sync.statusbar import SyncStatusBar, format_timestamp


@pytest.fixture
def console() -> Console:
    return Console(record=True, width=160, force_terminal=False)


class TestStatusLine:
    """Test the indicator text"""

    def test_hidden_when_online_and_empty(self, console):
        bar = SyncStatusBar(console)

        assert bar.get_status_line(is_online=True, is_syncing=False, pending=0) == ""

    def test_offline_message(self, console):
        line = SyncStatusBar(console).get_status_line(False, False, 2)

        assert "offline" in line

    def test_pending_count(self, console):
        line = SyncStatusBar(console).get_status_line(True, False, 3)

        assert "3 pending changes to sync" in line

    def test_syncing(self, console):
        assert "Syncing" in SyncStatusBar(console).get_status_line(True, True, 3)

    @pytest.mark.parametrize("online,syncing,pending,expected", [
        (True, False, 2, True),
        (True, True, 2, False),
        (False, False, 2, False),
        (True, False, 0, False),
    ])
    def test_can_sync_now(self, console, online, syncing, pending, expected):
        assert SyncStatusBar(console).can_sync_now(online, syncing, pending) is expected


class TestRendering:
    """Test queue table and reports"""

    def test_queue_marks_stalled_records(self, console):
        record = MutationRecord.create(MutationKind.ROOM, MutationAction.UPDATE, {})
        record.state = MutationState.FAILED
        record.retry_count = 3

        SyncStatusBar(console).render_queue([record], retry_limit=3)

        output = console.export_text()
        assert "needs attention" in output
        assert "3/3" in output

    def test_empty_queue(self, console):
        SyncStatusBar(console).render_queue([], retry_limit=3)

        assert "Nothing waiting" in console.export_text()

    def test_report_with_failures(self, console):
        report = SyncReport(pass_id="abc", started_at=1.0, finished_at=2.0,
                            attempted=2, synced=1, failed=1, errors={"m1": "HTTP 503"})

        SyncStatusBar(console).render_report(report)

        output = console.export_text()
        assert "failed 1" in output
        assert "HTTP 503" in output

    def test_report_none_means_busy(self, console):
        SyncStatusBar(console).render_report(None)

        assert "already running" in console.export_text()

    def test_format_timestamp_never(self):
        assert format_timestamp(None) == "never"
