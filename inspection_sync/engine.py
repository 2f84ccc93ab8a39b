"""
Sync Engine - drains the mutation queue against the inspection API

Per record: PENDING -> IN_FLIGHT -> removed (success) | FAILED (failure).
FAILED records stay eligible until ``retry_limit`` failed attempts; after
that automatic passes skip them and they wait for manual attention.

A pass replays records one at a time, oldest first, because later changes
depend on earlier ones (a room result needs its inspection on the server).
Only one pass runs at a time. Losing connectivity stops the pass before the
next record; the call already in flight is left to finish.
"""

import asyncio
import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from inspection_sync.exceptions import StorageError, UnsupportedMutationError
from inspection_sync.logging_config import (
    get_logger,
    generate_pass_id,
    set_mutation_id,
    set_pass_id,
)
from inspection_sync.models import MutationAction, MutationKind, MutationRecord, MutationState
from inspection_sync.mutation_store import MutationStore
from inspection_sync.network import NetworkMonitor, NetworkStatus
from inspection_sync.storage import LAST_SYNC, LocalStorage

logger = get_logger("engine")

DEFAULT_RETRY_LIMIT = 3

# (kind, action) -> name of the remote client coroutine that replays it
REPLAY_ROUTES: Dict[Tuple[MutationKind, MutationAction], str] = {
    (MutationKind.INSPECTION, MutationAction.CREATE): "save_inspection",
    (MutationKind.INSPECTION, MutationAction.UPDATE): "save_inspection",
    (MutationKind.ROOM, MutationAction.CREATE): "update_room",
    (MutationKind.ROOM, MutationAction.UPDATE): "update_room",
    (MutationKind.PHOTO, MutationAction.CREATE): "upload_photo",
    (MutationKind.PHOTO, MutationAction.UPDATE): "upload_photo",
    (MutationKind.PHOTO, MutationAction.DELETE): "delete_photo",
}


class ReplayOutcome(str, Enum):
    SYNCED = "synced"
    FAILED = "failed"
    VANISHED = "vanished"  # removed from the queue before replay started


@dataclass
class SyncReport:
    """Summary of one sync pass"""
    pass_id: str
    started_at: float
    finished_at: Optional[float] = None
    attempted: int = 0
    synced: int = 0
    failed: int = 0
    skipped: int = 0
    aborted_offline: bool = False
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float:
        end = self.finished_at or time.time()
        return (end - self.started_at) * 1000

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SyncEngine:
    """
    Replays queued mutations through a remote client.

    ``remote`` is any object exposing the coroutines named in
    ``REPLAY_ROUTES`` (normally an ``InspectionAPIClient``).

    Usage:
        engine = SyncEngine(store, monitor, api, storage=storage)
        await engine.load()
        engine.attach()          # sync automatically on reconnect
        report = await engine.sync_all()
    """

    def __init__(
        self,
        store: MutationStore,
        monitor: NetworkMonitor,
        remote: Any,
        storage: Optional[LocalStorage] = None,
        retry_limit: int = DEFAULT_RETRY_LIMIT,
    ):
        if retry_limit < 1:
            raise ValueError("retry_limit must be at least 1")

        self.store = store
        self.monitor = monitor
        self.remote = remote
        self.storage = storage
        self.retry_limit = retry_limit
        self.last_sync_time: Optional[float] = None
        self.last_report: Optional[SyncReport] = None
        self._syncing = False
        self._unsubscribe = None
        self._auto_task: Optional[asyncio.Task] = None

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    # ==================== Persistence ====================

    async def load(self) -> None:
        """Restore the last sync time"""
        if self.storage is None:
            return
        try:
            data = await self.storage.get_item(LAST_SYNC)
        except StorageError as e:
            logger.error(f"Failed to load last sync time: {e}")
            return
        if isinstance(data, dict) and data.get("timestamp"):
            self.last_sync_time = float(data["timestamp"])

    async def _save_last_sync(self) -> None:
        if self.storage is None:
            return
        try:
            await self.storage.set_item(LAST_SYNC, {"timestamp": self.last_sync_time})
        except StorageError as e:
            logger.error(f"Failed to save last sync time: {e}")

    # ==================== Queue views ====================

    async def pending_count(self) -> int:
        """Every record still waiting, stalled ones included"""
        return await self.store.pending_count()

    async def eligible_records(self) -> List[MutationRecord]:
        """Records the next automatic pass would replay, oldest first"""
        records = await self.store.list()
        eligible = [r for r in records if r.is_eligible(self.retry_limit)]
        return sorted(eligible, key=lambda r: r.enqueued_at)

    async def stalled_records(self) -> List[MutationRecord]:
        """Records that hit the retry ceiling"""
        records = await self.store.list()
        return [r for r in records if r.is_stalled(self.retry_limit)]

    # ==================== Sync pass ====================

    async def sync_all(self) -> Optional[SyncReport]:
        """
        Run one sync pass.

        Returns None when a pass is already running.
        """
        if self._syncing:
            logger.debug("Sync pass already running, trigger ignored")
            return None
        self._syncing = True

        pass_id = generate_pass_id()
        set_pass_id(pass_id)
        report = SyncReport(pass_id=pass_id, started_at=time.time())

        try:
            if not self.monitor.is_online:
                logger.info("Offline, sync pass not started")
                report.aborted_offline = True
                report.finished_at = time.time()
                return report

            records = await self.store.list()
            eligible = sorted(
                (r for r in records if r.is_eligible(self.retry_limit)),
                key=lambda r: r.enqueued_at,
            )
            report.skipped = len(records) - len(eligible)

            if eligible:
                logger.info(f"Syncing {len(eligible)} queued mutation(s)")

            for record in eligible:
                if not self.monitor.is_online:
                    report.aborted_offline = True
                    break

                outcome, error = await self.process_record(record)
                if outcome == ReplayOutcome.VANISHED:
                    report.skipped += 1
                    continue

                report.attempted += 1
                if outcome == ReplayOutcome.SYNCED:
                    report.synced += 1
                else:
                    report.failed += 1
                    report.errors[record.id] = error

            report.finished_at = time.time()
            self.last_sync_time = report.finished_at
            await self._save_last_sync()

            logger.log_pass(
                attempted=report.attempted,
                synced=report.synced,
                failed=report.failed,
                aborted_offline=report.aborted_offline,
                duration_ms=report.duration_ms,
                skipped=report.skipped,
            )
            return report

        finally:
            self.last_report = report
            self._syncing = False
            set_pass_id('')

    async def process_record(self, record: MutationRecord) -> Tuple[ReplayOutcome, Optional[str]]:
        """Replay a single record and settle its queue state"""
        set_mutation_id(record.id)
        try:
            if not await self.store.update_by_id(record.id, state=MutationState.IN_FLIGHT):
                logger.debug(f"Mutation {record.id} left the queue before replay")
                return ReplayOutcome.VANISHED, None

            started = time.monotonic()
            try:
                await self._dispatch(record)
            except Exception as e:
                retry_count = record.retry_count + 1
                await self.store.update_by_id(
                    record.id,
                    state=MutationState.FAILED,
                    retry_count=retry_count,
                    last_error=str(e),
                )
                logger.log_replay(
                    record.kind.value,
                    record.action.value,
                    success=False,
                    duration_ms=(time.monotonic() - started) * 1000,
                    retry_count=retry_count,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if retry_count >= self.retry_limit:
                    logger.warning(
                        f"Mutation {record.id} reached the retry limit ({self.retry_limit}) "
                        f"and needs manual attention"
                    )
                return ReplayOutcome.FAILED, str(e)

            await self.store.remove_by_id(record.id)
            logger.log_replay(
                record.kind.value,
                record.action.value,
                success=True,
                duration_ms=(time.monotonic() - started) * 1000,
            )
            return ReplayOutcome.SYNCED, None

        finally:
            set_mutation_id('')

    async def _dispatch(self, record: MutationRecord) -> Any:
        route = REPLAY_ROUTES.get((record.kind, record.action))
        if route is None:
            raise UnsupportedMutationError(record.kind.value, record.action.value)
        handler = getattr(self.remote, route)
        return await handler(record.payload)

    # ==================== Connectivity ====================

    def attach(self) -> None:
        """Start syncing automatically whenever the monitor comes back online"""
        if self._unsubscribe is None:
            self._unsubscribe = self.monitor.subscribe(self._on_status_change)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_status_change(self, status: NetworkStatus) -> None:
        if status == NetworkStatus.OFFLINE:
            if self._syncing:
                logger.info("Connection lost, sync pass will stop after the current item")
            return

        if self._auto_task is not None and not self._auto_task.done():
            return
        self._auto_task = asyncio.ensure_future(self._auto_sync())

    async def _auto_sync(self) -> Optional[SyncReport]:
        if not await self.eligible_records():
            return None
        logger.info("Back online, syncing queued changes")
        return await self.sync_all()

    async def wait_for_auto_sync(self) -> Optional[SyncReport]:
        """Wait for a reconnect-triggered pass, if one was scheduled"""
        if self._auto_task is None:
            return None
        try:
            return await self._auto_task
        finally:
            self._auto_task = None
