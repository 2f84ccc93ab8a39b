"""
Local Mutation Store - durable, ordered queue of unconfirmed changes

The queue is kept in memory and mirrored to local storage after every change
(loaded in full on startup, rewritten in full on every mutation). Records are
ordered by ``enqueued_at``; records with equal timestamps keep insertion order.
"""

import asyncio
import copy
import dataclasses
from abc import ABC, abstractmethod
from typing import List, Optional, Any

from inspection_sync.exceptions import DuplicateMutationError, StorageError
from inspection_sync.logging_config import get_logger
from inspection_sync.models import MutationRecord, MutationState
from inspection_sync.storage import LocalStorage, SYNC_QUEUE

logger = get_logger("queue")

_IMMUTABLE_FIELDS = {"id"}


class MutationStore(ABC):
    """Interface for the mutation queue"""

    @abstractmethod
    async def enqueue(self, record: MutationRecord) -> MutationRecord:
        """Append a record as PENDING with a zero retry count"""

    @abstractmethod
    async def list(self) -> List[MutationRecord]:
        """All queued records, oldest first"""

    @abstractmethod
    async def get(self, mutation_id: str) -> Optional[MutationRecord]:
        """A single record, or None"""

    @abstractmethod
    async def update_by_id(self, mutation_id: str, **fields: Any) -> bool:
        """Merge fields into a record; False when the id is unknown"""

    @abstractmethod
    async def remove_by_id(self, mutation_id: str) -> bool:
        """Delete a record; False when the id is unknown"""

    @abstractmethod
    async def clear(self) -> None:
        """Drop every record"""

    async def pending_count(self) -> int:
        """Records still waiting for confirmation, whatever their state"""
        return len(await self.list())

    async def requeue(self, mutation_id: str) -> Optional[MutationRecord]:
        """
        Replace a record with a fresh copy so automatic sync picks it up again.

        The copy gets a new id and a zero retry count but keeps the original
        ``enqueued_at`` so replay order is unchanged.
        """
        record = await self.get(mutation_id)
        if record is None:
            return None

        await self.remove_by_id(mutation_id)
        fresh = MutationRecord.create(
            kind=record.kind,
            action=record.action,
            payload=record.payload,
            enqueued_at=record.enqueued_at,
        )
        await self.enqueue(fresh)
        logger.info(f"Requeued {record.kind.value} {record.action.value} {mutation_id} as {fresh.id}")
        return fresh


class InMemoryMutationStore(MutationStore):
    """Mutation queue held in memory only"""

    def __init__(self):
        self._records: List[MutationRecord] = []

    def _index_of(self, mutation_id: str) -> int:
        for index, record in enumerate(self._records):
            if record.id == mutation_id:
                return index
        return -1

    def _insert_ordered(self, record: MutationRecord) -> None:
        """Insert after every record with an equal or earlier timestamp"""
        position = len(self._records)
        for index, existing in enumerate(self._records):
            if existing.enqueued_at > record.enqueued_at:
                position = index
                break
        self._records.insert(position, record)

    async def _persist(self) -> bool:
        return True

    async def enqueue(self, record: MutationRecord) -> MutationRecord:
        if self._index_of(record.id) >= 0:
            raise DuplicateMutationError(record.id)

        record = copy.deepcopy(record)
        record.state = MutationState.PENDING
        record.retry_count = 0
        record.last_error = None
        self._insert_ordered(record)

        await self._persist()
        logger.debug(f"Queued {record.kind.value} {record.action.value} {record.id}")
        return copy.deepcopy(record)

    async def list(self) -> List[MutationRecord]:
        return copy.deepcopy(self._records)

    async def get(self, mutation_id: str) -> Optional[MutationRecord]:
        index = self._index_of(mutation_id)
        if index < 0:
            return None
        return copy.deepcopy(self._records[index])

    async def update_by_id(self, mutation_id: str, **fields: Any) -> bool:
        index = self._index_of(mutation_id)
        if index < 0:
            logger.debug(f"Update skipped, mutation {mutation_id} not queued")
            return False

        known = {f.name for f in dataclasses.fields(MutationRecord)}
        for key in fields:
            if key in _IMMUTABLE_FIELDS or key not in known:
                raise ValueError(f"Cannot update mutation field '{key}'")

        # Validated copy; the queued record is only swapped once it is sound
        record = dataclasses.replace(self._records[index], **fields)

        if "enqueued_at" in fields:
            self._records.pop(index)
            self._insert_ordered(record)
        else:
            self._records[index] = record

        await self._persist()
        return True

    async def remove_by_id(self, mutation_id: str) -> bool:
        index = self._index_of(mutation_id)
        if index < 0:
            return False

        self._records.pop(index)
        await self._persist()
        return True

    async def clear(self) -> None:
        self._records = []
        await self._persist()


class LocalMutationStore(InMemoryMutationStore):
    """
    Mutation queue mirrored to local storage.

    Usage:
        store = LocalMutationStore(LocalStorage(config.data_dir))
        await store.load()
    """

    def __init__(self, storage: LocalStorage, name: str = SYNC_QUEUE):
        super().__init__()
        self.storage = storage
        self.name = name
        self._write_lock = asyncio.Lock()

    async def load(self) -> int:
        """Load the queue from storage; returns the number of records"""
        try:
            raw = await self.storage.get_item(self.name, [])
        except StorageError as e:
            logger.error(f"Failed to load sync queue, starting empty: {e}")
            raw = []

        records: List[MutationRecord] = []
        for item in raw if isinstance(raw, list) else []:
            try:
                records.append(MutationRecord.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Dropping unreadable queue entry: {e}")

        # A record left IN_FLIGHT belongs to a pass that never finished
        recovered = 0
        for record in records:
            if record.state == MutationState.IN_FLIGHT:
                record.state = MutationState.PENDING
                recovered += 1

        self._records = []
        for record in sorted(records, key=lambda r: r.enqueued_at):
            self._records.append(record)

        if recovered:
            logger.warning(f"Recovered {recovered} interrupted mutation(s) as PENDING")
            await self._persist()

        logger.debug(f"Loaded {len(self._records)} queued mutation(s)")
        return len(self._records)

    async def _persist(self) -> bool:
        async with self._write_lock:
            # Snapshot inside the lock so the last writer always wins with the latest state
            snapshot = [record.to_dict() for record in self._records]
            try:
                await self.storage.set_item(self.name, snapshot)
                return True
            except StorageError as e:
                logger.error(f"Failed to save sync queue: {e}")
                return False
