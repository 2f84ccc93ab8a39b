"""
Offline inspection cache.

Keeps the inspector's working copy of inspections in local storage and, for
every edit, queues the mutation that will later bring the server up to date.
"""

import asyncio
import copy
import time
import uuid
from pathlib import Path
from typing import Any, List, Optional, Union

from inspection_sync.exceptions import StorageError
from inspection_sync.logging_config import get_logger
from inspection_sync.models import (
    MutationAction,
    MutationKind,
    MutationRecord,
    OfflineInspection,
    OfflinePhoto,
    OfflineRoomInspection,
)
from inspection_sync.mutation_store import MutationStore
from inspection_sync.photo_codec import encode_file
from inspection_sync.storage import LocalStorage, OFFLINE_INSPECTIONS, USER_DATA

logger = get_logger("offline_cache")


class OfflineInspectionCache:
    """
    Cached inspections plus the queue of changes made to them.

    Usage:
        cache = OfflineInspectionCache(storage, store)
        await cache.save_inspection(inspection)
        await cache.update_room_inspection(inspection.id, room)
    """

    def __init__(self, storage: LocalStorage, store: MutationStore):
        self.storage = storage
        self.store = store
        # Edits read, change and rewrite the whole cached record
        self._edit_lock = asyncio.Lock()

    # ==================== Snapshots ====================

    async def get_inspections(self) -> List[OfflineInspection]:
        """All cached inspections"""
        try:
            raw = await self.storage.get_item(OFFLINE_INSPECTIONS, [])
        except StorageError as e:
            logger.error(f"Failed to get offline inspections: {e}")
            return []

        inspections = []
        for item in raw if isinstance(raw, list) else []:
            try:
                inspections.append(OfflineInspection.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable cached inspection: {e}")
        return inspections

    async def save_inspections(self, inspections: List[OfflineInspection]) -> bool:
        """Replace the cached inspections"""
        try:
            await self.storage.set_item(
                OFFLINE_INSPECTIONS, [inspection.to_dict() for inspection in inspections]
            )
            return True
        except StorageError as e:
            logger.error(f"Failed to save inspections offline: {e}")
            return False

    async def get_inspection(self, inspection_id: str) -> Optional[OfflineInspection]:
        for inspection in await self.get_inspections():
            if inspection.id == inspection_id:
                return inspection
        return None

    # ==================== Edits ====================

    async def save_inspection(self, inspection: OfflineInspection) -> MutationRecord:
        """Cache an inspection and queue its create/update"""
        inspection = copy.deepcopy(inspection)
        async with self._edit_lock:
            inspections = await self.get_inspections()
            now = time.time()

            existing_index = next(
                (i for i, cached in enumerate(inspections) if cached.id == inspection.id), -1
            )
            inspection.last_modified = now
            if existing_index >= 0:
                inspections[existing_index] = inspection
                action = MutationAction.UPDATE
            else:
                inspection.created_at = now
                inspections.append(inspection)
                action = MutationAction.CREATE

            await self.save_inspections(inspections)
            return await self.store.enqueue(
                MutationRecord.create(MutationKind.INSPECTION, action, inspection.to_dict())
            )

    async def update_room_inspection(
        self, inspection_id: str, room: OfflineRoomInspection
    ) -> bool:
        """Cache a room's checklist state and queue the room update"""
        room = copy.deepcopy(room)
        async with self._edit_lock:
            inspections = await self.get_inspections()
            inspection = next((i for i in inspections if i.id == inspection_id), None)
            if inspection is None:
                return False

            now = time.time()
            room.last_modified = now
            existing = inspection.find_room(room.id)
            if existing is not None:
                # Photos are synced through their own mutations
                room.photos = existing.photos
                inspection.room_inspections[inspection.room_inspections.index(existing)] = room
                action = MutationAction.UPDATE
            else:
                inspection.room_inspections.append(room)
                action = MutationAction.CREATE
            inspection.last_modified = now

            await self.save_inspections(inspections)

            room_payload = room.to_dict()
            room_payload.pop("photos", None)
            await self.store.enqueue(
                MutationRecord.create(
                    MutationKind.ROOM,
                    action,
                    {"inspection_id": inspection_id, "room_inspection": room_payload},
                )
            )
            return True

    async def save_photos(
        self,
        inspection_id: str,
        room_inspection_id: str,
        photos: List[OfflinePhoto],
    ) -> bool:
        """Cache photos on a room and queue one upload per photo"""
        photos = copy.deepcopy(photos)
        async with self._edit_lock:
            inspections = await self.get_inspections()
            inspection = next((i for i in inspections if i.id == inspection_id), None)
            if inspection is None:
                return False
            room = inspection.find_room(room_inspection_id)
            if room is None:
                return False

            records = []
            for photo in photos:
                existing_index = next(
                    (i for i, cached in enumerate(room.photos) if cached.id == photo.id), -1
                )
                if existing_index >= 0:
                    room.photos[existing_index] = photo
                    action = MutationAction.UPDATE
                else:
                    room.photos.append(photo)
                    action = MutationAction.CREATE

                records.append(MutationRecord.create(
                    MutationKind.PHOTO,
                    action,
                    {
                        "inspection_id": inspection_id,
                        "room_inspection_id": room_inspection_id,
                        "photo": photo.to_dict(),
                    },
                ))

            now = time.time()
            room.last_modified = now
            inspection.last_modified = now
            await self.save_inspections(inspections)

            for record in records:
                await self.store.enqueue(record)
            return True

    async def add_photo_file(
        self,
        inspection_id: str,
        room_inspection_id: str,
        path: Union[str, Path],
    ) -> Optional[OfflinePhoto]:
        """Encode an image file and attach it to a room"""
        path = Path(path)
        photo = OfflinePhoto(
            id=str(uuid.uuid4()),
            file_name=path.name,
            image=await encode_file(path),
        )
        if not await self.save_photos(inspection_id, room_inspection_id, [photo]):
            return None
        return photo

    async def delete_photo(
        self, inspection_id: str, room_inspection_id: str, photo_id: str
    ) -> bool:
        """Remove a photo from the cache and queue its deletion"""
        async with self._edit_lock:
            inspections = await self.get_inspections()
            inspection = next((i for i in inspections if i.id == inspection_id), None)
            if inspection is None:
                return False
            room = inspection.find_room(room_inspection_id)
            if room is None:
                return False

            room.photos = [photo for photo in room.photos if photo.id != photo_id]
            now = time.time()
            room.last_modified = now
            inspection.last_modified = now
            await self.save_inspections(inspections)

            await self.store.enqueue(MutationRecord.create(
                MutationKind.PHOTO,
                MutationAction.DELETE,
                {
                    "inspection_id": inspection_id,
                    "room_inspection_id": room_inspection_id,
                    "photo_id": photo_id,
                },
            ))
            return True

    # ==================== User data ====================

    async def save_user_data(self, user_data: Any) -> bool:
        try:
            await self.storage.set_item(USER_DATA, user_data)
            return True
        except StorageError as e:
            logger.error(f"Failed to save user data offline: {e}")
            return False

    async def get_user_data(self) -> Any:
        try:
            return await self.storage.get_item(USER_DATA)
        except StorageError as e:
            logger.error(f"Failed to get offline user data: {e}")
            return None

    async def clear(self) -> None:
        """Drop cached inspections and queued changes (user data is kept)"""
        async with self._edit_lock:
            try:
                await self.storage.remove_item(OFFLINE_INSPECTIONS)
            except StorageError as e:
                logger.error(f"Failed to clear offline inspections: {e}")
            await self.store.clear()
