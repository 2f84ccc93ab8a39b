"""
Unit Tests for OfflineInspectionCache

Edits update the cached snapshot and queue the matching mutation.
"""
import asyncio

import pytest

from inspection_sync.models import (
    MutationAction,
    MutationKind,
    OfflineInspection,
    OfflinePhoto,
    OfflineRoomInspection,
    OfflineTask,
)
from inspection_sync.mutation_store import LocalMutationStore
from inspection_sync.offline_cache import OfflineInspectionCache
from inspection_sync.photo_codec import EncodedImage


@pytest.fixture
def cache(storage, memory_store) -> OfflineInspectionCache:
    return OfflineInspectionCache(storage, memory_store)


def make_inspection() -> OfflineInspection:
    return OfflineInspection(id="insp-1", property_name="Beach House", property_id="prop-1")


def make_room(completed: bool = False) -> OfflineRoomInspection:
    return OfflineRoomInspection(
        id="room-insp-1",
        room_id="kitchen",
        room_name="Kitchen",
        tasks=[OfflineTask(id="t1", description="Wipe counters", completed=completed)],
    )


def make_photo(photo_id: str = "p1") -> OfflinePhoto:
    return OfflinePhoto(
        id=photo_id,
        file_name=f"{photo_id}.jpg",
        image=EncodedImage.from_bytes(b"jpeg", "image/jpeg"),
    )


class TestInspections:
    """Test caching whole inspections"""

    @pytest.mark.asyncio
    async def test_first_save_queues_create(self, cache, memory_store):
        record = await cache.save_inspection(make_inspection())

        assert record.kind == MutationKind.INSPECTION
        assert record.action == MutationAction.CREATE
        assert record.payload["id"] == "insp-1"
        assert [i.id for i in await cache.get_inspections()] == ["insp-1"]

    @pytest.mark.asyncio
    async def test_second_save_queues_update(self, cache, memory_store):
        await cache.save_inspection(make_inspection())
        record = await cache.save_inspection(make_inspection())

        assert record.action == MutationAction.UPDATE
        assert len(await cache.get_inspections()) == 1
        assert await memory_store.pending_count() == 2

    @pytest.mark.asyncio
    async def test_get_inspection(self, cache):
        await cache.save_inspection(make_inspection())

        assert (await cache.get_inspection("insp-1")).property_name == "Beach House"
        assert await cache.get_inspection("other") is None

    @pytest.mark.asyncio
    async def test_save_does_not_modify_callers_object(self, cache):
        inspection = make_inspection()
        inspection.created_at = 1.0
        inspection.last_modified = 1.0

        await cache.save_inspection(inspection)

        assert inspection.created_at == 1.0
        assert inspection.last_modified == 1.0
        assert (await cache.get_inspection("insp-1")).last_modified > 1.0

    @pytest.mark.asyncio
    async def test_concurrent_saves_keep_both(self, storage):
        store = LocalMutationStore(storage)
        await store.load()
        cache = OfflineInspectionCache(storage, store)
        first = OfflineInspection(id="a", property_name="Beach House")
        second = OfflineInspection(id="b", property_name="Lake Cabin")

        await asyncio.gather(cache.save_inspection(first), cache.save_inspection(second))

        assert sorted(i.id for i in await cache.get_inspections()) == ["a", "b"]
        assert await store.pending_count() == 2


class TestRooms:
    """Test room checklist edits"""

    @pytest.mark.asyncio
    async def test_room_update_for_unknown_inspection(self, cache, memory_store):
        assert await cache.update_room_inspection("missing", make_room()) is False
        assert await memory_store.pending_count() == 0

    @pytest.mark.asyncio
    async def test_room_create_then_update(self, cache, memory_store):
        await cache.save_inspection(make_inspection())

        assert await cache.update_room_inspection("insp-1", make_room())
        assert await cache.update_room_inspection("insp-1", make_room(completed=True))

        records = await memory_store.list()
        room_records = [r for r in records if r.kind == MutationKind.ROOM]
        assert [r.action for r in room_records] == [MutationAction.CREATE, MutationAction.UPDATE]
        payload = room_records[-1].payload
        assert payload["inspection_id"] == "insp-1"
        assert payload["room_inspection"]["room_id"] == "kitchen"
        assert payload["room_inspection"]["tasks"][0]["completed"] is True
        assert "photos" not in payload["room_inspection"]

        cached = await cache.get_inspection("insp-1")
        assert cached.room_inspections[0].tasks[0].completed is True

    @pytest.mark.asyncio
    async def test_room_update_keeps_cached_photos(self, cache):
        await cache.save_inspection(make_inspection())
        await cache.update_room_inspection("insp-1", make_room())
        await cache.save_photos("insp-1", "room-insp-1", [make_photo()])

        await cache.update_room_inspection("insp-1", make_room(completed=True))

        cached = await cache.get_inspection("insp-1")
        assert [p.id for p in cached.room_inspections[0].photos] == ["p1"]

    @pytest.mark.asyncio
    async def test_room_update_does_not_modify_callers_room(self, cache):
        await cache.save_inspection(make_inspection())
        await cache.update_room_inspection("insp-1", make_room())
        await cache.save_photos("insp-1", "room-insp-1", [make_photo()])
        room = make_room(completed=True)
        room.last_modified = 1.0

        await cache.update_room_inspection("insp-1", room)

        assert room.photos == []
        assert room.last_modified == 1.0

    @pytest.mark.asyncio
    async def test_concurrent_room_edits_keep_both(self, cache, memory_store):
        await cache.save_inspection(make_inspection())
        other = OfflineRoomInspection(id="room-insp-2", room_id="bath", room_name="Bathroom")

        results = await asyncio.gather(
            cache.update_room_inspection("insp-1", make_room()),
            cache.update_room_inspection("insp-1", other),
        )

        assert results == [True, True]
        cached = await cache.get_inspection("insp-1")
        assert sorted(r.id for r in cached.room_inspections) == ["room-insp-1", "room-insp-2"]
        room_records = [r for r in await memory_store.list() if r.kind == MutationKind.ROOM]
        assert len(room_records) == 2


class TestPhotos:
    """Test photo capture and deletion"""

    @pytest.mark.asyncio
    async def test_save_photos_queues_one_upload_each(self, cache, memory_store):
        await cache.save_inspection(make_inspection())
        await cache.update_room_inspection("insp-1", make_room())

        assert await cache.save_photos("insp-1", "room-insp-1", [make_photo("p1"), make_photo("p2")])

        photo_records = [r for r in await memory_store.list() if r.kind == MutationKind.PHOTO]
        assert [r.payload["photo"]["id"] for r in photo_records] == ["p1", "p2"]
        assert all(r.action == MutationAction.CREATE for r in photo_records)
        assert photo_records[0].payload["photo"]["image"]["encoding"] == "base64"

    @pytest.mark.asyncio
    async def test_save_photos_unknown_room(self, cache):
        await cache.save_inspection(make_inspection())

        assert await cache.save_photos("insp-1", "nope", [make_photo()]) is False

    @pytest.mark.asyncio
    async def test_add_photo_file(self, cache, memory_store, tmp_path):
        await cache.save_inspection(make_inspection())
        await cache.update_room_inspection("insp-1", make_room())
        path = tmp_path / "oven.jpg"
        path.write_bytes(b"oven-photo")

        photo = await cache.add_photo_file("insp-1", "room-insp-1", path)

        assert photo.file_name == "oven.jpg"
        assert photo.image.decode() == b"oven-photo"
        cached = await cache.get_inspection("insp-1")
        assert cached.room_inspections[0].photos[0].id == photo.id

    @pytest.mark.asyncio
    async def test_delete_photo_queues_delete(self, cache, memory_store):
        await cache.save_inspection(make_inspection())
        await cache.update_room_inspection("insp-1", make_room())
        await cache.save_photos("insp-1", "room-insp-1", [make_photo()])

        assert await cache.delete_photo("insp-1", "room-insp-1", "p1")

        last = (await memory_store.list())[-1]
        assert last.kind == MutationKind.PHOTO
        assert last.action == MutationAction.DELETE
        assert last.payload == {
            "inspection_id": "insp-1",
            "room_inspection_id": "room-insp-1",
            "photo_id": "p1",
        }
        cached = await cache.get_inspection("insp-1")
        assert cached.room_inspections[0].photos == []


class TestUserDataAndClear:
    """Test user data and clearing"""

    @pytest.mark.asyncio
    async def test_clear_keeps_user_data(self, storage):
        store = LocalMutationStore(storage)
        await store.load()
        cache = OfflineInspectionCache(storage, store)
        await cache.save_user_data({"name": "Dana"})
        await cache.save_inspection(make_inspection())

        await cache.clear()

        assert await cache.get_inspections() == []
        assert await store.pending_count() == 0
        assert await cache.get_user_data() == {"name": "Dana"}
