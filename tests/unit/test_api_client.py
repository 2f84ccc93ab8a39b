"""
Unit Tests for InspectionAPIClient

Requests are answered by httpx.MockTransport so the wire format can be checked.
"""
import json

import httpx
import pytest

from inspection_sync.api_client import InspectionAPIClient
from inspection_sync.exceptions import InvalidPayloadError, PayloadDecodeError, RemoteError
from inspection_sync.photo_codec import EncodedImage


class Recorder:
    """Mock transport handler that remembers requests"""

    def __init__(self, status_code: int = 200, body=None):
        self.status_code = status_code
        self.body = body if body is not None else {"ok": True}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)


def make_client(config, handler) -> InspectionAPIClient:
    return InspectionAPIClient(config, transport=httpx.MockTransport(handler))


class TestInspectionCalls:
    """Test inspection and room calls"""

    @pytest.mark.asyncio
    async def test_save_inspection_posts_payload(self, config):
        """Test inspections are POSTed as JSON with the bearer token"""
        recorder = Recorder(body={"id": "i1"})
        payload = {"id": "i1", "property_name": "Beach House"}

        async with make_client(config, recorder) as api:
            result = await api.save_inspection(payload)

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/inspections"
        assert request.headers["Authorization"] == "Bearer test-token"
        assert json.loads(request.content) == payload
        assert result == {"id": "i1"}

    @pytest.mark.asyncio
    async def test_update_room_puts_tasks_and_notes(self, config):
        """Test room updates go to the room URL with tasks and notes only"""
        recorder = Recorder()
        payload = {
            "inspection_id": "i1",
            "room_inspection": {
                "id": "ri1",
                "room_id": "kitchen",
                "tasks": [{"id": "t1", "description": "Mop", "completed": True}],
                "notes": "Streaks on the oven",
                "status": "PENDING",
            },
        }

        async with make_client(config, recorder) as api:
            await api.update_room(payload)

        request = recorder.requests[0]
        assert request.method == "PUT"
        assert request.url.path == "/api/inspections/i1/rooms/kitchen"
        assert json.loads(request.content) == {
            "tasks": [{"id": "t1", "description": "Mop", "completed": True}],
            "notes": "Streaks on the oven",
        }

    @pytest.mark.asyncio
    async def test_non_success_raises_remote_error(self, config):
        """Test a 500 answer becomes RemoteError"""
        async with make_client(config, Recorder(status_code=500, body={"error": "boom"})) as api:
            with pytest.raises(RemoteError) as exc_info:
                await api.save_inspection({"id": "i1"})

        assert exc_info.value.status_code == 500
        assert exc_info.value.to_dict()["code"] == "REMOTE_ERROR"

    @pytest.mark.asyncio
    async def test_missing_field_raises(self, config):
        """Test malformed payloads fail before any request"""
        recorder = Recorder()

        async with make_client(config, recorder) as api:
            with pytest.raises(InvalidPayloadError):
                await api.update_room({"taskId": "t1", "completed": True})

        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self, config):
        """Test connection failures surface as httpx errors"""
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(config, refuse) as api:
            with pytest.raises(httpx.ConnectError):
                await api.save_inspection({"id": "i1"})


class TestPhotoCalls:
    """Test photo upload and delete"""

    @pytest.mark.asyncio
    async def test_upload_sends_multipart_binary(self, config):
        """Test the encoded image is decoded and uploaded as a file"""
        recorder = Recorder()
        image = EncodedImage.from_bytes(b"\xff\xd8jpeg-bytes", "image/jpeg")
        payload = {
            "inspection_id": "i1",
            "room_inspection_id": "ri1",
            "photo": {"id": "p1", "file_name": "sink.jpg", "image": image.to_dict()},
        }

        async with make_client(config, recorder) as api:
            await api.upload_photo(payload)

        request = recorder.requests[0]
        body = request.content
        assert request.method == "POST"
        assert request.url.path == "/api/inspections/i1/rooms/ri1/photos"
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b'name="photos"; filename="sink.jpg"' in body
        assert b"\xff\xd8jpeg-bytes" in body
        assert b'name="photoIds"' in body
        assert b"p1" in body

    @pytest.mark.asyncio
    async def test_upload_accepts_legacy_data_url(self, config):
        """Test photos queued as data URLs still upload"""
        recorder = Recorder()
        image = EncodedImage.from_bytes(b"png-bytes", "image/png")
        payload = {
            "inspection_id": "i1",
            "room_inspection_id": "ri1",
            "photo": {"id": "p1", "file_name": "tub.png", "image": image.to_data_url()},
        }

        async with make_client(config, recorder) as api:
            await api.upload_photo(payload)

        assert b"png-bytes" in recorder.requests[0].content

    @pytest.mark.asyncio
    async def test_upload_with_corrupt_image_fails(self, config):
        """Test undecodable images fail without a request"""
        recorder = Recorder()
        payload = {
            "inspection_id": "i1",
            "room_inspection_id": "ri1",
            "photo": {"id": "p1", "image": {"encoding": "base64", "data": "***"}},
        }

        async with make_client(config, recorder) as api:
            with pytest.raises(PayloadDecodeError):
                await api.upload_photo(payload)

        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_delete_of_missing_photo_is_success(self, config):
        """Test a 404 on delete counts as already deleted"""
        recorder = Recorder(status_code=404, body={"error": "Photo not found"})
        payload = {"inspection_id": "i1", "room_inspection_id": "ri1", "photo_id": "p1"}

        async with make_client(config, recorder) as api:
            result = await api.delete_photo(payload)

        request = recorder.requests[0]
        assert request.method == "DELETE"
        assert request.url.path == "/api/inspections/i1/rooms/ri1/photos/p1"
        assert result["already_deleted"] is True

    @pytest.mark.asyncio
    async def test_delete_server_error_raises(self, config):
        """Test other delete failures still raise"""
        payload = {"inspection_id": "i1", "room_inspection_id": "ri1", "photo_id": "p1"}

        async with make_client(config, Recorder(status_code=503)) as api:
            with pytest.raises(RemoteError):
                await api.delete_photo(payload)


class TestHealth:
    """Test the health check"""

    @pytest.mark.asyncio
    async def test_health_ok(self, config):
        async with make_client(config, Recorder()) as api:
            assert await api.check_health() is True

    @pytest.mark.asyncio
    async def test_health_unreachable(self, config):
        def refuse(request):
            raise httpx.ConnectError("down", request=request)

        async with make_client(config, refuse) as api:
            assert await api.check_health() is False
