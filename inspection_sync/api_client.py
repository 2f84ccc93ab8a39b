"""
Inspection API client used to replay queued mutations.

Every method takes the queued payload as stored, returns the decoded JSON
response, and raises ``RemoteError`` for any non-2xx answer. Transport
problems surface as ``httpx.HTTPError`` subclasses.
"""

from typing import Any, Dict, Optional

import httpx

from inspection_sync.config import SyncConfig
from inspection_sync.exceptions import InvalidPayloadError, RemoteError
from inspection_sync.logging_config import get_logger
from inspection_sync.photo_codec import EncodedImage

logger = get_logger("api")


def _require(payload: Dict[str, Any], key: str) -> Any:
    value = payload.get(key) if isinstance(payload, dict) else None
    if value in (None, ""):
        raise InvalidPayloadError(key)
    return value


class InspectionAPIClient:
    """
    Async client for the inspection endpoints the sync engine depends on.

    Usage:
        async with InspectionAPIClient(config) as api:
            await api.save_inspection(payload)
    """

    def __init__(
        self,
        config: SyncConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.base_url = config.api_base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=config.auth_headers,
            timeout=config.timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "InspectionAPIClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _parse(response: httpx.Response) -> Dict[str, Any]:
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {"raw": response.text}
        return data if isinstance(data, dict) else {"data": data}

    def _check(self, response: httpx.Response, message: str) -> Dict[str, Any]:
        if not response.is_success:
            raise RemoteError(message, response.status_code, response.text)
        return self._parse(response)

    # ==================== Health ====================

    async def check_health(self) -> bool:
        """True when the API answers its health endpoint"""
        try:
            response = await self._client.get("/health", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    # ==================== Inspections ====================

    async def save_inspection(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create or update an inspection"""
        _require(payload, "id")
        response = await self._client.post("/inspections", json=payload)
        return self._check(response, "Failed to sync inspection")

    # ==================== Rooms ====================

    async def update_room(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Send task completion state and notes for one room"""
        inspection_id = _require(payload, "inspection_id")
        room = _require(payload, "room_inspection")
        room_id = _require(room, "room_id")

        response = await self._client.put(
            f"/inspections/{inspection_id}/rooms/{room_id}",
            json={
                "tasks": room.get("tasks", []),
                "notes": room.get("notes"),
            },
        )
        return self._check(response, "Failed to sync room inspection")

    # ==================== Photos ====================

    async def upload_photo(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Upload a queued photo, decoding it back to binary first"""
        inspection_id = _require(payload, "inspection_id")
        room_inspection_id = _require(payload, "room_inspection_id")
        photo = _require(payload, "photo")
        photo_id = _require(photo, "id")

        image = EncodedImage.from_dict(_require(photo, "image"))
        content = image.decode()
        file_name = photo.get("file_name") or f"{photo_id}.jpg"

        response = await self._client.post(
            f"/inspections/{inspection_id}/rooms/{room_inspection_id}/photos",
            files={"photos": (file_name, content, image.mime_type)},
            data={"photoIds": photo_id},
        )
        logger.debug(f"Uploaded photo {photo_id} ({len(content)} bytes)")
        return self._check(response, "Failed to sync photo")

    async def delete_photo(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Delete a photo; a photo that is already gone counts as deleted"""
        inspection_id = _require(payload, "inspection_id")
        room_inspection_id = _require(payload, "room_inspection_id")
        photo_id = _require(payload, "photo_id")

        response = await self._client.delete(
            f"/inspections/{inspection_id}/rooms/{room_inspection_id}/photos/{photo_id}"
        )
        if response.status_code == 404:
            logger.info(f"Photo {photo_id} already deleted on server")
            return {"deleted": True, "already_deleted": True}
        return self._check(response, "Failed to delete photo")
