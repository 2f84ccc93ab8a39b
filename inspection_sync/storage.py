"""
Local Storage - named JSON records in the client data directory

Each record (sync queue, cached inspections, last sync time, user data) is a
single JSON file. Records are always read in full and rewritten in full;
writes go to a temporary file first and are swapped in with an atomic
replace so a crash never leaves a half-written record behind.
"""

import json
import os
import uuid
from pathlib import Path
from typing import Any, Union

import aiofiles
import aiofiles.os

from inspection_sync.exceptions import StorageError
from inspection_sync.logging_config import get_logger

logger = get_logger("storage")

# Record names
SYNC_QUEUE = "sync-queue"
OFFLINE_INSPECTIONS = "offline-inspections"
LAST_SYNC = "last-sync"
USER_DATA = "user-data"


class LocalStorage:
    """
    Durable key/value store of JSON documents.

    Usage:
        storage = LocalStorage(config.data_dir)
        await storage.set_item("sync-queue", [...])
        queue = await storage.get_item("sync-queue", [])
    """

    def __init__(self, base_path: Union[str, Path]):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_path(self, name: str) -> Path:
        """Get the file path for a named record"""
        if not name or "/" in name or "\\" in name or name.startswith("."):
            raise ValueError(f"Invalid record name: {name!r}")
        return self.base_path / f"{name}.json"

    async def get_item(self, name: str, default: Any = None) -> Any:
        """Load a record, returning ``default`` when it does not exist"""
        path = self._get_path(name)
        if not await aiofiles.os.path.exists(path):
            return default

        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                raw = await f.read()
        except OSError as e:
            raise StorageError(name, str(e)) from e

        if not raw.strip():
            return default

        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(name, f"corrupt JSON: {e}") from e

    async def set_item(self, name: str, value: Any) -> None:
        """Rewrite a record in full"""
        path = self._get_path(name)
        tmp_path = path.parent / f"{path.name}.{os.getpid()}.{uuid.uuid4().hex}.tmp"

        try:
            content = json.dumps(value, indent=2)
        except (TypeError, ValueError) as e:
            raise StorageError(name, f"not JSON serializable: {e}") from e

        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(content)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            raise StorageError(name, str(e)) from e

        logger.debug(f"Wrote local record {name} ({len(content)} bytes)")

    async def remove_item(self, name: str) -> bool:
        """Delete a record; returns False when it did not exist"""
        path = self._get_path(name)
        try:
            await aiofiles.os.remove(path)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(name, str(e)) from e
