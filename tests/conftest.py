"""
Inspection Sync - Test Configuration and Fixtures
"""
from typing import Any, Dict, List, Tuple

import pytest
from unittest.mock import AsyncMock

from inspection_sync.config import SyncConfig
from inspection_sync.exceptions import RemoteError
from inspection_sync.mutation_store import InMemoryMutationStore
from inspection_sync.network import NetworkMonitor, NetworkStatus
from inspection_sync.storage import LocalStorage


class FakeRemote:
    """
    Stand-in for InspectionAPIClient.

    Every call is recorded in ``calls`` as (method, payload), in call order,
    whether it succeeds or not. ``fail_next(method, n)`` makes the next n
    calls to that method raise.
    """

    METHODS = ("save_inspection", "update_room", "upload_photo", "delete_photo")

    def __init__(self):
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.successes: List[Tuple[str, Dict[str, Any]]] = []
        self._failures: Dict[str, int] = {}
        self.before_call = None
        for method in self.METHODS:
            setattr(self, method, AsyncMock(side_effect=self._make_handler(method)))

    def fail_next(self, method: str, times: int = 1) -> None:
        self._failures[method] = self._failures.get(method, 0) + times

    def _make_handler(self, method: str):
        async def handler(payload):
            self.calls.append((method, payload))
            if self.before_call is not None:
                self.before_call(method, payload)
            if self._failures.get(method, 0) > 0:
                self._failures[method] -= 1
                raise RemoteError(f"Failed to {method}", 503)
            self.successes.append((method, payload))
            return {"ok": True}
        return handler


@pytest.fixture
def config(tmp_path) -> SyncConfig:
    """Config pointing at a throwaway data directory"""
    return SyncConfig(
        api_base_url="http://inspections.test/api",
        auth_token="test-token",
        data_dir=str(tmp_path / "data"),
    )


@pytest.fixture
def storage(config) -> LocalStorage:
    return LocalStorage(config.data_dir)


@pytest.fixture
def memory_store() -> InMemoryMutationStore:
    return InMemoryMutationStore()


@pytest.fixture
def online_monitor() -> NetworkMonitor:
    return NetworkMonitor(initial=NetworkStatus.ONLINE)


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()
