"""
Network Status Monitor - online/offline signal with transition callbacks

The monitor only records what a connectivity source reports and tells
subscribers when the state flips. ``ConnectivityWatcher`` is the source used
by the terminal client: it asks the inspection API's health endpoint at a
fixed interval and feeds the answer into the monitor.
"""

import asyncio
import inspect
from enum import Enum
from typing import Callable, List, Optional, Union, Awaitable

import httpx

from inspection_sync.logging_config import get_logger

logger = get_logger("network")


class NetworkStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


StatusCallback = Callable[[NetworkStatus], Union[None, Awaitable[None]]]


class NetworkMonitor:
    """
    Holds the last observed connectivity state.

    Usage:
        monitor = NetworkMonitor()
        unsubscribe = monitor.subscribe(on_change)
        monitor.set_online()
    """

    def __init__(self, initial: NetworkStatus = NetworkStatus.OFFLINE):
        self._status = NetworkStatus(initial)
        self._subscribers: List[StatusCallback] = []
        self._pending: set = set()

    def current_status(self) -> NetworkStatus:
        return self._status

    @property
    def is_online(self) -> bool:
        return self._status == NetworkStatus.ONLINE

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        """Register for transition edges; returns an unsubscribe function"""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def set_online(self) -> None:
        self.set_status(NetworkStatus.ONLINE)

    def set_offline(self) -> None:
        self.set_status(NetworkStatus.OFFLINE)

    def set_status(self, status: NetworkStatus) -> bool:
        """Record a platform signal; returns True when it was a transition"""
        status = NetworkStatus(status)
        if status == self._status:
            return False

        previous = self._status
        self._status = status
        logger.info(f"Network status changed: {previous.value} -> {status.value}")

        for callback in list(self._subscribers):
            self._notify(callback, status)
        return True

    def _notify(self, callback: StatusCallback, status: NetworkStatus) -> None:
        try:
            result = callback(status)
        except Exception as e:
            logger.log_error_with_context(e, context="network status callback")
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(self._on_callback_done)

    def _on_callback_done(self, task: asyncio.Future) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.log_error_with_context(error, context="network status callback")


class ConnectivityWatcher:
    """
    Polls the API health endpoint and reports the result to a monitor.

    Usage:
        watcher = ConnectivityWatcher(monitor, config.api_base_url, interval=15)
        await watcher.start()
        ...
        await watcher.stop()
    """

    def __init__(
        self,
        monitor: NetworkMonitor,
        api_base_url: str,
        interval: float = 15.0,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.monitor = monitor
        self.health_url = f"{api_base_url.rstrip('/')}/health"
        self.interval = interval
        self.timeout = timeout
        self._client = client
        self._task: Optional[asyncio.Task] = None

    async def check_connection(self) -> bool:
        """Check if the server is reachable"""
        try:
            if self._client is not None:
                response = await self._client.get(self.health_url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self.health_url)
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.debug(f"Health check failed: {e}")
            return False

    async def poll_once(self) -> NetworkStatus:
        """Run one check and feed it to the monitor"""
        online = await self.check_connection()
        status = NetworkStatus.ONLINE if online else NetworkStatus.OFFLINE
        self.monitor.set_status(status)
        return status

    async def start(self) -> None:
        """Check immediately, then keep checking in the background"""
        if self._task is not None:
            return

        await self.poll_once()

        async def watch_loop():
            while True:
                try:
                    await asyncio.sleep(self.interval)
                    await self.poll_once()
                except asyncio.CancelledError:
                    break

        self._task = asyncio.create_task(watch_loop())

    async def stop(self) -> None:
        """Stop the background checks"""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
