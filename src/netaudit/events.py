"""
Async event stream of devices found by a running scan.

The orchestrator stays thread-based and calls its callbacks from worker
threads. DeviceEventStream registers one such callback and hands every
device to an asyncio loop, so async consumers can simply write:

    async with DeviceEventStream(orchestrator) as events:
        async for device in events:
            ...
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ._types import Device

logger = logging.getLogger(__name__)

_CLOSED = object()


class DeviceEventStream:
    """Bridge orchestrator callbacks (worker threads) to an asyncio consumer."""

    def __init__(self, orchestrator, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._orchestrator = orchestrator
        self._loop = loop
        self._queue: Optional[asyncio.Queue] = None
        self._closed = False

    def open(self) -> "DeviceEventStream":
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._orchestrator.register_device_callback(self._on_device)
        return self

    def close(self) -> None:
        """Stop receiving devices; iteration ends once queued devices are consumed."""
        if self._closed:
            return
        self._closed = True
        self._orchestrator.unregister_device_callback(self._on_device)
        if self._loop is not None and self._queue is not None:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, _CLOSED)

    def _on_device(self, device: Device) -> None:
        # Runs on a scan worker thread
        if self._closed or self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, device)

    async def __aenter__(self) -> "DeviceEventStream":
        return self.open()

    async def __aexit__(self, *exc) -> None:
        self.close()

    def __aiter__(self) -> "DeviceEventStream":
        if self._queue is None:
            self.open()
        return self

    async def __anext__(self) -> Device:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item
