# clickauction/transport/broadcast.py
from __future__ import annotations

import asyncio
from typing import Optional

from clickauction.logging_config import get_logger
from clickauction.transport.ws_manager import WSManager

logger = get_logger(__name__)


class Broadcaster:
    """
    Ordered fan-out of game-state payloads.

    `publish()` is synchronous so the engine can call it from timer callbacks;
    payloads are composed by the caller at mutation time and sent by a single
    pump task in the order they were published.
    """

    def __init__(self, wsman: WSManager) -> None:
        self.wsman = wsman
        self._queue: asyncio.Queue[Optional[dict]] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    def publish(self, payload: dict) -> None:
        self._queue.put_nowait(payload)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._pump())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._queue.put_nowait(None)
        await self._task
        self._task = None
        logger.debug("Broadcast pump stopped", dropped=self._queue.qsize())

    async def _pump(self) -> None:
        while True:
            payload = await self._queue.get()
            if payload is None:
                return
            await self.wsman.broadcast(payload)

    def pending(self) -> int:
        return self._queue.qsize()
