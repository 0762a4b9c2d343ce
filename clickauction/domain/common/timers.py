# clickauction/domain/common/timers.py
from __future__ import annotations

import asyncio
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
    """
    Schedules plain callbacks on the running asyncio loop.
    Callbacks run on the loop thread between message handlers, never concurrently.
    """

    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(delay_sec, callback)
