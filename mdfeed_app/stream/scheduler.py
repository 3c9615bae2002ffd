"""Timer scheduling used for reconnect and heartbeat callbacks."""

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Optional, Protocol


class TimerHandle(Protocol):
    """Handle of a scheduled callback."""

    def cancel(self) -> None:
        ...


class Scheduler(ABC):
    """Schedules fire-and-continue callbacks on the owning event loop."""

    @abstractmethod
    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback once after delay_seconds; the returned handle cancels it."""


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_seconds, callback)
