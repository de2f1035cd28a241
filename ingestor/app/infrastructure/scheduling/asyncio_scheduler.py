"""Poll scheduler backed by the running asyncio loop's call_later."""
from __future__ import annotations

import asyncio
from typing import Callable


class AsyncioPollScheduler:
    """Implements ports.scheduler.PollScheduler. Returns asyncio.TimerHandle (has cancel())."""

    def __init__(self, on_fire: Callable[[], None]) -> None:
        self._on_fire = on_fire

    def schedule(self, delay_ms: int) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay_ms / 1000, self._on_fire)
