"""Port: delayed poll trigger. The producer owns at most one outstanding trigger."""
from __future__ import annotations

from typing import Protocol


class ScheduledPoll(Protocol):
    def cancel(self) -> None: ...


class PollScheduler(Protocol):
    def schedule(self, delay_ms: int) -> ScheduledPoll:
        """Arrange for the owning producer's timer event to fire after delay_ms.

        delay_ms == 0 means "as soon as the current event is done", never inline.
        """
        ...
