"""Port: acknowledger contract. Reports pipeline outcomes back to the source queue."""
from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, Sequence

if TYPE_CHECKING:
    from ingestor.app.domain.models import Message


class Acknowledger(Protocol):
    async def ack(self, successful: Sequence[Message], failed: Sequence[Message]) -> None: ...
