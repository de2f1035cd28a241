"""Port: per-message processing step of the downstream pipeline."""
from __future__ import annotations

from typing import Protocol

from ingestor.app.domain.models import Message


class MessageHandler(Protocol):
    async def handle(self, message: Message) -> None:
        """Process one message; raising marks it failed (it is then left on the queue)."""
        ...
