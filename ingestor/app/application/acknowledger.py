"""
Acknowledger: delete successfully processed messages from their source queue.

Failed messages are not touched; the queue redelivers them once their
visibility timeout expires. Successful messages are grouped by client binding
(order preserved) and each group is split into consecutive chunks of at most
MAX_BATCH receipts, one delete call per chunk.
"""
from __future__ import annotations

from typing import Any, Iterator, Sequence

from loguru import logger

from ingestor.app.core import SERVICE_NAME
from ingestor.app.domain.models import ClientBinding, Message
from ingestor.app.ports.queue_client import MAX_BATCH


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def chunk_every(messages: Sequence[Message], size: int) -> Iterator[list[Message]]:
    for start in range(0, len(messages), size):
        yield list(messages[start:start + size])


def group_by_binding(messages: Sequence[Message]) -> list[tuple[ClientBinding, list[Message]]]:
    groups: dict[ClientBinding, list[Message]] = {}
    for message in messages:
        groups.setdefault(message.acknowledger.client, []).append(message)
    return list(groups.items())


class ChunkedAcknowledger:
    """Implements ports.acknowledger.Acknowledger for any QueueClient."""

    def __init__(self, max_batch: int = MAX_BATCH) -> None:
        if max_batch < 1 or max_batch > MAX_BATCH:
            raise ValueError(f"max_batch must be between 1 and {MAX_BATCH}, got: {max_batch}")
        self._max_batch = max_batch

    async def ack(self, successful: Sequence[Message], failed: Sequence[Message]) -> None:
        if failed:
            _log("ack_failed_skipped", count=len(failed))

        for binding, messages in group_by_binding(successful):
            for chunk in chunk_every(messages, self._max_batch):
                receipts = [message.receipt for message in chunk]
                await binding.client.delete_messages(receipts, binding.state)
                _log("messages_deleted", client=binding.name, count=len(receipts))
