"""In-memory queue client for tests and local runs.

Keeps a FIFO of payloads in process. Received items stay in flight until they
are deleted; expire_in_flight() plays the part of the visibility timeout and
puts undeleted items back at the head of the queue.
"""
from __future__ import annotations

import itertools
from collections import deque
from typing import Any, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field

from ingestor.app.domain.models import ReceivedItem, Receipt
from ingestor.app.infrastructure.queue.options import parse_options
from ingestor.app.ports.queue_client import MAX_BATCH


class InMemoryClientOptions(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_number_of_messages: int = Field(MAX_BATCH, ge=1, le=MAX_BATCH)


class InMemoryQueueClient:
    def __init__(self) -> None:
        self._queue: deque[tuple[int, Any]] = deque()
        self._ids = itertools.count(1)
        self._in_flight: dict[str, tuple[int, Any]] = {}
        self.receive_calls: list[int] = []
        self.delete_calls: list[list[Receipt]] = []

    def push(self, *payloads: Any) -> None:
        for payload in payloads:
            self._queue.append((next(self._ids), payload))

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def expire_in_flight(self) -> int:
        expired = sorted(self._in_flight.values(), key=lambda entry: entry[0], reverse=True)
        self._in_flight.clear()
        self._queue.extendleft(expired)
        return len(expired)

    def init(self, options: Mapping[str, Any]) -> InMemoryClientOptions:
        return parse_options(InMemoryClientOptions, options)

    async def receive_messages(self, amount: int, state: InMemoryClientOptions) -> list[ReceivedItem]:
        count = min(amount, state.max_number_of_messages, len(self._queue))
        items = []
        for _ in range(count):
            entry = self._queue.popleft()
            receipt = Receipt(id=f"Id_{entry[0]}", receipt_handle=f"ReceiptHandle_{entry[0]}")
            self._in_flight[receipt.receipt_handle] = entry
            items.append(ReceivedItem(data=entry[1], receipt=receipt))
        self.receive_calls.append(len(items))
        return items

    async def delete_messages(self, receipts: Sequence[Receipt], state: InMemoryClientOptions) -> None:
        if len(receipts) > MAX_BATCH:
            raise ValueError(f"delete accepts at most {MAX_BATCH} receipts, got: {len(receipts)}")
        self.delete_calls.append(list(receipts))
        for receipt in receipts:
            self._in_flight.pop(receipt.receipt_handle, None)
