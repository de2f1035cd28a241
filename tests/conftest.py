from __future__ import annotations

from collections import deque
from typing import Any, Mapping, Sequence

import pytest

from ingestor.app.application.producer import QueueProducer
from ingestor.app.domain.models import ReceivedItem, Receipt
from ingestor.app.ports.queue_client import InvalidClientOptions


class FakeQueue:
    """Message server shared by fake clients: push items, clients take them in order."""

    def __init__(self) -> None:
        self._items: deque[Any] = deque()

    def push(self, *items: Any) -> None:
        self._items.extend(items)

    def take(self, amount: int) -> list[Any]:
        taken = []
        while self._items and len(taken) < amount:
            taken.append(self._items.popleft())
        return taken

    def __len__(self) -> int:
        return len(self._items)


class FakeQueueClient:
    """Implements QueueClient for tests; records every receive and delete call."""

    def __init__(self, queue: FakeQueue | None = None, *, receive_raises: Exception | None = None) -> None:
        self.queue = queue if queue is not None else FakeQueue()
        self.received: list[int] = []
        self.requested: list[int] = []
        self.deleted: list[list[Receipt]] = []
        self.delete_states: list[Any] = []
        self._receive_raises = receive_raises

    def init(self, options: Mapping[str, Any]) -> dict[str, Any]:
        if "fail_with" in options:
            raise InvalidClientOptions(options["fail_with"])
        return dict(options)

    async def receive_messages(self, amount: int, state: Any) -> list[ReceivedItem]:
        if self._receive_raises is not None:
            raise self._receive_raises
        self.requested.append(amount)
        items = [
            ReceivedItem(
                data=item,
                receipt=Receipt(id=f"Id_{item}", receipt_handle=f"ReceiptHandle_{item}"),
            )
            for item in self.queue.take(amount)
        ]
        self.received.append(len(items))
        return items

    async def delete_messages(self, receipts: Sequence[Receipt], state: Any) -> None:
        self.deleted.append(list(receipts))
        self.delete_states.append(state)


class FakeTimer:
    def __init__(self, delay_ms: int) -> None:
        self.delay_ms = delay_ms
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class RecordingScheduler:
    """PollScheduler that never fires on its own; tests fire timers explicitly."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def schedule(self, delay_ms: int) -> FakeTimer:
        timer = FakeTimer(delay_ms)
        self.timers.append(timer)
        return timer

    @property
    def delays(self) -> list[int]:
        return [timer.delay_ms for timer in self.timers]


@pytest.fixture()
def fake_queue() -> FakeQueue:
    return FakeQueue()


@pytest.fixture()
def fake_client(fake_queue: FakeQueue) -> FakeQueueClient:
    return FakeQueueClient(fake_queue)


@pytest.fixture()
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture()
def producer(fake_client: FakeQueueClient, scheduler: RecordingScheduler) -> QueueProducer:
    return QueueProducer.init(
        client=fake_client,
        client_options={"queue_name": "test_queue"},
        scheduler=scheduler,
        poll_interval_ms=5000,
    )
