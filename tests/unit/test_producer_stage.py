"""ProducerStage + BatchConsumer run on a real event loop against the in-memory client."""
from __future__ import annotations

import asyncio

import pytest

from tests.conftest import FakeQueueClient
from ingestor.app.infrastructure.queue.factory import create_queue_producer
from ingestor.app.infrastructure.queue.inmemory.in_memory_client import InMemoryQueueClient
from ingestor.app.messaging.batch_consumer import BatchConsumer
from ingestor.app.messaging.producer_stage import ProducerStage


class RecordingHandler:
    def __init__(self, fail_on: set | None = None) -> None:
        self.handled: list = []
        self._fail_on = fail_on or set()

    async def handle(self, message) -> None:
        self.handled.append(message.data)
        if message.data in self._fail_on:
            raise ValueError(f"cannot process {message.data}")


def _stage(client, *, poll_interval_ms: int = 0) -> ProducerStage:
    return ProducerStage(
        lambda scheduler: create_queue_producer(scheduler, (client, {}), poll_interval_ms=poll_interval_ms)
    )


async def _eventually(predicate, timeout: float = 2.0) -> None:
    async def _wait() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_wait(), timeout)


@pytest.mark.asyncio
async def test_stage_keeps_polling_empty_queue_and_picks_up_new_items():
    client = InMemoryQueueClient()
    stage = _stage(client, poll_interval_ms=10)
    stage.start()

    client.push("a", "b")
    stage.ask(5)
    first = [(await asyncio.wait_for(stage.get(), 2)).data for _ in range(2)]
    assert first == ["a", "b"]

    await _eventually(lambda: client.receive_calls.count(0) >= 3)
    client.push("c")
    message = await asyncio.wait_for(stage.get(), 2)
    assert message.data == "c"

    await stage.stop()
    assert client.receive_calls[0] == 2
    assert stage.producer.state.poll_timer is None


@pytest.mark.asyncio
async def test_batch_consumer_drains_twenty_items_in_two_full_deletes():
    client = InMemoryQueueClient()
    client.push(*range(1, 21))
    stage = _stage(client, poll_interval_ms=50)
    handler = RecordingHandler()
    consumer = BatchConsumer(stage, handler, batch_size=10, batch_timeout_ms=1000)

    stage.start()
    consumer_task = asyncio.create_task(consumer.run())
    await _eventually(lambda: len(client.delete_calls) == 2)
    await stage.stop()
    await asyncio.wait_for(consumer_task, 2)

    assert client.receive_calls[:4] == [10, 5, 5, 0]
    assert handler.handled == list(range(1, 21))
    assert [len(call) for call in client.delete_calls] == [10, 10]
    assert client.in_flight == 0
    assert client.pending == 0


@pytest.mark.asyncio
async def test_failed_message_stays_in_flight_and_is_redelivered_after_expiry():
    client = InMemoryQueueClient()
    client.push(1, 2, 3)
    stage = _stage(client, poll_interval_ms=10)
    handler = RecordingHandler(fail_on={2})
    consumer = BatchConsumer(stage, handler, batch_size=3, batch_timeout_ms=20)

    stage.start()
    consumer_task = asyncio.create_task(consumer.run())
    await _eventually(lambda: len(client.delete_calls) == 1)

    assert [receipt.id for receipt in client.delete_calls[0]] == ["Id_1", "Id_3"]
    assert client.in_flight == 1

    assert client.expire_in_flight() == 1
    await _eventually(lambda: handler.handled.count(2) == 2)

    await stage.stop()
    await asyncio.wait_for(consumer_task, 2)
    assert len(client.delete_calls) == 1
    assert client.in_flight == 1


@pytest.mark.asyncio
async def test_partial_batch_is_flushed_after_batch_timeout():
    client = InMemoryQueueClient()
    client.push("x", "y", "z")
    stage = _stage(client, poll_interval_ms=10)
    consumer = BatchConsumer(stage, RecordingHandler(), batch_size=10, batch_timeout_ms=20)

    stage.start()
    consumer_task = asyncio.create_task(consumer.run())
    await _eventually(lambda: len(client.delete_calls) == 1)

    assert [receipt.id for receipt in client.delete_calls[0]] == ["Id_1", "Id_2", "Id_3"]
    await stage.stop()
    await asyncio.wait_for(consumer_task, 2)


@pytest.mark.asyncio
async def test_receive_error_stops_stage_and_reaches_reader():
    stage = _stage(FakeQueueClient(receive_raises=ConnectionError("sqs unreachable")))
    task = stage.start()
    stage.ask(1)

    with pytest.raises(ConnectionError, match="sqs unreachable"):
        await asyncio.wait_for(stage.get(), 2)
    with pytest.raises(ConnectionError):
        await task
    await stage.stop()


@pytest.mark.asyncio
async def test_unexpected_events_are_ignored():
    client = InMemoryQueueClient()
    stage = _stage(client)
    stage.start()

    stage.notify("not-an-event")
    client.push("x")
    stage.ask(1)

    message = await asyncio.wait_for(stage.get(), 2)
    assert message.data == "x"
    await stage.stop()


@pytest.mark.asyncio
async def test_stop_cancels_pending_timer_and_ends_reads():
    client = InMemoryQueueClient()
    stage = _stage(client, poll_interval_ms=60_000)
    stage.start()

    stage.ask(1)
    await _eventually(lambda: stage.producer.state.poll_timer is not None)
    await stage.stop()

    assert stage.producer.state.poll_timer is None
    assert await stage.get() is None
    assert await stage.get() is None


class FailsAfterFirstReceive(FakeQueueClient):
    async def receive_messages(self, amount, state):
        if self.requested:
            raise ConnectionError("sqs unreachable")
        return await super().receive_messages(amount, state)


@pytest.mark.asyncio
async def test_handled_messages_are_acknowledged_when_stage_fails():
    client = FailsAfterFirstReceive()
    client.queue.push(1, 2, 3)
    stage = _stage(client)
    handler = RecordingHandler()
    consumer = BatchConsumer(stage, handler, batch_size=10, batch_timeout_ms=60_000)

    stage.start()
    with pytest.raises(ConnectionError, match="sqs unreachable"):
        await asyncio.wait_for(consumer.run(), 2)

    assert handler.handled == [1, 2, 3]
    assert [receipt.id for call in client.deleted for receipt in call] == ["Id_1", "Id_2", "Id_3"]
    await stage.stop()


@pytest.mark.asyncio
async def test_handled_messages_are_acknowledged_when_consumer_is_cancelled():
    client = FakeQueueClient()
    client.queue.push("a", "b")
    stage = _stage(client, poll_interval_ms=60_000)
    handler = RecordingHandler()
    consumer = BatchConsumer(stage, handler, batch_size=10, batch_timeout_ms=60_000)

    stage.start()
    consumer_task = asyncio.create_task(consumer.run())
    await _eventually(lambda: len(handler.handled) == 2)
    consumer_task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await consumer_task

    assert [receipt.id for call in client.deleted for receipt in call] == ["Id_a", "Id_b"]
    await stage.stop()
