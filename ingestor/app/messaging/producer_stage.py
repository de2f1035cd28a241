"""
Producer stage: runs one QueueProducer as a single actor.

Demand requests and poll-timer events go into an inbox and are handled one at a
time by a single task, so producer state has exactly one writer and a receive
is never started while another one is in flight. Emitted messages land in an
outbox that the downstream consumer reads with get().

A receive error stops the stage: it is logged, readers get it re-raised from
get(), and run() re-raises it.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from ingestor.app.application.producer import QueueProducer
from ingestor.app.core import SERVICE_NAME
from ingestor.app.domain.models import Message
from ingestor.app.infrastructure.scheduling.asyncio_scheduler import AsyncioPollScheduler
from ingestor.app.ports.scheduler import PollScheduler


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


@dataclass(frozen=True)
class Demand:
    amount: int


class _PollTimerFired:
    pass


POLL_TIMER_FIRED = _PollTimerFired()
_STOP = object()
_END = object()


class ProducerStage:
    def __init__(self, producer_factory: Callable[[PollScheduler], QueueProducer]) -> None:
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()
        self._outbox: asyncio.Queue[Any] = asyncio.Queue()
        self._producer = producer_factory(AsyncioPollScheduler(self._on_poll_timer))
        self._task: asyncio.Task[None] | None = None
        self._error: BaseException | None = None

    @property
    def producer(self) -> QueueProducer:
        return self._producer

    def _on_poll_timer(self) -> None:
        self._inbox.put_nowait(POLL_TIMER_FIRED)

    def ask(self, amount: int) -> None:
        """Grant `amount` more messages of downstream capacity."""
        self._inbox.put_nowait(Demand(amount))

    def notify(self, event: Any) -> None:
        self._inbox.put_nowait(event)

    async def get(self) -> Message | None:
        """Next emitted message, or None once the stage has stopped and the outbox is drained."""
        item = await self._outbox.get()
        if item is _END:
            self._outbox.put_nowait(_END)
            if self._error is not None:
                raise self._error
            return None
        return item

    def start(self) -> asyncio.Task[None]:
        if self._task is None:
            self._task = asyncio.create_task(self.run())
        return self._task

    async def run(self) -> None:
        _log("stage_started", client=self._producer.state.client.name)
        try:
            while True:
                event = await self._inbox.get()
                if event is _STOP:
                    break
                if isinstance(event, Demand):
                    messages = await self._producer.handle_demand(event.amount)
                elif event is POLL_TIMER_FIRED:
                    messages = await self._producer.handle_poll_timer()
                else:
                    logger.bind(service_name=SERVICE_NAME, event="stage_event_ignored").debug(
                        "ignoring unexpected event {!r}", event
                    )
                    continue
                for message in messages:
                    self._outbox.put_nowait(message)
        except Exception as exc:
            logger.exception("producer stage failed: {}", exc)
            self._error = exc
            raise
        finally:
            self._producer.cancel_poll_timer()
            self._outbox.put_nowait(_END)
            _log("stage_stopped", demand=self._producer.demand)

    async def stop(self) -> None:
        if self._task is None:
            return
        if not self._task.done():
            self._inbox.put_nowait(_STOP)
        try:
            await self._task
        except Exception as exc:
            logger.warning("producer stage ended with error: {}", exc)
