"""
Batch consumer: the downstream end of a ProducerStage.

Asks for `batch_size` messages up front and refills demand in steps of
batch_size // 2 as messages are handled. Handled messages are collected into a
batch that is acknowledged when it is full or `batch_timeout_ms` after its first
message, whichever comes first. A handler exception marks that message failed.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any

from loguru import logger

from ingestor.app.core import SERVICE_NAME
from ingestor.app.domain.models import Message
from ingestor.app.messaging.producer_stage import ProducerStage
from ingestor.app.ports.acknowledger import Acknowledger
from ingestor.app.ports.message_handler import MessageHandler


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class BatchConsumer:
    def __init__(
        self,
        stage: ProducerStage,
        handler: MessageHandler,
        *,
        batch_size: int = 10,
        batch_timeout_ms: int = 1000,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be a positive integer, got: {batch_size}")
        if batch_timeout_ms < 0:
            raise ValueError(f"batch_timeout_ms must be a non-negative integer, got: {batch_timeout_ms}")
        self._stage = stage
        self._handler = handler
        self._batch_size = batch_size
        self._batch_timeout = batch_timeout_ms / 1000
        self._min_demand = max(1, batch_size // 2)
        self._successful: list[Message] = []
        self._failed: list[Message] = []

    async def run(self) -> None:
        """Consume until the stage stops, flushing the last partial batch.

        The pending batch is acknowledged on every exit, including a stage error
        or cancellation, so handled messages are not redelivered.
        """
        self._stage.ask(self._batch_size)
        handled_since_ask = 0
        deadline: float | None = None

        try:
            while True:
                timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
                try:
                    message = await asyncio.wait_for(self._stage.get(), timeout)
                except asyncio.TimeoutError:
                    await self._flush()
                    deadline = None
                    continue

                if message is None:
                    return

                await self._handle(message)
                if deadline is None:
                    deadline = time.monotonic() + self._batch_timeout

                handled_since_ask += 1
                if handled_since_ask >= self._min_demand:
                    self._stage.ask(handled_since_ask)
                    handled_since_ask = 0

                if len(self._successful) + len(self._failed) >= self._batch_size:
                    await self._flush()
                    deadline = None
        finally:
            await self._flush()

    async def _handle(self, message: Message) -> None:
        try:
            await self._handler.handle(message)
        except Exception as exc:
            logger.warning("message handling failed (left for redelivery): {}", exc)
            self._failed.append(message)
        else:
            self._successful.append(message)

    async def _flush(self) -> None:
        if not self._successful and not self._failed:
            return
        successful, failed = self._successful, self._failed
        self._successful, self._failed = [], []

        by_acknowledger: dict[int, tuple[Acknowledger, list[Message], list[Message]]] = {}
        for outcome, messages in ((0, successful), (1, failed)):
            for message in messages:
                acknowledger = message.acknowledger.acknowledger
                entry = by_acknowledger.setdefault(id(acknowledger), (acknowledger, [], []))
                entry[1 + outcome].append(message)

        for acknowledger, ok, not_ok in by_acknowledger.values():
            await acknowledger.ack(ok, not_ok)
        _log("batch_acknowledged", successful=len(successful), failed=len(failed))
