"""Worker composition root: build and lifecycle-manage concrete dependencies.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from ingestor.app.application.logging_handler import LoggingMessageHandler
from ingestor.app.config.settings import Settings
from ingestor.app.core import SERVICE_NAME
from ingestor.app.infrastructure.queue.factory import create_queue_client, create_queue_producer
from ingestor.app.messaging.batch_consumer import BatchConsumer
from ingestor.app.messaging.producer_stage import ProducerStage
from ingestor.app.ports.message_handler import MessageHandler
from ingestor.app.ports.queue_client import QueueClient


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class WorkerDependencies:
    """Holds wired worker dependencies and their lifecycle."""

    def __init__(self, *, settings: Settings, handler: MessageHandler | None = None) -> None:
        self._settings = settings
        self._handler = handler or LoggingMessageHandler()
        self._queue_client: QueueClient | None = None
        self._stage: ProducerStage | None = None
        self._consumer: BatchConsumer | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def queue_client(self) -> QueueClient:
        if self._queue_client is None:
            raise RuntimeError("queue_client is not initialized")
        return self._queue_client

    @property
    def stage(self) -> ProducerStage:
        if self._stage is None:
            raise RuntimeError("stage is not initialized")
        return self._stage

    @property
    def consumer(self) -> BatchConsumer:
        if self._consumer is None:
            raise RuntimeError("consumer is not initialized")
        return self._consumer

    async def connect(self) -> None:
        """Build client, producer stage and consumer. Invalid client options raise ValueError here."""
        client, options = create_queue_client(self._settings)
        self._stage = ProducerStage(
            lambda scheduler: create_queue_producer(
                scheduler,
                (client, options),
                poll_interval_ms=self._settings.poll_interval_ms,
            )
        )
        self._queue_client = client
        self._consumer = BatchConsumer(
            self._stage,
            self._handler,
            batch_size=self._settings.batch_size,
            batch_timeout_ms=self._settings.batch_timeout_ms,
        )
        _log(
            "worker_dependencies_connected",
            backend=self._settings.queue_client_backend,
            batch_size=self._settings.batch_size,
        )

    async def close(self) -> None:
        if self._stage is not None:
            try:
                await self._stage.stop()
            except Exception as exc:
                logger.warning("producer stage stop failed: {}", exc)
            self._stage = None
        self._consumer = None
        self._queue_client = None


def create_worker_dependencies(
    settings: Settings | None = None,
    handler: MessageHandler | None = None,
) -> WorkerDependencies:
    return WorkerDependencies(settings=settings or Settings(), handler=handler)
