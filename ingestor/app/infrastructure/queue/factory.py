"""Queue client factory: selects implementation from config. Only place that imports concrete clients."""
from __future__ import annotations

from typing import Any, Mapping

from ingestor.app.application.producer import DEFAULT_POLL_INTERVAL_MS, QueueProducer
from ingestor.app.config.settings import Settings
from ingestor.app.infrastructure.queue.inmemory.in_memory_client import InMemoryQueueClient
from ingestor.app.infrastructure.queue.sqs.sqs_client import SqsQueueClient
from ingestor.app.ports.queue_client import QueueClient
from ingestor.app.ports.scheduler import PollScheduler


def create_queue_client(settings: Settings) -> tuple[QueueClient, dict[str, Any]]:
    """Return the client and the options its init() will be given."""
    backend = settings.queue_client_backend.strip().lower()

    if backend == "sqs":
        return SqsQueueClient(), sqs_options_from_settings(settings)

    if backend == "inmemory":
        return InMemoryQueueClient(), {}

    raise ValueError(f"Unsupported queue client backend: {backend}")


def sqs_options_from_settings(settings: Settings) -> dict[str, Any]:
    options: dict[str, Any] = {
        "queue_name": settings.queue_name,
        "max_number_of_messages": settings.sqs_max_number_of_messages,
        "max_attempts": settings.sqs_max_attempts,
        "initial_backoff_seconds": settings.initial_backoff_seconds,
        "max_backoff_seconds": settings.max_backoff_seconds,
        "backoff_multiplier": settings.backoff_multiplier,
        "max_connection_attempts": settings.max_connection_attempts,
    }
    if settings.queue_url:
        options["queue_url"] = settings.queue_url
    if settings.aws_region:
        options["region_name"] = settings.aws_region
    if settings.sqs_endpoint_url:
        options["endpoint_url"] = settings.sqs_endpoint_url
    if settings.sqs_wait_time_seconds is not None:
        options["wait_time_seconds"] = settings.sqs_wait_time_seconds
    if settings.sqs_visibility_timeout is not None:
        options["visibility_timeout"] = settings.sqs_visibility_timeout
    return options


def create_queue_producer(
    scheduler: PollScheduler,
    queue_client: tuple[QueueClient, Mapping[str, Any]] | None = None,
    *,
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
) -> QueueProducer:
    """Build a producer from a (client, options) pair; defaults to SQS with no extra options."""
    client, options = queue_client if queue_client is not None else (SqsQueueClient(), {})
    return QueueProducer.init(
        client=client,
        client_options=options,
        scheduler=scheduler,
        poll_interval_ms=poll_interval_ms,
    )
