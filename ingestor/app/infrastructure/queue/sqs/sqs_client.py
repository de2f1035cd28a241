"""
SQS queue client: boto3 adapter for ports.queue_client.QueueClient.

Receives with ReceiveMessage (capped at max_number_of_messages, at most 10 per
call) and deletes with DeleteMessageBatch. boto3 is synchronous, so every call
runs in a worker thread via asyncio.to_thread. Transport retries are botocore's
(`max_attempts`); resolving the queue URL from its name is retried with
exponential backoff before the first receive or delete.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

from ingestor.app.core import SERVICE_NAME
from ingestor.app.core.backoff import exponential_backoff
from ingestor.app.domain.models import ReceivedItem, Receipt
from ingestor.app.infrastructure.queue.options import parse_options
from ingestor.app.ports.queue_client import MAX_BATCH

# Hard SQS limits.
MAX_WAIT_TIME_SECONDS = 20
MAX_VISIBILITY_TIMEOUT = 43_200


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class SqsClientOptions(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    queue_name: str = Field(None, validate_default=True)
    queue_url: str | None = None
    region_name: str | None = None
    endpoint_url: str | None = None

    max_number_of_messages: int = Field(MAX_BATCH, ge=1, le=MAX_BATCH)
    wait_time_seconds: int | None = Field(None, ge=0, le=MAX_WAIT_TIME_SECONDS)
    visibility_timeout: int | None = Field(None, ge=0, le=MAX_VISIBILITY_TIMEOUT)
    attribute_names: list[str] = Field(default_factory=list)
    message_attribute_names: list[str] = Field(default_factory=list)

    max_attempts: int = Field(3, ge=1)
    initial_backoff_seconds: float = Field(0.5, ge=0)
    max_backoff_seconds: float = Field(10.0, ge=0)
    backoff_multiplier: float = Field(2.0, ge=1)
    max_connection_attempts: int = Field(5, ge=1)

    @field_validator("queue_name", mode="before")
    @classmethod
    def _queue_name_not_empty(cls, value: Any) -> Any:
        if not isinstance(value, str) or not value.strip():
            raise PydanticCustomError("non_empty_string", "must be a non-empty string")
        return value


@dataclass
class SqsClientState:
    options: SqsClientOptions
    queue_url: str | None = None
    sqs: Any | None = None


class SqsQueueClient:
    """QueueClient implementation for AWS SQS.

    `sqs` may be a prebuilt boto3 SQS client (tests, custom sessions); otherwise
    each state gets its own client, built from that state's region and endpoint
    in a worker thread on first use.
    """

    def __init__(self, sqs: Any | None = None) -> None:
        self._sqs = sqs

    def init(self, options: Mapping[str, Any]) -> SqsClientState:
        parsed = parse_options(SqsClientOptions, options)
        return SqsClientState(options=parsed, queue_url=parsed.queue_url, sqs=self._sqs)

    async def _client(self, state: SqsClientState) -> Any:
        if state.sqs is None:
            opts = state.options
            state.sqs = await asyncio.to_thread(
                boto3.client,
                "sqs",
                region_name=opts.region_name,
                endpoint_url=opts.endpoint_url,
                config=Config(retries={"max_attempts": opts.max_attempts, "mode": "standard"}),
            )
        return state.sqs

    async def _resolve_queue_url(self, state: SqsClientState) -> str:
        if state.queue_url:
            return state.queue_url
        opts = state.options
        attempt = 0
        async for delay in exponential_backoff(
            opts.initial_backoff_seconds,
            opts.max_backoff_seconds,
            opts.backoff_multiplier,
            opts.max_connection_attempts,
        ):
            attempt += 1
            _log("sqs_queue_url_attempt", queue_name=opts.queue_name, attempt=attempt, delay=delay)
            try:
                sqs = await self._client(state)
                response = await asyncio.to_thread(sqs.get_queue_url, QueueName=opts.queue_name)
                state.queue_url = response["QueueUrl"]
                _log("sqs_queue_url_resolved", queue_name=opts.queue_name, queue_url=state.queue_url)
                break
            except (BotoCoreError, ClientError) as e:
                logger.warning("sqs get_queue_url failed: {}", e)
                if attempt >= opts.max_connection_attempts:
                    _log("sqs_queue_url_failed", queue_name=opts.queue_name, attempt=attempt)
                    raise
        return state.queue_url

    def _receive_params(self, queue_url: str, amount: int, opts: SqsClientOptions) -> dict[str, Any]:
        params: dict[str, Any] = {
            "QueueUrl": queue_url,
            "MaxNumberOfMessages": min(amount, opts.max_number_of_messages),
        }
        if opts.wait_time_seconds is not None:
            params["WaitTimeSeconds"] = opts.wait_time_seconds
        if opts.visibility_timeout is not None:
            params["VisibilityTimeout"] = opts.visibility_timeout
        if opts.attribute_names:
            params["AttributeNames"] = list(opts.attribute_names)
        if opts.message_attribute_names:
            params["MessageAttributeNames"] = list(opts.message_attribute_names)
        return params

    async def receive_messages(self, amount: int, state: SqsClientState) -> list[ReceivedItem]:
        if amount <= 0:
            return []
        queue_url = await self._resolve_queue_url(state)
        params = self._receive_params(queue_url, amount, state.options)
        sqs = await self._client(state)
        response = await asyncio.to_thread(sqs.receive_message, **params)
        return [self._to_item(raw) for raw in response.get("Messages") or []]

    def _to_item(self, raw: Mapping[str, Any]) -> ReceivedItem:
        metadata: dict[str, Any] = {
            "md5_of_body": raw.get("MD5OfBody"),
            "attributes": dict(raw.get("Attributes") or {}),
            "message_attributes": dict(raw.get("MessageAttributes") or {}),
        }
        return ReceivedItem(
            data=raw.get("Body"),
            receipt=Receipt(id=raw["MessageId"], receipt_handle=raw["ReceiptHandle"]),
            metadata=metadata,
        )

    async def delete_messages(self, receipts: Sequence[Receipt], state: SqsClientState) -> None:
        if not receipts:
            return
        if len(receipts) > MAX_BATCH:
            raise ValueError(f"DeleteMessageBatch accepts at most {MAX_BATCH} receipts, got: {len(receipts)}")
        queue_url = await self._resolve_queue_url(state)
        # Entry ids only need to be unique within one request.
        entries = [
            {"Id": str(index), "ReceiptHandle": receipt.receipt_handle}
            for index, receipt in enumerate(receipts)
        ]
        sqs = await self._client(state)
        response = await asyncio.to_thread(sqs.delete_message_batch, QueueUrl=queue_url, Entries=entries)
        for failure in response.get("Failed") or []:
            receipt = receipts[int(failure["Id"])]
            logger.warning(
                "sqs delete failed for message {}: {} {}",
                receipt.id,
                failure.get("Code"),
                failure.get("Message", ""),
            )
