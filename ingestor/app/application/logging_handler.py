"""Default message handler: decode the payload and log it."""
from __future__ import annotations

import json
from typing import Any

from loguru import logger

from ingestor.app.core import SERVICE_NAME
from ingestor.app.domain.models import Message


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class LoggingMessageHandler:
    """Implements ports.message_handler.MessageHandler.

    String and bytes payloads are parsed as JSON; a payload that does not parse
    raises, which leaves the message on the queue for redelivery.
    """

    async def handle(self, message: Message) -> None:
        body = self._decode(message.data)
        _log(
            "message_handled",
            message_id=message.receipt.id,
            keys=sorted(body) if isinstance(body, dict) else None,
        )

    def _decode(self, data: Any) -> Any:
        if isinstance(data, bytes):
            data = data.decode()
        if isinstance(data, str):
            return json.loads(data)
        return data
