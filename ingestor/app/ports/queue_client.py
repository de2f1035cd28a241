"""Queue client port: receive and delete against a queue service.

The producer and acknowledger depend on this port only; infrastructure (boto3
SQS, in-memory) implements it. A client is resolved once, when the producer is
built, and never looked up again.
"""
from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

from ingestor.app.domain.models import ReceivedItem, Receipt

# Hard per-call limit of SQS DeleteMessageBatch / ReceiveMessage.
MAX_BATCH = 10


class InvalidClientOptions(Exception):
    """Raised by QueueClient.init when an option is missing or violates its constraint.

    The message names the offending option and what it must be.
    """


@runtime_checkable
class QueueClient(Protocol):
    """Port: the three operations a queue backend has to provide."""

    def init(self, options: Mapping[str, Any]) -> Any:
        """Validate options and return the client state passed to the other calls.

        Raise InvalidClientOptions on bad options.
        """
        ...

    async def receive_messages(self, amount: int, state: Any) -> Sequence[ReceivedItem]:
        """Return at most `amount` items, possibly none."""
        ...

    async def delete_messages(self, receipts: Sequence[Receipt], state: Any) -> None:
        """Delete the delivered copies identified by `receipts` (at most MAX_BATCH)."""
        ...
