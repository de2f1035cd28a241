"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ingestor.app.ports.acknowledger import Acknowledger
    from ingestor.app.ports.queue_client import QueueClient


@dataclass(frozen=True)
class Receipt:
    """Queue-issued id plus the handle that authorises deleting exactly this delivered copy."""

    id: str
    receipt_handle: str


@dataclass(frozen=True)
class ReceivedItem:
    """One raw item returned by a queue client receive call."""

    data: Any
    receipt: Receipt
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, eq=False)
class ClientBinding:
    """A queue client together with the state its init() returned.

    Compared by identity: every message received by one producer shares the
    same binding object.
    """

    client: QueueClient
    state: Any

    @property
    def name(self) -> str:
        return type(self.client).__name__


@dataclass(frozen=True)
class AckBinding:
    """Everything needed to finalise one message once the pipeline is done with it."""

    acknowledger: Acknowledger
    client: ClientBinding
    receipt: Receipt


@dataclass(frozen=True)
class Message:
    """A queue item as seen by the pipeline. The receipt never leaks into data."""

    data: Any
    acknowledger: AckBinding
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def receipt(self) -> Receipt:
        return self.acknowledger.receipt
