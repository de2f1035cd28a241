"""
Queue producer: demand accounting, poll scheduling and message wrapping.

State machine:
  handle_demand(n)     demand += n, then poll
  handle_poll_timer()  poll_timer = None, then poll

  poll (only when no timer is pending and demand > 0):
    receive up to `demand` items, wrap and emit all k of them, demand -= k, then
      k == 0                  -> schedule a poll after poll_interval_ms (queue is idle)
      k > 0, demand == 0      -> no timer; wait for the next demand
      k > 0, demand > 0       -> schedule a poll with zero delay (more may be waiting)

A pending timer is the only outstanding poll trigger. Every entry point runs to
completion before the next one starts (see ProducerStage), so a receive is
never issued while another is in flight for the same producer.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from loguru import logger

from ingestor.app.application.acknowledger import ChunkedAcknowledger
from ingestor.app.core import SERVICE_NAME
from ingestor.app.domain.models import AckBinding, ClientBinding, Message, ReceivedItem
from ingestor.app.ports.acknowledger import Acknowledger
from ingestor.app.ports.queue_client import InvalidClientOptions, QueueClient
from ingestor.app.ports.scheduler import PollScheduler, ScheduledPoll

DEFAULT_POLL_INTERVAL_MS = 5000


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


@dataclass
class ProducerState:
    client: ClientBinding
    poll_interval_ms: int
    demand: int = 0
    poll_timer: ScheduledPoll | None = None


class QueueProducer:
    """Pulls from a QueueClient on demand and wraps items into pipeline messages."""

    def __init__(
        self,
        state: ProducerState,
        scheduler: PollScheduler,
        acknowledger: Acknowledger,
    ) -> None:
        self._state = state
        self._scheduler = scheduler
        self._acknowledger = acknowledger

    @classmethod
    def init(
        cls,
        *,
        client: QueueClient,
        scheduler: PollScheduler,
        client_options: Mapping[str, Any] | None = None,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        acknowledger: Acknowledger | None = None,
    ) -> "QueueProducer":
        """Validate configuration and initialise the client. Raises ValueError on bad options."""
        if isinstance(poll_interval_ms, bool) or not isinstance(poll_interval_ms, int) or poll_interval_ms < 0:
            raise ValueError(
                f"expected poll_interval_ms to be a non-negative integer, got: {poll_interval_ms!r}"
            )
        try:
            client_state = client.init(dict(client_options or {}))
        except InvalidClientOptions as exc:
            raise ValueError(f"invalid options given to {type(client).__name__}.init, {exc}") from exc

        state = ProducerState(
            client=ClientBinding(client=client, state=client_state),
            poll_interval_ms=poll_interval_ms,
        )
        _log(
            "producer_initialized",
            client=state.client.name,
            poll_interval_ms=poll_interval_ms,
        )
        return cls(state, scheduler, acknowledger or ChunkedAcknowledger())

    @property
    def state(self) -> ProducerState:
        return self._state

    @property
    def demand(self) -> int:
        return self._state.demand

    @property
    def acknowledger(self) -> Acknowledger:
        return self._acknowledger

    async def handle_demand(self, incoming_demand: int) -> list[Message]:
        if isinstance(incoming_demand, bool) or not isinstance(incoming_demand, int) or incoming_demand <= 0:
            raise ValueError(f"demand must be a positive integer, got: {incoming_demand!r}")
        self._state.demand += incoming_demand
        return await self._poll()

    async def handle_poll_timer(self) -> list[Message]:
        self._state.poll_timer = None
        return await self._poll()

    def cancel_poll_timer(self) -> None:
        if self._state.poll_timer is not None:
            self._state.poll_timer.cancel()
            self._state.poll_timer = None

    async def _poll(self) -> list[Message]:
        state = self._state
        if state.poll_timer is not None or state.demand <= 0:
            return []

        demand = state.demand
        items = await state.client.client.receive_messages(demand, state.client.state)
        if len(items) > demand:
            raise RuntimeError(
                f"{state.client.name}.receive_messages returned {len(items)} items for a demand of {demand}"
            )
        messages = [self._wrap(item) for item in items]
        new_demand = demand - len(messages)

        if not messages:
            state.poll_timer = self._scheduler.schedule(state.poll_interval_ms)
        elif new_demand == 0:
            state.poll_timer = None
        else:
            state.poll_timer = self._scheduler.schedule(0)
        state.demand = new_demand

        _log(
            "messages_received",
            client=state.client.name,
            requested=demand,
            received=len(messages),
            demand=new_demand,
            poll_scheduled=state.poll_timer is not None,
        )
        return messages

    def _wrap(self, item: ReceivedItem) -> Message:
        return Message(
            data=item.data,
            metadata=dict(item.metadata),
            acknowledger=AckBinding(
                acknowledger=self._acknowledger,
                client=self._state.client,
                receipt=item.receipt,
            ),
        )
