"""Listener for IncomeCalculated events."""

import logging
from dataclasses import dataclass, field
from typing import Protocol

from config.config import AdminConfig
from core.errors.exceptions import UnsupportedEventError
from core.logging.utilities import log_with_context
from senik_admin.common.types import PipelineMessage
from senik_admin.domain.codec import EventCodec, get_codec
from senik_admin.domain.events import DomainEvent, IncomeCalculated

logger = logging.getLogger(__name__)

LISTENER_NAME = "income_calculation"
SENIK_EVENTS_TOPIC = "senik.events"
INCOME_CALCULATED_GROUP_ID = "senik-admin-income-calculated-consumer-group"


class EventListener(Protocol):
    async def handle(self, event: DomainEvent) -> None:
        ...


class IncomeCalculationListener:
    """Receives calculated incomes for the admin backend.

    Only IncomeCalculated is accepted; any other event type reaching this
    listener is a routing mistake and is rejected as permanent.
    """

    async def handle(self, event: DomainEvent) -> None:
        if not isinstance(event, IncomeCalculated):
            raise UnsupportedEventError(
                f"{type(event).__name__} is not handled by {type(self).__name__}",
                context={"event_type": type(event).__name__, "event_id": str(event.event_id)},
            )

        log_with_context(
            logger,
            logging.INFO,
            "Received income calculated event",
            event_id=str(event.event_id),
            event_type=event.type,
            aggregate_id=str(event.aggregate_id),
            individual_id=str(event.individual_id),
            amount=str(event.income.amount),
            currency=event.income.currency,
        )


@dataclass
class ListenerBinding:
    """A listener bound to a topic and consumer group.

    handle_message is the raw message handler the consumer drives: it decodes
    the record with the shared codec and hands the event to the listener.
    Decoding happens on every attempt, so a payload that cannot be decoded
    fails the first attempt with a permanent error.
    """

    name: str
    topic: str
    group_id: str
    listener: EventListener
    codec: EventCodec = field(default_factory=get_codec)

    async def handle_message(self, message: PipelineMessage) -> None:
        event = self.codec.decode(message.value)
        await self.listener.handle(event)

    @classmethod
    def from_config(
        cls,
        config: AdminConfig,
        name: str,
        listener: EventListener,
        codec: EventCodec | None = None,
    ) -> "ListenerBinding":
        return cls(
            name=name,
            topic=config.get_topic(name),
            group_id=config.get_consumer_group(name),
            listener=listener,
            codec=codec or get_codec(),
        )


def income_calculation_binding(config: AdminConfig, codec: EventCodec | None = None) -> ListenerBinding:
    """Binding for IncomeCalculationListener, with topic and group from config."""
    return ListenerBinding.from_config(config, LISTENER_NAME, IncomeCalculationListener(), codec)


__all__ = [
    "EventListener",
    "IncomeCalculationListener",
    "ListenerBinding",
    "income_calculation_binding",
    "LISTENER_NAME",
    "SENIK_EVENTS_TOPIC",
    "INCOME_CALCULATED_GROUP_ID",
]
