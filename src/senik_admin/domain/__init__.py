"""Domain events and their wire codec."""

from senik_admin.domain.codec import (
    CLASS_NAME_PROPERTY,
    EventCodec,
    EventValidationError,
    get_codec,
)
from senik_admin.domain.events import DomainEvent, IncomeCalculated, Money

__all__ = [
    "DomainEvent",
    "IncomeCalculated",
    "Money",
    "EventCodec",
    "EventValidationError",
    "CLASS_NAME_PROPERTY",
    "get_codec",
]
