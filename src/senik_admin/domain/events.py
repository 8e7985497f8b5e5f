"""
Domain event schemas published on the senik.events topic.

Every event carries the DomainEvent envelope (eventId, aggregateId,
aggregateType, type, occurredOn) and is serialized with camelCase field
names. Concrete events are registered with the codec by their class name.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, ClassVar
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel

# Package the events lived in when they were first published; payloads written
# by older producers carry it in their className property.
LEGACY_EVENT_PACKAGE = "gr.senik.admin.domain.model"


def _utc_now() -> datetime:
    return datetime.now(UTC)


class Money(BaseModel):
    """Monetary amount in a single ISO-4217 currency.

    Example:
        >>> Money(amount="1520.40", currency="EUR").amount
        Decimal('1520.40')
    """

    amount: Decimal = Field(..., description="Amount, kept as an exact decimal")
    currency: str = Field(
        ...,
        description="ISO-4217 currency code",
        pattern=r"^[A-Z]{3}$",
    )

    model_config = {"frozen": True}


class DomainEvent(BaseModel):
    """Envelope shared by every domain event.

    Attributes:
        event_id: Unique event identifier (generated when omitted)
        aggregate_id: Identifier of the aggregate the event belongs to
        aggregate_type: Aggregate kind (e.g. "income")
        type: Event type name (e.g. "IncomeCalculated")
        occurred_on: When the event happened, UTC (generated when omitted)
    """

    event_name: ClassVar[str] = ""

    event_id: UUID = Field(default_factory=uuid4)
    aggregate_id: UUID
    aggregate_type: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    occurred_on: datetime = Field(default_factory=_utc_now)

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "frozen": True,
    }

    @classmethod
    def qualified_name(cls) -> str:
        """Fully qualified class name written by older producers."""
        return f"{LEGACY_EVENT_PACKAGE}.{cls.event_name}"

    @staticmethod
    def _setdefault(data: dict[str, Any], field_name: str, value: Any) -> None:
        """Set a field unless present under its python name or its alias."""
        if field_name in data or to_camel(field_name) in data:
            return
        if value is not None:
            data[to_camel(field_name)] = value


class IncomeCalculated(DomainEvent):
    """An individual's income has been calculated.

    The envelope is derived from the payload: aggregateId is the incomeId,
    aggregateType is "income" and type is "IncomeCalculated". Payloads that
    carry a conflicting envelope are rejected.

    Example:
        >>> event = IncomeCalculated(
        ...     income_id=uuid4(),
        ...     individual_id=uuid4(),
        ...     income=Money(amount="1520.40", currency="EUR"),
        ... )
        >>> event.aggregate_type
        'income'
    """

    event_name: ClassVar[str] = "IncomeCalculated"
    AGGREGATE_TYPE: ClassVar[str] = "income"

    income_id: UUID
    individual_id: UUID
    income: Money

    @model_validator(mode="before")
    @classmethod
    def derive_envelope(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        data = dict(data)
        income_id = data.get("incomeId", data.get("income_id"))
        cls._setdefault(data, "aggregate_id", income_id)
        cls._setdefault(data, "aggregate_type", cls.AGGREGATE_TYPE)
        cls._setdefault(data, "type", cls.event_name)
        return data

    @model_validator(mode="after")
    def check_envelope(self) -> "IncomeCalculated":
        if self.aggregate_id != self.income_id:
            raise ValueError(
                f"aggregateId ({self.aggregate_id}) must equal incomeId ({self.income_id})"
            )
        if self.aggregate_type != self.AGGREGATE_TYPE:
            raise ValueError(
                f"aggregateType must be '{self.AGGREGATE_TYPE}', got '{self.aggregate_type}'"
            )
        if self.type != self.event_name:
            raise ValueError(f"type must be '{self.event_name}', got '{self.type}'")
        return self


__all__ = [
    "LEGACY_EVENT_PACKAGE",
    "Money",
    "DomainEvent",
    "IncomeCalculated",
]
