"""Tests for domain event schemas."""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from senik_admin.domain.events import DomainEvent, IncomeCalculated, Money


def make_event(**overrides) -> IncomeCalculated:
    data = {
        "incomeId": str(uuid4()),
        "individualId": str(uuid4()),
        "income": {"amount": "1520.40", "currency": "EUR"},
    }
    data.update(overrides)
    return IncomeCalculated.model_validate(data)


class TestMoney:

    def test_amount_is_exact_decimal(self):
        money = Money(amount="1520.40", currency="EUR")

        assert money.amount == Decimal("1520.40")
        assert str(money.amount) == "1520.40"

    @pytest.mark.parametrize("currency", ["eur", "EU", "EURO", ""])
    def test_currency_must_be_iso_code(self, currency):
        with pytest.raises(ValidationError):
            Money(amount="1", currency=currency)

    def test_frozen(self):
        money = Money(amount="1", currency="EUR")

        with pytest.raises(ValidationError):
            money.amount = Decimal("2")


class TestIncomeCalculated:

    def test_envelope_derived_from_payload(self):
        event = make_event()

        assert event.aggregate_id == event.income_id
        assert event.aggregate_type == "income"
        assert event.type == "IncomeCalculated"
        assert event.event_id is not None
        assert event.occurred_on.tzinfo is not None

    def test_accepts_python_field_names(self):
        income_id = uuid4()

        event = IncomeCalculated(
            income_id=income_id,
            individual_id=uuid4(),
            income=Money(amount="10", currency="USD"),
        )

        assert event.aggregate_id == income_id

    def test_explicit_envelope_is_kept(self):
        income_id = uuid4()
        event_id = uuid4()
        occurred_on = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)

        event = make_event(
            incomeId=str(income_id),
            eventId=str(event_id),
            aggregateId=str(income_id),
            aggregateType="income",
            type="IncomeCalculated",
            occurredOn=occurred_on.isoformat(),
        )

        assert event.event_id == event_id
        assert event.occurred_on == occurred_on

    def test_mismatched_aggregate_id_rejected(self):
        with pytest.raises(ValidationError, match="must equal incomeId"):
            make_event(aggregateId=str(uuid4()))

    def test_wrong_aggregate_type_rejected(self):
        with pytest.raises(ValidationError, match="aggregateType"):
            make_event(aggregateType="individual")

    def test_wrong_type_rejected(self):
        with pytest.raises(ValidationError, match="type must be"):
            make_event(type="IncomeDeleted")

    def test_missing_fields_rejected(self):
        with pytest.raises(ValidationError):
            IncomeCalculated.model_validate({"incomeId": str(uuid4())})

    def test_invalid_uuid_rejected(self):
        with pytest.raises(ValidationError):
            make_event(individualId="not-a-uuid")

    def test_dump_uses_camel_case(self):
        dumped = make_event().model_dump(mode="json", by_alias=True)

        assert set(dumped) == {
            "eventId",
            "aggregateId",
            "aggregateType",
            "type",
            "occurredOn",
            "incomeId",
            "individualId",
            "income",
        }
        assert dumped["income"] == {"amount": "1520.40", "currency": "EUR"}

    def test_qualified_name(self):
        assert IncomeCalculated.qualified_name() == "gr.senik.admin.domain.model.IncomeCalculated"
        assert issubclass(IncomeCalculated, DomainEvent)
