"""Tests for the className-tagged event codec."""

import json
from typing import ClassVar
from uuid import uuid4

import pytest

from core.errors.exceptions import DeserializationError, PermanentError
from core.types import ErrorCategory
from senik_admin.domain.codec import EventCodec, EventValidationError, get_codec
from senik_admin.domain.events import DomainEvent, IncomeCalculated, Money


def income_payload(class_name: str = "IncomeCalculated", **overrides) -> bytes:
    data = {
        "className": class_name,
        "incomeId": str(uuid4()),
        "individualId": str(uuid4()),
        "income": {"amount": "1520.40", "currency": "EUR"},
    }
    data.update(overrides)
    return json.dumps(data).encode("utf-8")


@pytest.fixture
def codec():
    return EventCodec()


class TestDecode:

    def test_short_class_name(self, codec):
        event = codec.decode(income_payload())

        assert isinstance(event, IncomeCalculated)
        assert event.income.currency == "EUR"

    def test_qualified_class_name(self, codec):
        event = codec.decode(income_payload("gr.senik.admin.domain.model.IncomeCalculated"))

        assert isinstance(event, IncomeCalculated)

    def test_accepts_str_payload(self, codec):
        event = codec.decode(income_payload().decode("utf-8"))

        assert isinstance(event, IncomeCalculated)

    @pytest.mark.parametrize("data", [None, b"", ""])
    def test_empty_payload(self, codec, data):
        with pytest.raises(DeserializationError, match="Empty"):
            codec.decode(data)

    def test_invalid_json(self, codec):
        with pytest.raises(DeserializationError, match="not valid JSON"):
            codec.decode(b"{not json")

    def test_invalid_utf8(self, codec):
        with pytest.raises(DeserializationError):
            codec.decode(b"\xff\xfe\xfd")

    def test_non_object_document(self, codec):
        with pytest.raises(DeserializationError, match="JSON object"):
            codec.decode(b"[1, 2]")

    def test_missing_class_name(self, codec):
        with pytest.raises(DeserializationError, match="className"):
            codec.decode(b'{"incomeId": "x"}')

    def test_unknown_class_name(self, codec):
        with pytest.raises(DeserializationError, match="Unknown event type 'IncomeDeleted'") as exc_info:
            codec.decode(income_payload("IncomeDeleted"))

        assert exc_info.value.context["known"] == ["IncomeCalculated"]

    def test_validation_failure(self, codec):
        with pytest.raises(EventValidationError) as exc_info:
            codec.decode(income_payload(individualId="nope"))

        error = exc_info.value
        assert isinstance(error, PermanentError)
        assert error.category == ErrorCategory.PERMANENT
        assert error.errors
        assert error.errors[0]["loc"] == ("individualId",)


class TestEncode:

    def test_writes_qualified_class_name_by_default(self, codec):
        event = codec.decode(income_payload())

        document = json.loads(codec.encode(event))

        assert document["className"] == "gr.senik.admin.domain.model.IncomeCalculated"
        assert document["incomeId"] == str(event.income_id)
        assert document["income"] == {"amount": "1520.40", "currency": "EUR"}

    def test_short_names(self):
        codec = EventCodec(qualified_names=False)
        event = IncomeCalculated(
            income_id=uuid4(), individual_id=uuid4(), income=Money(amount="1", currency="EUR")
        )

        assert json.loads(codec.encode(event))["className"] == "IncomeCalculated"

    def test_encoded_event_decodes_to_equal_event(self, codec):
        event = codec.decode(income_payload())

        assert codec.decode(codec.encode(event)) == event

    def test_unregistered_type_rejected(self):
        codec = EventCodec(event_types=())
        event = IncomeCalculated(
            income_id=uuid4(), individual_id=uuid4(), income=Money(amount="1", currency="EUR")
        )

        with pytest.raises(ValueError, match="not registered"):
            codec.encode(event)


class TestRegistry:

    def test_event_names(self, codec):
        assert codec.event_names == ["IncomeCalculated"]
        assert codec.resolve("IncomeCalculated") is IncomeCalculated

    def test_register_requires_event_name(self, codec):
        class Nameless(DomainEvent):
            pass

        with pytest.raises(ValueError, match="no event_name"):
            codec.register(Nameless)

    def test_conflicting_registration_rejected(self, codec):
        class OtherIncome(DomainEvent):
            event_name: ClassVar[str] = "IncomeCalculated"

        with pytest.raises(ValueError, match="already registered"):
            codec.register(OtherIncome)

    def test_reregistering_same_type_is_noop(self, codec):
        codec.register(IncomeCalculated)

        assert codec.event_names == ["IncomeCalculated"]

    def test_get_codec_is_shared(self):
        assert get_codec() is get_codec()
