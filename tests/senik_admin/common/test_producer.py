"""Tests for MessageProducer."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from pydantic import BaseModel

from config.config import AdminConfig
from senik_admin.common.producer import MessageProducer
from senik_admin.common.types import ProduceResult
from senik_admin.domain.events import IncomeCalculated, Money


@pytest.fixture
def config():
    return AdminConfig(
        bootstrap_servers="broker:9092",
        producer_defaults={"acks": "all", "linger_ms": 5, "compression_type": "none"},
    )


@pytest.fixture
def mock_aiokafka():
    with patch("senik_admin.common.producer.AIOKafkaProducer") as producer_cls:
        producer = producer_cls.return_value
        producer.start = AsyncMock()
        producer.stop = AsyncMock()
        producer.flush = AsyncMock()
        producer.send_and_wait = AsyncMock(
            return_value=SimpleNamespace(topic="senik.events", partition=1, offset=12)
        )
        yield producer_cls


@pytest.fixture
async def producer(config, mock_aiokafka):
    producer = MessageProducer(config)
    await producer.start()
    yield producer
    await producer.stop()


def make_event() -> IncomeCalculated:
    return IncomeCalculated(
        income_id=uuid4(),
        individual_id=uuid4(),
        income=Money(amount="1520.40", currency="EUR"),
    )


class TestBuildKafkaConfig:

    def test_defaults(self, config):
        cfg = MessageProducer(config)._build_kafka_config()

        assert cfg["bootstrap_servers"] == "broker:9092"
        assert cfg["client_id"] == "senik-admin-producer"
        assert cfg["acks"] == "all"
        assert cfg["enable_idempotence"] is True
        assert cfg["linger_ms"] == 5
        assert cfg["compression_type"] is None

    def test_idempotence_forces_acks_all(self):
        config = AdminConfig(bootstrap_servers="b", producer_defaults={"acks": "1"})

        assert MessageProducer(config)._build_kafka_config()["acks"] == "all"

    def test_numeric_acks_without_idempotence(self):
        config = AdminConfig(
            bootstrap_servers="b", producer_defaults={"acks": "1", "enable_idempotence": False}
        )

        cfg = MessageProducer(config)._build_kafka_config()

        assert cfg["acks"] == 1
        assert cfg["enable_idempotence"] is False


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_and_stop(self, config, mock_aiokafka):
        producer = MessageProducer(config)

        await producer.start()
        assert producer.is_started
        mock_aiokafka.return_value.start.assert_awaited_once()

        await producer.stop()
        assert not producer.is_started
        mock_aiokafka.return_value.flush.assert_awaited_once()
        mock_aiokafka.return_value.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_swallows_errors(self, config, mock_aiokafka):
        mock_aiokafka.return_value.stop.side_effect = RuntimeError("close failed")
        producer = MessageProducer(config)
        await producer.start()

        await producer.stop()

        assert not producer.is_started

    @pytest.mark.asyncio
    async def test_send_requires_start(self, config):
        with pytest.raises(RuntimeError, match="not started"):
            await MessageProducer(config).send("t", None, b"x")


class TestSend:

    @pytest.mark.asyncio
    async def test_raw_bytes_pass_through(self, producer, mock_aiokafka):
        result = await producer.send(
            "senik.events", b"key", b"\x00raw", headers=[("trace-id", b"1")], partition=1
        )

        assert result == ProduceResult(topic="senik.events", partition=1, offset=12)
        mock_aiokafka.return_value.send_and_wait.assert_awaited_once_with(
            "senik.events", key=b"key", value=b"\x00raw", partition=1, headers=[("trace-id", b"1")]
        )

    @pytest.mark.asyncio
    async def test_dict_value_and_header_dict(self, producer, mock_aiokafka):
        await producer.send("t", "k", {"a": 1}, headers={"source": "admin"})

        kwargs = mock_aiokafka.return_value.send_and_wait.await_args.kwargs
        assert kwargs["key"] == b"k"
        assert json.loads(kwargs["value"]) == {"a": 1}
        assert kwargs["headers"] == [("source", b"admin")]
        assert kwargs["partition"] is None

    @pytest.mark.asyncio
    async def test_domain_event_encoded_with_class_name(self, producer, mock_aiokafka):
        event = make_event()

        await producer.send("senik.events", str(event.aggregate_id), event)

        kwargs = mock_aiokafka.return_value.send_and_wait.await_args.kwargs
        document = json.loads(kwargs["value"])
        assert kwargs["key"] == str(event.aggregate_id).encode()
        assert document["className"] == "gr.senik.admin.domain.model.IncomeCalculated"
        assert document["incomeId"] == str(event.income_id)

    @pytest.mark.asyncio
    async def test_plain_model_serialized_by_alias(self, producer, mock_aiokafka):
        class Note(BaseModel):
            text: str

        await producer.send("t", None, Note(text="hi"))

        kwargs = mock_aiokafka.return_value.send_and_wait.await_args.kwargs
        assert json.loads(kwargs["value"]) == {"text": "hi"}
        assert kwargs["headers"] is None

    @pytest.mark.asyncio
    async def test_send_failure_reraised(self, producer, mock_aiokafka):
        mock_aiokafka.return_value.send_and_wait.side_effect = RuntimeError("broker down")

        with pytest.raises(RuntimeError, match="broker down"):
            await producer.send("t", None, b"x")

    @pytest.mark.asyncio
    async def test_flush(self, producer, mock_aiokafka):
        await producer.flush()

        mock_aiokafka.return_value.flush.assert_awaited()
