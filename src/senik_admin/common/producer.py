"""Kafka producer for domain events, dead-letter records and replays."""

import json
import logging
from typing import Any

from aiokafka import AIOKafkaProducer
from pydantic import BaseModel

from config.config import AdminConfig
from core.utils.json_serializers import json_serializer
from senik_admin.common.kafka_config import build_kafka_security_config
from senik_admin.common.metrics import (
    record_message_produced,
    record_producer_error,
    update_connection_status,
)
from senik_admin.common.types import ProduceResult
from senik_admin.domain.codec import EventCodec, get_codec
from senik_admin.domain.events import DomainEvent

logger = logging.getLogger(__name__)

Headers = dict[str, str] | list[tuple[str, bytes]]
Payload = DomainEvent | BaseModel | dict[str, Any] | bytes

# producer_config keys passed through to AIOKafkaProducer when set
PASSTHROUGH_KEYS = ("linger_ms", "max_batch_size", "max_request_size")


def _to_bytes(text: str | bytes | None) -> bytes | None:
    if text is None or isinstance(text, bytes):
        return text
    return text.encode("utf-8")


class MessageProducer:
    """
    Thin wrapper over AIOKafkaProducer.

    send() accepts domain events (encoded with the className codec), other
    pydantic models, plain dicts, or raw bytes, which are sent untouched so
    dead-lettered payloads can be replayed byte for byte.
    """

    def __init__(
        self,
        config: AdminConfig,
        client_name: str = "senik-admin-producer",
        codec: EventCodec | None = None,
    ):
        self.config = config
        self.client_name = client_name
        self.codec = codec or get_codec()
        self.producer_config = config.get_producer_config()
        self._producer: AIOKafkaProducer | None = None

    @property
    def is_started(self) -> bool:
        return self._producer is not None

    def _acks(self) -> tuple[Any, bool]:
        acks = self.producer_config.get("acks", "all")
        if isinstance(acks, str) and acks.isdigit():
            acks = int(acks)
        idempotent = self.producer_config.get("enable_idempotence", True)
        if idempotent and acks != "all":
            # aiokafka refuses idempotence with anything weaker
            logger.warning(
                "enable_idempotence requires acks=all, overriding acks=%s", acks,
                extra={"worker_name": self.client_name},
            )
            acks = "all"
        return acks, idempotent

    def _build_kafka_config(self) -> dict[str, Any]:
        acks, idempotent = self._acks()
        settings = self.producer_config
        cfg: dict[str, Any] = {
            "bootstrap_servers": self.config.bootstrap_servers,
            "client_id": self.client_name,
            "request_timeout_ms": self.config.request_timeout_ms,
            "metadata_max_age_ms": self.config.metadata_max_age_ms,
            "connections_max_idle_ms": self.config.connections_max_idle_ms,
            "acks": acks,
            "enable_idempotence": idempotent,
            "retry_backoff_ms": settings.get("retry_backoff_ms", 1000),
        }
        cfg.update({key: settings[key] for key in PASSTHROUGH_KEYS if key in settings})
        if "compression_type" in settings:
            compression = settings["compression_type"]
            cfg["compression_type"] = None if compression == "none" else compression
        cfg.update(build_kafka_security_config(self.config))
        return cfg

    async def start(self) -> None:
        if self.is_started:
            logger.warning("Producer already started", extra={"worker_name": self.client_name})
            return

        producer = AIOKafkaProducer(**self._build_kafka_config())
        await producer.start()
        self._producer = producer
        update_connection_status("producer", connected=True)
        logger.info(
            "Producer connected",
            extra={"worker_name": self.client_name, "bootstrap_servers": self.config.bootstrap_servers},
        )

    async def stop(self) -> None:
        """Flush and close. Never raises, so it is safe in finally blocks."""
        producer, self._producer = self._producer, None
        if producer is None:
            return

        try:
            await producer.flush()
            await producer.stop()
        except Exception as e:
            logger.error(
                "Error closing producer",
                extra={"worker_name": self.client_name, "error": str(e)},
                exc_info=True,
            )
        else:
            logger.info("Producer stopped", extra={"worker_name": self.client_name})
        finally:
            update_connection_status("producer", connected=False)

    def _require_started(self) -> AIOKafkaProducer:
        if not self.is_started:
            raise RuntimeError("Producer not started. Call start() first.")
        return self._producer

    def _serialize(self, value: Payload) -> bytes:
        if isinstance(value, bytes):
            return value
        if isinstance(value, DomainEvent):
            return self.codec.encode(value)
        if isinstance(value, BaseModel):
            return value.model_dump_json(by_alias=True).encode("utf-8")
        return json.dumps(value, default=json_serializer).encode("utf-8")

    async def send(
        self,
        topic: str,
        key: str | bytes | None,
        value: Payload,
        headers: Headers | None = None,
        partition: int | None = None,
    ) -> ProduceResult:
        producer = self._require_started()

        if isinstance(headers, dict):
            headers = [(name, text.encode("utf-8")) for name, text in headers.items()]

        try:
            metadata = await producer.send_and_wait(
                topic,
                key=_to_bytes(key),
                value=self._serialize(value),
                partition=partition,
                headers=list(headers) if headers else None,
            )
        except Exception as e:
            record_message_produced(topic, success=False)
            record_producer_error(topic, type(e).__name__)
            logger.error("Send failed", extra={"topic": topic, "error": str(e)}, exc_info=True)
            raise

        record_message_produced(topic)
        logger.debug(
            "Sent message",
            extra={"topic": metadata.topic, "partition": metadata.partition, "offset": metadata.offset},
        )
        return ProduceResult(topic=metadata.topic, partition=metadata.partition, offset=metadata.offset)

    async def flush(self) -> None:
        await self._require_started().flush()


__all__ = [
    "MessageProducer",
    "ProduceResult",
]
