"""Dead-letter publisher for messages the consumer could not process."""

import asyncio
import logging

from aiokafka import AIOKafkaProducer

from config.config import AdminConfig
from core.errors.exceptions import DeadLetterPublishError
from senik_admin.common.kafka_config import build_kafka_security_config
from senik_admin.common.metrics import record_dead_letter, record_dead_letter_failure
from senik_admin.common.types import ProduceResult
from senik_admin.dlq.records import DeadLetterRecord

logger = logging.getLogger(__name__)


class DeadLetterPublisher:
    """Lazy-initialized Kafka producer for dead-letter routing.

    Only connects on first publish, so workers that never fail never open a
    second connection. Safe to share between workers of one process.

    Records go to ``<original topic><suffix>`` (``senik.events.DLT``) with the
    original key, value and headers plus dlt-* failure headers. When
    same_partition is set the original partition number is kept.
    """

    def __init__(self, config: AdminConfig, worker_id: str = ""):
        self._config = config
        self._worker_id = worker_id
        self._producer: AIOKafkaProducer | None = None
        self._start_lock = asyncio.Lock()

    def dead_letter_topic(self, topic: str) -> str:
        return self._config.get_dead_letter_topic(topic)

    async def _ensure_started(self) -> None:
        if self.is_started:
            return

        async with self._start_lock:
            if self.is_started:
                return

            logger.info(
                "Initializing dead-letter producer",
                extra={"worker_name": self._worker_id},
            )

            producer_config = {
                "bootstrap_servers": self._config.bootstrap_servers,
                "request_timeout_ms": self._config.request_timeout_ms,
                "metadata_max_age_ms": self._config.metadata_max_age_ms,
                "connections_max_idle_ms": self._config.connections_max_idle_ms,
                "acks": "all",
                "enable_idempotence": True,
                "retry_backoff_ms": 1000,
            }
            producer_config.update(build_kafka_security_config(self._config))

            producer = AIOKafkaProducer(**producer_config)
            await producer.start()
            self._producer = producer

            logger.info(
                "Dead-letter producer started successfully",
                extra={"bootstrap_servers": self._config.bootstrap_servers},
            )

    async def publish(self, record: DeadLetterRecord) -> ProduceResult:
        """Publish a dead-letter record.

        Raises:
            DeadLetterPublishError: The producer could not start or the broker
                rejected the record. Never retried here.
        """
        original = record.message
        dlt_topic = self.dead_letter_topic(original.topic)
        partition = original.partition if self._config.dead_letter_same_partition else None

        try:
            await self._ensure_started()
            metadata = await self._producer.send_and_wait(
                dlt_topic,
                key=original.key,
                value=original.value,
                partition=partition,
                headers=record.to_headers(),
            )
        except Exception as e:
            record_dead_letter_failure(dlt_topic)
            raise DeadLetterPublishError(
                f"Failed to publish to dead-letter topic {dlt_topic}",
                cause=e,
                context={
                    "dead_letter_topic": dlt_topic,
                    "original_topic": original.topic,
                    "original_partition": original.partition,
                    "original_offset": original.offset,
                },
            ) from e

        record_dead_letter(dlt_topic, record.outcome.value, record.error_category.value)

        logger.info(
            "Message sent to dead-letter topic",
            extra={
                "dead_letter_topic": metadata.topic,
                "dead_letter_partition": metadata.partition,
                "dead_letter_offset": metadata.offset,
                "original_topic": original.topic,
                "original_partition": original.partition,
                "original_offset": original.offset,
                "error_category": record.error_category.value,
                "error_type": record.exception_type,
                "attempt": record.attempts,
                "outcome": record.outcome.value,
            },
        )

        return ProduceResult(
            topic=metadata.topic,
            partition=metadata.partition,
            offset=metadata.offset,
        )

    async def stop(self) -> None:
        if not self.is_started:
            return

        try:
            await self._producer.flush()
            await self._producer.stop()
            logger.info("Dead-letter producer stopped successfully")
        except Exception:
            logger.error("Error stopping dead-letter producer", exc_info=True)
        finally:
            self._producer = None

    @property
    def is_started(self) -> bool:
        return self._producer is not None
