"""Kafka consumer that settles one record at a time and commits it explicitly."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from aiokafka import AIOKafkaConsumer
from aiokafka.errors import IllegalStateError
from aiokafka.structs import ConsumerRecord, TopicPartition

from config.config import DEFAULT_MAX_POLL_INTERVAL_MS, DEFAULT_MAX_POLL_RECORDS, AdminConfig
from core.logging import MessageLogContext
from core.utils import generate_worker_id
from senik_admin.common.error_handler import MessageProcessor
from senik_admin.common.kafka_config import build_kafka_security_config
from senik_admin.common.metrics import (
    observe_processing_duration,
    record_message_consumed,
    update_assigned_partitions,
    update_connection_status,
    update_consumer_lag,
    update_consumer_offset,
)
from senik_admin.common.types import PipelineMessage, from_consumer_record

logger = logging.getLogger(__name__)

# Pause after a failed dead-letter publish before the message is redelivered
REDELIVERY_BACKOFF_SECONDS = 1.0

ASSIGNMENT_POLL_SECONDS = 0.5
FETCH_TIMEOUT_MS = 1000


class MessageConsumer:
    """
    Consumes the listener's topics and hands each record to a MessageProcessor.

    Records are processed in offset order within a partition. A record's
    offset is committed only after the processor returns a terminal outcome
    (success, or routed to the dead-letter topic). When the processor raises,
    the dead-letter publish failed: the consumer seeks back to that record,
    drops the rest of the partition's batch and pauses, so the record comes
    back on the next fetch. A failed commit is handled the same way, resuming
    after the settled record, so no fetched record is skipped unprocessed.
    """

    # consumer_config keys passed through to AIOKafkaConsumer when set
    PASSTHROUGH_KEYS = (
        "heartbeat_interval_ms",
        "fetch_min_bytes",
        "fetch_max_wait_ms",
        "partition_assignment_strategy",
    )

    def __init__(
        self,
        config: AdminConfig,
        listener_name: str,
        topics: list[str],
        group_id: str,
        message_handler: Callable[[PipelineMessage], Awaitable[None]],
        processor: MessageProcessor,
        instance_id: str | None = None,
    ):
        if not topics:
            raise ValueError("At least one topic must be specified")

        self.config = config
        self.listener_name = listener_name
        self.instance_id = instance_id
        self.topics = topics
        self.group_id = group_id
        self.message_handler = message_handler
        self.processor = processor
        self.consumer_config = config.get_consumer_config(listener_name)

        name = f"{listener_name}-{instance_id}" if instance_id else listener_name
        self.client_id = f"senik-admin-{name}"
        self.worker_id = generate_worker_id(name)

        self._consumer: AIOKafkaConsumer | None = None
        self._running = False
        # Held while a record is being settled; stop() waits for it
        self._in_flight = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._running and self._consumer is not None

    def _build_kafka_config(self) -> dict:
        settings = self.consumer_config
        cfg = {
            "bootstrap_servers": self.config.bootstrap_servers,
            "group_id": self.group_id,
            "client_id": self.client_id,
            "request_timeout_ms": self.config.request_timeout_ms,
            "metadata_max_age_ms": self.config.metadata_max_age_ms,
            "connections_max_idle_ms": self.config.connections_max_idle_ms,
            "enable_auto_commit": False,
            "auto_offset_reset": settings.get("auto_offset_reset", "earliest"),
            "max_poll_records": settings.get("max_poll_records", DEFAULT_MAX_POLL_RECORDS),
            "max_poll_interval_ms": settings.get("max_poll_interval_ms", DEFAULT_MAX_POLL_INTERVAL_MS),
            "session_timeout_ms": settings.get("session_timeout_ms", 45000),
        }
        cfg.update({key: settings[key] for key in self.PASSTHROUGH_KEYS if key in settings})
        cfg.update(build_kafka_security_config(self.config))
        return cfg

    async def start(self) -> None:
        """Connect and consume until stop() is called or the task is cancelled."""
        if self._running:
            logger.warning("Consumer already running", extra={"worker_name": self.listener_name})
            return

        self._consumer = AIOKafkaConsumer(*self.topics, **self._build_kafka_config())
        try:
            await self._consumer.start()
        except Exception:
            await self._discard_client()
            raise
        self._running = True
        update_connection_status("consumer", connected=True)
        logger.info(
            "Consumer connected",
            extra={
                "worker_name": self.listener_name,
                "group_id": self.group_id,
                "bootstrap_servers": self.config.bootstrap_servers,
            },
        )

        try:
            await self._consume_loop()
        except asyncio.CancelledError:
            logger.info("Consumer cancelled", extra={"worker_name": self.listener_name})
            raise
        except Exception:
            logger.exception("Consumer loop failed", extra={"worker_name": self.listener_name})
            raise
        finally:
            self._running = False

    async def stop(self) -> None:
        """Stop fetching, let the in-flight record finish, then close the client."""
        if self._consumer is None:
            return

        self._running = False
        try:
            async with self._in_flight:
                await self._consumer.stop()
        except Exception:
            logger.exception("Error closing consumer", extra={"worker_name": self.listener_name})
            raise
        else:
            logger.info("Consumer stopped", extra={"worker_name": self.listener_name})
        finally:
            update_connection_status("consumer", connected=False)
            update_assigned_partitions(self.group_id, 0)
            self._consumer = None

    async def _discard_client(self) -> None:
        """Close a client whose start() failed, so a retried start builds a fresh one."""
        client, self._consumer = self._consumer, None
        try:
            await client.stop()
        except Exception as e:
            logger.warning(
                "Error closing consumer after failed start",
                extra={"worker_name": self.listener_name, "error": str(e)},
            )

    async def _await_assignment(self) -> bool:
        """Block until the group rebalance assigns partitions. False if stopped first."""
        announced = False
        while self._running and self._consumer:
            assignment = self._consumer.assignment()
            if assignment:
                update_assigned_partitions(self.group_id, len(assignment))
                logger.info(
                    "Partitions assigned",
                    extra={
                        "group_id": self.group_id,
                        "partitions": sorted(f"{tp.topic}:{tp.partition}" for tp in assignment),
                    },
                )
                return True
            if not announced:
                logger.info("Waiting for partition assignment", extra={"group_id": self.group_id})
                announced = True
            await asyncio.sleep(ASSIGNMENT_POLL_SECONDS)
        return False

    async def _consume_loop(self) -> None:
        if not await self._await_assignment():
            return

        while self._running and self._consumer:
            try:
                if not await self._fetch_and_process_batch():
                    return
            except asyncio.CancelledError:
                raise
            except Exception:
                if not self._running:
                    # getmany() interrupted by stop()
                    return
                logger.exception("Fetch failed, retrying", extra={"group_id": self.group_id})
                await asyncio.sleep(1)

    async def _fetch_and_process_batch(self) -> bool:
        """
        Process one getmany() batch. Returns False if stop() was called mid-batch.

        A partition's remaining records are skipped after a rewind; they are
        fetched again from the rewound offset.
        """
        batch = await self._consumer.getmany(timeout_ms=FETCH_TIMEOUT_MS)
        for records in batch.values():
            for record in records:
                if not self._running:
                    return False
                if not await self._process_message(record):
                    break
        return True

    async def _process_message(self, record: ConsumerRecord) -> bool:
        """Settle one record and commit it. False when it was rewound instead."""
        key = record.key.decode("utf-8", errors="replace") if record.key else None
        with MessageLogContext(
            topic=record.topic,
            partition=record.partition,
            offset=record.offset,
            key=key,
            consumer_group=self.group_id,
        ):
            async with self._in_flight:
                started = time.perf_counter()
                try:
                    outcome = await self.processor.process(
                        from_consumer_record(record), self.message_handler
                    )
                except asyncio.CancelledError:
                    raise
                except Exception:
                    await self._rewind(
                        record,
                        record.offset,
                        "Dead-letter publish failed, message will be redelivered",
                    )
                    return False
                finally:
                    observe_processing_duration(
                        record.topic, self.group_id, time.perf_counter() - started
                    )

                try:
                    await self._commit_message(record)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    # Settled but not committed: resume right after it, the
                    # next commit on this partition covers it.
                    await self._rewind(
                        record,
                        record.offset + 1,
                        "Offset commit failed, refetching the rest of the partition",
                    )
                    return False
                record_message_consumed(record.topic, self.group_id, outcome.value)
                self._track_position(record)
                if outcome.dead_lettered:
                    logger.info(
                        "Committed dead-lettered message",
                        extra={"offset": record.offset, "outcome": outcome.value},
                    )
                return True

    async def _commit_message(self, record: ConsumerRecord) -> None:
        await self._consumer.commit({TopicPartition(record.topic, record.partition): record.offset + 1})

    async def _rewind(self, record: ConsumerRecord, position: int, reason: str) -> None:
        """Move the partition's fetch position to position and pause before the next fetch."""
        logger.error(
            reason,
            extra={
                "topic": record.topic,
                "partition": record.partition,
                "offset": record.offset,
                "seek_offset": position,
            },
            exc_info=True,
        )
        if self._consumer is not None:
            try:
                self._consumer.seek(TopicPartition(record.topic, record.partition), position)
            except IllegalStateError:
                # Revoked by a rebalance; the new owner resumes from the committed offset
                logger.warning(
                    "Partition no longer assigned, not seeking",
                    extra={"topic": record.topic, "partition": record.partition},
                )
        await asyncio.sleep(REDELIVERY_BACKOFF_SECONDS)

    def _track_position(self, record: ConsumerRecord) -> None:
        update_consumer_offset(record.topic, record.partition, self.group_id, record.offset)
        try:
            highwater = self._consumer.highwater(TopicPartition(record.topic, record.partition))
        except Exception as e:
            logger.debug("High watermark unavailable", extra={"error": str(e)})
            return
        if highwater is not None:
            update_consumer_lag(record.topic, record.partition, self.group_id, highwater - record.offset - 1)


__all__ = [
    "MessageConsumer",
    "REDELIVERY_BACKOFF_SECONDS",
]
