"""Composition root: wires listeners to consumers, retry policy and dead-letter routing.

Every listener the worker can run is listed in LISTENER_REGISTRY. Nothing is
discovered by scanning; adding a listener means adding a binding factory here.
"""

import asyncio
import logging
from collections.abc import Callable

from config.config import AdminConfig
from core.errors.classifiers import ExceptionClassifier
from core.resilience import RetryPolicy
from core.types import ErrorClassifier
from senik_admin.common.consumer import MessageConsumer
from senik_admin.common.error_handler import FailureHook, MessageProcessor, RecoverySink
from senik_admin.common.health import HealthCheckServer
from senik_admin.dlq.publisher import DeadLetterPublisher
from senik_admin.domain.codec import EventCodec
from senik_admin.listeners import ListenerBinding, income_calculation_binding
from senik_admin.runners.common import execute_worker_with_shutdown

logger = logging.getLogger(__name__)

BindingFactory = Callable[[AdminConfig, EventCodec | None], ListenerBinding]

LISTENER_REGISTRY: dict[str, BindingFactory] = {
    "income_calculation": income_calculation_binding,
}

# Seconds between heartbeats/readiness updates sent to the health server
HEARTBEAT_INTERVAL_SECONDS = 5.0


class ListenerWorker:
    """One consumer instance for a listener binding, with its dead-letter publisher."""

    def __init__(
        self,
        binding: ListenerBinding,
        consumer: MessageConsumer,
        publisher: DeadLetterPublisher | None = None,
        health_server: HealthCheckServer | None = None,
    ):
        self.binding = binding
        self.consumer = consumer
        self.publisher = publisher
        self.health_server = health_server
        self._heartbeat_task: asyncio.Task | None = None

    async def _heartbeat_loop(self) -> None:
        while True:
            self.health_server.record_heartbeat()
            self.health_server.set_ready(consumer_connected=self.consumer.is_running)
            await asyncio.sleep(HEARTBEAT_INTERVAL_SECONDS)

    async def start(self) -> None:
        """Run the consumer loop until it is stopped."""
        if self.health_server is not None:
            self.health_server.clear_error()
            if self._heartbeat_task is None:
                self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        try:
            await self.consumer.start()
        except Exception as e:
            if self.health_server is not None:
                self.health_server.set_error(f"{self.binding.name} consumer failed: {e}")
            raise

    async def stop(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None
            self.health_server.set_ready(consumer_connected=False)

        try:
            await self.consumer.stop()
        finally:
            if self.publisher is not None:
                await self.publisher.stop()


def build_worker(
    config: AdminConfig,
    binding: ListenerBinding,
    classifier: ErrorClassifier | None = None,
    retry_policy: RetryPolicy | None = None,
    recovery_sink: RecoverySink | None = None,
    failure_hook: FailureHook | None = None,
    health_server: HealthCheckServer | None = None,
    instance_id: str | None = None,
) -> ListenerWorker:
    """Build a ready-to-start worker for binding.

    Defaults: ExceptionClassifier and retry policy from config, and a
    DeadLetterPublisher owned (and stopped) by the worker.
    """
    publisher = None
    if recovery_sink is None:
        publisher = DeadLetterPublisher(config, worker_id=f"{binding.name}-{instance_id or 0}")
        recovery_sink = publisher

    processor = MessageProcessor(
        recovery_sink=recovery_sink,
        retry_policy=retry_policy or config.get_retry_policy(),
        classifier=classifier or ExceptionClassifier(classify_unknown=config.classify_unknown),
        failure_hook=failure_hook,
        consumer_group=binding.group_id,
    )

    consumer = MessageConsumer(
        config=config,
        listener_name=binding.name,
        topics=[binding.topic],
        group_id=binding.group_id,
        message_handler=binding.handle_message,
        processor=processor,
        instance_id=instance_id,
    )

    logger.info(
        "Built listener worker",
        extra={
            "worker_name": binding.name,
            "topic": binding.topic,
            "group_id": binding.group_id,
            "dead_letter_topic": config.get_dead_letter_topic(binding.topic),
            "max_attempts": processor.retry_policy.effective_max_attempts,
        },
    )

    return ListenerWorker(binding, consumer, publisher, health_server)


async def run_listener_worker(
    listener_name: str,
    config: AdminConfig,
    shutdown_event: asyncio.Event,
    codec: EventCodec | None = None,
    health_server: HealthCheckServer | None = None,
    instance_id: str | None = None,
) -> None:
    if listener_name not in LISTENER_REGISTRY:
        raise ValueError(
            f"Unknown listener: {listener_name}. Available listeners: {list(LISTENER_REGISTRY)}"
        )

    binding = LISTENER_REGISTRY[listener_name](config, codec)
    worker = build_worker(config, binding, health_server=health_server, instance_id=instance_id)
    await execute_worker_with_shutdown(
        worker,
        stage_name=listener_name,
        shutdown_event=shutdown_event,
        instance_id=instance_id,
    )


__all__ = [
    "LISTENER_REGISTRY",
    "ListenerWorker",
    "build_worker",
    "run_listener_worker",
]
