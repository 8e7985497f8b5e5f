"""
Resilient message processing: retry with backoff, then dead-letter.

MessageProcessor wraps a message handler with the consumer's error handling
policy:

    handler succeeds                     -> SUCCESS
    non-retryable failure (any attempt)  -> hook, dead-letter, RECOVERED
    retryable failure, attempts remain   -> hook, sleep interval(n), retry
    retryable failure, last attempt      -> hook, dead-letter, EXHAUSTED

The failure hook sees every failure exactly once. It is an observer: if it
raises, the error is logged and processing continues unchanged. The recovery
sink is not guarded; its failure propagates to the caller so the transport
can redeliver the message.

Backoff awaits inside the caller's task, so a worker retrying one message
takes no other message until the retry sequence resolves.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from core.errors.classifiers import ExceptionClassifier
from core.logging.utilities import log_exception, log_with_context
from core.resilience import DEFAULT_RETRY_POLICY, RetryPolicy
from core.types import ErrorCategory, ErrorClassifier
from senik_admin.common.metrics import record_processing_error, record_retry_attempt
from senik_admin.common.types import Outcome, PipelineMessage
from senik_admin.dlq.records import DeadLetterRecord

logger = logging.getLogger(__name__)

MessageHandler = Callable[[PipelineMessage], Awaitable[None]]
FailureHook = Callable[[Exception, PipelineMessage, int], None]
Sleep = Callable[[float], Awaitable[Any]]


class RecoverySink(Protocol):
    """Destination for messages that could not be processed."""

    async def publish(self, record: DeadLetterRecord) -> Any:
        ...


class MessageProcessor:
    """
    Applies retry, logging and dead-letter policy around a message handler.

    Args:
        recovery_sink: Receives one DeadLetterRecord per RECOVERED/EXHAUSTED message
        retry_policy: Attempt bound and backoff schedule
        classifier: Maps failures to ErrorCategory (default: ExceptionClassifier)
        failure_hook: Called as hook(error, message, attempt) for every failure
            (default: structured log record)
        sleep: Awaitable sleep used for backoff (default: asyncio.sleep)
        consumer_group: Stamped on dead-letter records and metrics

    Example:
        >>> processor = MessageProcessor(recovery_sink=publisher)
        >>> outcome = await processor.process(message, binding.handle_message)
    """

    def __init__(
        self,
        recovery_sink: RecoverySink,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        classifier: ErrorClassifier | None = None,
        failure_hook: FailureHook | None = None,
        sleep: Sleep = asyncio.sleep,
        consumer_group: str = "",
    ):
        self.recovery_sink = recovery_sink
        self.retry_policy = retry_policy
        self.classifier = classifier or ExceptionClassifier()
        self.failure_hook = failure_hook or self.log_failure
        self.consumer_group = consumer_group
        self._sleep = sleep

    async def process(self, message: PipelineMessage, handler: MessageHandler) -> Outcome:
        """
        Run handler on message until success or a terminal failure.

        Returns:
            Outcome.SUCCESS, Outcome.RECOVERED or Outcome.EXHAUSTED

        Raises:
            Whatever the recovery sink raises. Handler failures never escape.
        """
        attempt = 1
        while True:
            try:
                await handler(message)
            except Exception as error:
                category = self.classifier.classify_error(error)
                record_processing_error(message.topic, self.consumer_group, category.value)
                self._notify_failure(error, message, attempt)

                if not category.is_retryable:
                    return await self._recover(message, error, category, attempt, Outcome.RECOVERED)

                if not self.retry_policy.can_retry(attempt):
                    return await self._recover(message, error, category, attempt, Outcome.EXHAUSTED)

                delay_ms = self.retry_policy.interval_ms(attempt)
                logger.debug(
                    "Retrying message after backoff",
                    extra={"attempt": attempt, "delay_ms": delay_ms},
                )
                await self._sleep(self.retry_policy.interval_seconds(attempt))
                attempt += 1
                record_retry_attempt(message.topic, self.consumer_group)
                continue

            if attempt > 1:
                log_with_context(
                    logger,
                    logging.INFO,
                    "Message processed after retry",
                    attempt=attempt,
                    outcome=Outcome.SUCCESS.value,
                )
            return Outcome.SUCCESS

    def _notify_failure(self, error: Exception, message: PipelineMessage, attempt: int) -> None:
        try:
            self.failure_hook(error, message, attempt)
        except Exception as hook_error:
            # Observer only: a broken hook must not change the disposition
            logger.error(
                "Failure hook raised",
                extra={
                    "attempt": attempt,
                    "callback_error": str(hook_error),
                    "error_type": type(error).__name__,
                },
                exc_info=True,
            )

    async def _recover(
        self,
        message: PipelineMessage,
        error: Exception,
        category: ErrorCategory,
        attempt: int,
        outcome: Outcome,
    ) -> Outcome:
        record = DeadLetterRecord.from_failure(
            message,
            error,
            error_category=category,
            attempts=attempt,
            outcome=outcome,
            consumer_group=self.consumer_group,
        )
        start = time.perf_counter()
        await self.recovery_sink.publish(record)
        log_with_context(
            logger,
            logging.WARNING,
            "Message dead-lettered" if outcome is Outcome.RECOVERED
            else "Retries exhausted, message dead-lettered",
            attempt=attempt,
            outcome=outcome.value,
            error_category=category.value,
            error_type=type(error).__name__,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return outcome

    def log_failure(self, error: Exception, message: PipelineMessage, attempt: int) -> None:
        """Default failure hook: one structured record per failure."""
        category = self.classifier.classify_error(error)
        max_attempts = self.retry_policy.effective_max_attempts
        final = not category.is_retryable or not self.retry_policy.can_retry(attempt)
        log_exception(
            logger,
            error,
            f"Message handling failed (attempt {attempt}/{max_attempts})",
            level=logging.ERROR if final else logging.WARNING,
            include_traceback=final,
            error_category=category,
            attempt=attempt,
            max_attempts=max_attempts,
            topic=message.topic,
            partition=message.partition,
            offset=message.offset,
        )


__all__ = [
    "MessageProcessor",
    "MessageHandler",
    "FailureHook",
    "RecoverySink",
]
