"""
Dead-letter record and its header encoding.

A dead-lettered message keeps the original key and value untouched; the
failure metadata travels in ``dlt-*`` headers appended after the original
headers, so the record can be replayed byte-for-byte.
"""

import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime

from core.types import ErrorCategory
from senik_admin.common.types import Outcome, PipelineMessage

HEADER_PREFIX = "dlt-"

ORIGINAL_TOPIC = "dlt-original-topic"
ORIGINAL_PARTITION = "dlt-original-partition"
ORIGINAL_OFFSET = "dlt-original-offset"
ORIGINAL_TIMESTAMP = "dlt-original-timestamp"
ORIGINAL_CONSUMER_GROUP = "dlt-original-consumer-group"
EXCEPTION_FQCN = "dlt-exception-fqcn"
EXCEPTION_MESSAGE = "dlt-exception-message"
EXCEPTION_STACKTRACE = "dlt-exception-stacktrace"
ERROR_CATEGORY = "dlt-error-category"
ATTEMPTS = "dlt-attempts"
OUTCOME = "dlt-outcome"
FAILED_AT = "dlt-failed-at"

# Keep failure headers well below the broker's max message size
MAX_STACKTRACE_CHARS = 8000
MAX_EXCEPTION_MESSAGE_CHARS = 2000


def _qualified_name(exc_type: type) -> str:
    module = exc_type.__module__
    if module == "builtins":
        return exc_type.__qualname__
    return f"{module}.{exc_type.__qualname__}"


@dataclass(frozen=True)
class DeadLetterRecord:
    """
    A message that could not be processed, with its failure metadata.

    Produced exactly once per message whose outcome is RECOVERED or EXHAUSTED.
    """

    message: PipelineMessage
    exception_type: str
    exception_message: str
    error_category: ErrorCategory
    attempts: int
    outcome: Outcome
    consumer_group: str = ""
    stacktrace: str = ""
    failed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_failure(
        cls,
        message: PipelineMessage,
        error: BaseException,
        error_category: ErrorCategory,
        attempts: int,
        outcome: Outcome,
        consumer_group: str = "",
    ) -> "DeadLetterRecord":
        stacktrace = "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        )
        text = str(error)
        if len(text) > MAX_EXCEPTION_MESSAGE_CHARS:
            text = f"{text[:MAX_EXCEPTION_MESSAGE_CHARS]}..."
        return cls(
            message=message,
            exception_type=_qualified_name(type(error)),
            exception_message=text,
            error_category=error_category,
            attempts=attempts,
            outcome=outcome,
            consumer_group=consumer_group,
            stacktrace=stacktrace[-MAX_STACKTRACE_CHARS:],
        )

    def failure_headers(self) -> list[tuple[str, bytes]]:
        headers = [
            (ORIGINAL_TOPIC, self.message.topic),
            (ORIGINAL_PARTITION, str(self.message.partition)),
            (ORIGINAL_OFFSET, str(self.message.offset)),
            (ORIGINAL_TIMESTAMP, str(self.message.timestamp)),
            (EXCEPTION_FQCN, self.exception_type),
            (EXCEPTION_MESSAGE, self.exception_message),
            (ERROR_CATEGORY, self.error_category.value),
            (ATTEMPTS, str(self.attempts)),
            (OUTCOME, self.outcome.value),
            (FAILED_AT, self.failed_at.isoformat()),
        ]
        if self.consumer_group:
            headers.append((ORIGINAL_CONSUMER_GROUP, self.consumer_group))
        if self.stacktrace:
            headers.append((EXCEPTION_STACKTRACE, self.stacktrace))
        return [(name, value.encode("utf-8")) for name, value in headers]

    def to_headers(self) -> list[tuple[str, bytes]]:
        """Original headers (minus stale dlt-* ones) followed by failure headers."""
        original = [
            (name, value)
            for name, value in (self.message.headers or [])
            if not name.startswith(HEADER_PREFIX)
        ]
        return original + self.failure_headers()


def parse_failure_headers(headers: list[tuple[str, bytes]] | None) -> dict[str, str]:
    """Extract dlt-* headers as text, keyed without the prefix."""
    failure = {}
    for name, value in headers or []:
        if name.startswith(HEADER_PREFIX):
            text = value.decode("utf-8", errors="replace") if value is not None else ""
            failure[name[len(HEADER_PREFIX):]] = text
    return failure


def strip_failure_headers(headers: list[tuple[str, bytes]] | None) -> list[tuple[str, bytes]]:
    return [(name, value) for name, value in headers or [] if not name.startswith(HEADER_PREFIX)]


__all__ = [
    "DeadLetterRecord",
    "parse_failure_headers",
    "strip_failure_headers",
    "HEADER_PREFIX",
]
