"""Transport-agnostic message types."""

from dataclasses import dataclass
from enum import Enum

__all__ = [
    "Outcome",
    "PipelineMessage",
    "ProduceResult",
    "from_consumer_record",
]


class Outcome(Enum):
    """Terminal disposition of a message.

    SUCCESS: handler succeeded (possibly after retries)
    RECOVERED: non-retryable failure, dead-lettered without backoff
    EXHAUSTED: retryable failure on the last permitted attempt, dead-lettered
    """

    SUCCESS = "success"
    RECOVERED = "recovered"
    EXHAUSTED = "exhausted"

    @property
    def dead_lettered(self) -> bool:
        return self is not Outcome.SUCCESS


@dataclass(frozen=True)
class PipelineMessage:
    """Message received from the transport, decoupled from aiokafka types."""

    topic: str
    partition: int
    offset: int
    timestamp: int
    key: bytes | None = None
    value: bytes | None = None
    headers: list[tuple[str, bytes]] | None = None


@dataclass(frozen=True)
class ProduceResult:
    """Confirmation of a published message."""

    topic: str
    partition: int
    offset: int


def from_consumer_record(record) -> PipelineMessage:
    """Convert aiokafka ConsumerRecord to PipelineMessage."""
    headers = None
    if hasattr(record, "headers") and record.headers:
        headers = [(k, v) for k, v in record.headers]

    return PipelineMessage(
        topic=record.topic,
        partition=record.partition,
        offset=record.offset,
        timestamp=record.timestamp,
        key=record.key,
        value=record.value,
        headers=headers,
    )
