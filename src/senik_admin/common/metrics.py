"""
Prometheus metrics for the admin listeners.

Everything registers in the default prometheus_client registry, which the
health server exposes on /metrics. Callers use the record_*/update_* helpers
rather than the metric objects so label names stay in one place.
"""

from prometheus_client import Counter, Gauge, Histogram

_CONSUMER_LABELS = ["topic", "consumer_group"]
_PARTITION_LABELS = ["topic", "partition", "consumer_group"]

_consumed = Counter(
    "senik_messages_consumed_total",
    "Messages that reached a terminal outcome",
    labelnames=[*_CONSUMER_LABELS, "outcome"],
)
_processing_errors = Counter(
    "senik_processing_errors_total",
    "Handler failures by error category",
    labelnames=[*_CONSUMER_LABELS, "error_category"],
)
_retries = Counter(
    "senik_retry_attempts_total",
    "Handler invocations after a retryable failure",
    labelnames=_CONSUMER_LABELS,
)
_processing_seconds = Histogram(
    "senik_message_processing_duration_seconds",
    "Wall time per message, backoff and dead-lettering included",
    labelnames=_CONSUMER_LABELS,
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
)

_lag = Gauge(
    "senik_consumer_lag",
    "Messages between the last processed offset and the high watermark",
    labelnames=_PARTITION_LABELS,
)
_offset = Gauge(
    "senik_consumer_offset",
    "Last processed offset",
    labelnames=_PARTITION_LABELS,
)
_assigned_partitions = Gauge(
    "senik_consumer_assigned_partitions",
    "Partitions currently assigned to the consumer",
    labelnames=["consumer_group"],
)
_connected = Gauge(
    "senik_connection_status",
    "1 while the Kafka client is started, 0 otherwise",
    labelnames=["component"],
)

_produced = Counter(
    "senik_messages_produced_total",
    "Messages sent to Kafka",
    labelnames=["topic"],
)
_producer_errors = Counter(
    "senik_producer_errors_total",
    "Failed sends by error type",
    labelnames=["topic", "error_type"],
)
_dead_lettered = Counter(
    "senik_dead_letter_messages_total",
    "Messages published to a dead-letter topic",
    labelnames=["topic", "outcome", "error_category"],
)
_dead_letter_failures = Counter(
    "senik_dead_letter_failures_total",
    "Dead-letter publications that failed",
    labelnames=["topic"],
)


def record_message_consumed(topic: str, consumer_group: str, outcome: str) -> None:
    _consumed.labels(topic=topic, consumer_group=consumer_group, outcome=outcome).inc()


def record_processing_error(topic: str, consumer_group: str, error_category: str) -> None:
    _processing_errors.labels(
        topic=topic, consumer_group=consumer_group, error_category=error_category
    ).inc()


def record_retry_attempt(topic: str, consumer_group: str) -> None:
    _retries.labels(topic=topic, consumer_group=consumer_group).inc()


def observe_processing_duration(topic: str, consumer_group: str, seconds: float) -> None:
    _processing_seconds.labels(topic=topic, consumer_group=consumer_group).observe(seconds)


def update_consumer_lag(topic: str, partition: int, consumer_group: str, lag: int) -> None:
    _lag.labels(topic=topic, partition=str(partition), consumer_group=consumer_group).set(lag)


def update_consumer_offset(topic: str, partition: int, consumer_group: str, offset: int) -> None:
    _offset.labels(topic=topic, partition=str(partition), consumer_group=consumer_group).set(offset)


def update_assigned_partitions(consumer_group: str, count: int) -> None:
    _assigned_partitions.labels(consumer_group=consumer_group).set(count)


def update_connection_status(component: str, connected: bool) -> None:
    _connected.labels(component=component).set(int(connected))


def record_message_produced(topic: str, success: bool = True) -> None:
    _produced.labels(topic=topic).inc()
    if not success:
        _producer_errors.labels(topic=topic, error_type="send_failed").inc()


def record_producer_error(topic: str, error_type: str) -> None:
    _producer_errors.labels(topic=topic, error_type=error_type).inc()


def record_dead_letter(topic: str, outcome: str, error_category: str) -> None:
    _dead_lettered.labels(topic=topic, outcome=outcome, error_category=error_category).inc()


def record_dead_letter_failure(topic: str) -> None:
    _dead_letter_failures.labels(topic=topic).inc()


__all__ = [
    "record_message_consumed",
    "record_processing_error",
    "record_retry_attempt",
    "observe_processing_duration",
    "update_consumer_lag",
    "update_consumer_offset",
    "update_assigned_partitions",
    "update_connection_status",
    "record_message_produced",
    "record_producer_error",
    "record_dead_letter",
    "record_dead_letter_failure",
]
