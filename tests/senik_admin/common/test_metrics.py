"""Tests for the metric helpers."""

from prometheus_client import REGISTRY

from senik_admin.common import metrics


def sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetricHelpers:

    def test_consumed_counts_by_outcome(self):
        labels = {"topic": "metrics.test", "consumer_group": "g", "outcome": "recovered"}
        before = sample("senik_messages_consumed_total", **labels)

        metrics.record_message_consumed("metrics.test", "g", "recovered")

        assert sample("senik_messages_consumed_total", **labels) == before + 1

    def test_partition_gauges_use_string_partition(self):
        metrics.update_consumer_offset("metrics.test", 3, "g", 41)
        metrics.update_consumer_lag("metrics.test", 3, "g", 7)

        assert sample("senik_consumer_offset", topic="metrics.test", partition="3", consumer_group="g") == 41
        assert sample("senik_consumer_lag", topic="metrics.test", partition="3", consumer_group="g") == 7

    def test_connection_status(self):
        metrics.update_connection_status("metrics-test", connected=True)
        assert sample("senik_connection_status", component="metrics-test") == 1

        metrics.update_connection_status("metrics-test", connected=False)
        assert sample("senik_connection_status", component="metrics-test") == 0

    def test_failed_send_counts_error(self):
        before = sample("senik_producer_errors_total", topic="metrics.test", error_type="send_failed")

        metrics.record_message_produced("metrics.test", success=False)

        assert sample("senik_producer_errors_total", topic="metrics.test", error_type="send_failed") == before + 1

    def test_processing_duration_observed(self):
        labels = {"topic": "metrics.test", "consumer_group": "g"}
        before = sample("senik_message_processing_duration_seconds_count", **labels)

        metrics.observe_processing_duration("metrics.test", "g", 0.02)

        assert sample("senik_message_processing_duration_seconds_count", **labels) == before + 1
