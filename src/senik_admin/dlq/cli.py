"""Dead-letter topic management CLI.

Lists dead-lettered records with their failure metadata and replays a single
record back to the topic it came from.
"""

import argparse
import asyncio
import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from aiokafka import AIOKafkaConsumer, TopicPartition
from dotenv import load_dotenv

from config.config import AdminConfig, load_config
from core.errors.exceptions import PipelineError
from senik_admin.common.kafka_config import build_kafka_security_config
from senik_admin.common.producer import MessageProducer
from senik_admin.common.types import ProduceResult
from senik_admin.dlq.records import parse_failure_headers, strip_failure_headers
from senik_admin.domain.codec import EventCodec, get_codec
from senik_admin.listeners import LISTENER_NAME

# cli.py is at src/senik_admin/dlq/cli.py, so the project root is 4 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent

logger = logging.getLogger(__name__)

# Seconds to wait for the record at a replay offset before giving up
FETCH_TIMEOUT_SECONDS = 10.0


def describe_record(record, codec: EventCodec) -> dict[str, Any]:
    """Summarize a dead-letter record for display."""
    failure = parse_failure_headers(list(record.headers or []))

    try:
        event = codec.decode(record.value)
        event_type = event.type
        event_id = str(event.event_id)
    except PipelineError:
        event_type = None
        event_id = None

    return {
        "partition": record.partition,
        "offset": record.offset,
        "timestamp": datetime.fromtimestamp(record.timestamp / 1000, tz=UTC).isoformat(),
        "key": record.key.decode("utf-8", errors="replace") if record.key else None,
        "original_topic": failure.get("original-topic"),
        "original_partition": failure.get("original-partition"),
        "original_offset": failure.get("original-offset"),
        "error_type": failure.get("exception-fqcn"),
        "error_message": failure.get("exception-message"),
        "error_category": failure.get("error-category"),
        "attempts": int(failure["attempts"]) if failure.get("attempts") else None,
        "outcome": failure.get("outcome"),
        "failed_at": failure.get("failed-at"),
        "event_type": event_type,
        "event_id": event_id,
    }


class DeadLetterManager:
    """Reads and replays records on one dead-letter topic."""

    def __init__(self, config: AdminConfig, source_topic: str, codec: EventCodec | None = None):
        self.config = config
        self.source_topic = source_topic
        self.dead_letter_topic = config.get_dead_letter_topic(source_topic)
        self.codec = codec or get_codec()

    def _consumer_config(self) -> dict:
        # No group: partitions are assigned manually and nothing is committed
        consumer_config = {
            "bootstrap_servers": self.config.bootstrap_servers,
            "group_id": None,
            "enable_auto_commit": False,
            "auto_offset_reset": "earliest",
            "request_timeout_ms": self.config.request_timeout_ms,
        }
        consumer_config.update(build_kafka_security_config(self.config))
        return consumer_config

    async def list_records(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Read the dead-letter topic from the beginning up to its current end."""
        consumer = AIOKafkaConsumer(**self._consumer_config())
        await consumer.start()

        try:
            partitions = consumer.partitions_for_topic(self.dead_letter_topic) or set()
            topic_partitions = [TopicPartition(self.dead_letter_topic, p) for p in sorted(partitions)]
            if not topic_partitions:
                logger.warning("Dead-letter topic %s not found", self.dead_letter_topic)
                return []

            consumer.assign(topic_partitions)
            beginning_offsets = await consumer.beginning_offsets(topic_partitions)
            end_offsets = await consumer.end_offsets(topic_partitions)
            await consumer.seek_to_beginning(*topic_partitions)

            remaining = {tp for tp in topic_partitions if beginning_offsets[tp] < end_offsets[tp]}
            records: list[dict[str, Any]] = []

            while remaining and (limit is None or len(records) < limit):
                data = await consumer.getmany(*remaining, timeout_ms=1000)
                if not data:
                    break
                for tp, batch in data.items():
                    for record in batch:
                        if record.offset < end_offsets[tp]:
                            records.append(describe_record(record, self.codec))
                    if batch and batch[-1].offset + 1 >= end_offsets[tp]:
                        remaining.discard(tp)

            records.sort(key=lambda r: (r["partition"], r["offset"]))
            return records[:limit] if limit is not None else records

        finally:
            await consumer.stop()

    async def _fetch(self, partition: int, offset: int):
        tp = TopicPartition(self.dead_letter_topic, partition)
        consumer = AIOKafkaConsumer(**self._consumer_config())
        await consumer.start()

        try:
            consumer.assign([tp])
            consumer.seek(tp, offset)
            record = await asyncio.wait_for(consumer.getone(tp), timeout=FETCH_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            raise ValueError(
                f"No dead-letter record at {self.dead_letter_topic}:{partition}@{offset}"
            ) from None
        finally:
            await consumer.stop()

        if record.offset != offset:
            # Offset was compacted or deleted; the broker returned the next one
            raise ValueError(
                f"No dead-letter record at {self.dead_letter_topic}:{partition}@{offset}"
            )
        return record

    async def replay(self, partition: int, offset: int) -> ProduceResult:
        """Send the record at partition/offset back to its original topic.

        Key and value are replayed unchanged; dlt-* failure headers are dropped.
        """
        record = await self._fetch(partition, offset)
        failure = parse_failure_headers(list(record.headers or []))
        target_topic = failure.get("original-topic") or self.source_topic

        producer = MessageProducer(self.config, client_name="senik-admin-dlq-cli", codec=self.codec)
        await producer.start()
        try:
            result = await producer.send(
                target_topic,
                key=record.key,
                value=record.value,
                headers=strip_failure_headers(list(record.headers or [])),
            )
        finally:
            await producer.stop()

        logger.info(
            "Replayed dead-letter record",
            extra={
                "dead_letter_topic": self.dead_letter_topic,
                "dead_letter_partition": partition,
                "dead_letter_offset": offset,
                "topic": result.topic,
                "partition": result.partition,
                "offset": result.offset,
            },
        )
        return result


def _print_records(records: list[dict[str, Any]], dead_letter_topic: str) -> None:
    if not records:
        print(f"No records found in {dead_letter_topic}.")
        return

    print(f"\nDead-letter records in {dead_letter_topic}\n")
    print(f"{'PARTITION':>9}  {'OFFSET':>8}  {'ORIGINAL TOPIC':<20}  {'ATTEMPTS':>8}  ERROR TYPE")
    for r in records:
        print(
            f"{r['partition']:>9}  {r['offset']:>8}  {(r['original_topic'] or '-'):<20}  "
            f"{r['attempts'] if r['attempts'] is not None else '-':>8}  {r['error_type'] or '-'}"
        )
    print(f"\nTotal records: {len(records)}")


async def cmd_list(args: argparse.Namespace, manager: DeadLetterManager) -> int:
    records = await manager.list_records(limit=args.limit)
    if args.json:
        print(json.dumps(records, indent=2))
    else:
        _print_records(records, manager.dead_letter_topic)
    return 0


async def cmd_replay(args: argparse.Namespace, manager: DeadLetterManager) -> int:
    try:
        result = await manager.replay(args.partition, args.offset)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    print(
        f"Replayed {manager.dead_letter_topic}:{args.partition}@{args.offset} "
        f"to {result.topic}:{result.partition}@{result.offset}"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SENIK-ADMIN dead-letter management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # List dead-lettered records for senik.events
    python -m senik_admin.dlq.cli list

    # First 20 records as JSON
    python -m senik_admin.dlq.cli list --limit 20 --json

    # Replay the record at offset 42 of partition 0
    python -m senik_admin.dlq.cli replay --partition 0 --offset 42
        """,
    )
    parser.add_argument(
        "--topic",
        default=None,
        help="Source topic whose dead letters to manage (default: listener topic from config)",
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")

    subparsers = parser.add_subparsers(dest="command", required=True, help="Available commands")

    parser_list = subparsers.add_parser("list", help="List dead-letter records")
    parser_list.add_argument("--limit", type=int, default=None, help="Maximum records to show")
    parser_list.add_argument("--json", action="store_true", help="Output as JSON")
    parser_list.set_defaults(func=cmd_list)

    parser_replay = subparsers.add_parser("replay", help="Replay one record to its original topic")
    parser_replay.add_argument("--offset", type=int, required=True, help="Dead-letter record offset")
    parser_replay.add_argument("--partition", type=int, default=0, help="Dead-letter partition (default: 0)")
    parser_replay.set_defaults(func=cmd_replay)

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv(PROJECT_ROOT / ".env")
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    args = build_parser().parse_args(argv)
    config = load_config(config_path=args.config)
    manager = DeadLetterManager(config, args.topic or config.get_topic(LISTENER_NAME))

    try:
        return asyncio.run(args.func(args, manager))
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
