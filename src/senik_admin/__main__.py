"""
Run SENIK-ADMIN event listeners.

    python -m senik_admin                       income calculation listener
    python -m senik_admin --count 3             three consumers, one group
    python -m senik_admin --log-to-stdout       containers: logs on stdout only
"""

import argparse
import asyncio
import logging
import os
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from config import AdminConfig, load_config, set_config
from core.logging.setup import log_worker_startup, setup_logging
from core.utils import generate_worker_id
from senik_admin.common.health import HealthCheckServer
from senik_admin.common.signals import setup_shutdown_signal_handlers
from senik_admin.runners.registry import LISTENER_REGISTRY, run_listener_worker

# src/senik_admin/__main__.py -> repository root
PROJECT_ROOT = Path(__file__).resolve().parents[2]

logger = logging.getLogger(__name__)

TRUTHY = ("true", "1", "yes")


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in TRUTHY


async def run_worker_pool(
    worker_fn: Callable[..., Coroutine[Any, Any, None]],
    count: int,
    worker_name: str,
    *args: Any,
    **kwargs: Any,
) -> None:
    """
    Run count copies of worker_fn, each with its own instance_id ("0", "1", ...).

    The copies join the same consumer group, so Kafka spreads partitions over
    them. Cancelling the pool cancels every copy and waits for them.
    """
    logger.info("Starting %d instance(s) of %s", count, worker_name, extra={"worker_count": count})
    tasks = [
        asyncio.create_task(
            worker_fn(*args, **kwargs, instance_id=str(i)),
            name=f"{worker_name}-{i}",
        )
        for i in range(count)
    ]
    try:
        await asyncio.gather(*tasks)
    except asyncio.CancelledError:
        logger.info("Worker pool cancelled", extra={"worker_name": worker_name})
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run SENIK-ADMIN event listeners",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--listener",
        choices=sorted(LISTENER_REGISTRY),
        default="income_calculation",
        help="Listener to run (default: income_calculation)",
    )
    parser.add_argument(
        "--count",
        "-c",
        type=int,
        default=None,
        help="Consumer instances sharing the group (default: listener concurrency from config)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="config.yaml to load (default: the packaged one)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Console log level (default: INFO)",
    )
    parser.add_argument(
        "--log-dir",
        default=None,
        help="Log directory (default: $LOG_DIR or ./logs)",
    )
    parser.add_argument(
        "--log-to-stdout",
        action="store_true",
        help="Log to stdout only, no files (also: LOG_TO_STDOUT=true)",
    )
    return parser.parse_args(argv)


def _setup_logging(args: argparse.Namespace, worker_id: str) -> None:
    setup_logging(
        name="senik_admin",
        stage=args.listener,
        domain="senik",
        log_dir=Path(args.log_dir or os.getenv("LOG_DIR") or "logs"),
        json_format=_env_flag("JSON_LOGS", "true"),
        console_level=getattr(logging, args.log_level),
        worker_id=worker_id,
        log_to_stdout=args.log_to_stdout or _env_flag("LOG_TO_STDOUT"),
    )


async def _serve(listener: str, config: AdminConfig, count: int) -> None:
    shutdown_event = asyncio.Event()
    setup_shutdown_signal_handlers(asyncio.get_running_loop(), shutdown_event)

    health_server = HealthCheckServer(
        port=config.health_port,
        worker_name=listener,
        enabled=config.health_enabled,
    )
    await health_server.start()
    try:
        await run_worker_pool(
            run_listener_worker,
            count,
            listener,
            listener,
            config,
            shutdown_event,
            health_server=health_server,
        )
    finally:
        await health_server.stop()


def main(argv: list[str] | None = None) -> int:
    load_dotenv(PROJECT_ROOT / ".env")
    args = parse_args(argv)
    _setup_logging(args, os.getenv("WORKER_ID") or generate_worker_id(args.listener))

    try:
        config = load_config(config_path=args.config)
    except (ValueError, FileNotFoundError) as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return 1
    set_config(config)

    topic = config.get_topic(args.listener)
    count = args.count or config.get_concurrency(args.listener)
    log_worker_startup(
        logger,
        args.listener,
        kafka_bootstrap_servers=config.bootstrap_servers,
        input_topic=topic,
        dead_letter_topic=config.get_dead_letter_topic(topic),
        consumer_group=config.get_consumer_group(args.listener),
        extra_config={"worker_count": count},
    )

    try:
        asyncio.run(_serve(args.listener, config, count))
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Interrupted, shutting down")
    except Exception as e:
        logger.error("Fatal error", extra={"error": str(e)}, exc_info=True)
        return 1
    finally:
        logger.info("SENIK-ADMIN shutdown complete")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
