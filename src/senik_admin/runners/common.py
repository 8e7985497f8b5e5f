"""Shared worker lifecycle: retried startup and shutdown-event driven stop."""

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable

from core.logging.context import set_log_context

logger = logging.getLogger(__name__)

# Overridable with STARTUP_MAX_RETRIES / STARTUP_BACKOFF_SECONDS
DEFAULT_STARTUP_RETRIES = 5
DEFAULT_STARTUP_BACKOFF_BASE = 5  # seconds


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


async def _start_with_retry(
    start_fn: Callable[[], Awaitable[None]],
    label: str,
    max_retries: int | None = None,
    backoff_base: int | None = None,
    shutdown_event: asyncio.Event | None = None,
) -> None:
    """
    Await start_fn, retrying failures with linear backoff (base, 2*base, ...).

    Brokers are often still coming up when the container starts. The last
    failure is re-raised once max_retries attempts are used, or immediately
    when shutdown_event is already set.
    """
    max_retries = max_retries or _env_int("STARTUP_MAX_RETRIES", DEFAULT_STARTUP_RETRIES)
    backoff_base = backoff_base or _env_int("STARTUP_BACKOFF_SECONDS", DEFAULT_STARTUP_BACKOFF_BASE)

    attempt = 0
    while True:
        attempt += 1
        try:
            await start_fn()
            return
        except Exception as e:
            if shutdown_event is not None and shutdown_event.is_set():
                logger.info("Not retrying %s, shutdown in progress", label)
                raise
            if attempt >= max_retries:
                logger.error(
                    "Giving up on %s after %d attempts", label, attempt,
                    extra={"error": str(e), "max_attempts": max_retries},
                )
                raise
            delay = backoff_base * attempt
            logger.warning(
                "%s failed to start, retrying in %ss", label, delay,
                extra={"error": str(e), "attempt": attempt, "delay_ms": delay * 1000},
            )
            await asyncio.sleep(delay)


async def execute_worker_with_shutdown(
    worker_instance,
    stage_name: str,
    shutdown_event: asyncio.Event,
    instance_id: str | None = None,
) -> None:
    """
    Run worker_instance.start() until it returns or shutdown_event fires.

    The worker's stop() is awaited exactly once, whichever way start() ends.
    """
    if instance_id is None:
        label = stage_name
        set_log_context(stage=stage_name)
    else:
        label = f"{stage_name} (instance {instance_id})"
        set_log_context(stage=stage_name, worker_id=f"{stage_name}-{instance_id}")

    stopped = False

    async def stop_once() -> None:
        nonlocal stopped
        if not stopped:
            stopped = True
            await worker_instance.stop()

    async def stop_on_shutdown() -> None:
        await shutdown_event.wait()
        logger.info("Shutdown requested, stopping %s", label)
        await stop_once()

    watcher = asyncio.create_task(stop_on_shutdown())
    logger.info("Starting %s", label)
    try:
        await _start_with_retry(worker_instance.start, stage_name, shutdown_event=shutdown_event)
    except Exception:
        if not shutdown_event.is_set():
            raise
    finally:
        if not shutdown_event.is_set():
            watcher.cancel()
        # A watcher already inside stop() is allowed to finish
        for result in await asyncio.gather(watcher, return_exceptions=True):
            if isinstance(result, Exception):
                logger.error("Error stopping %s", label, exc_info=result)
        await stop_once()


__all__ = [
    "execute_worker_with_shutdown",
    "DEFAULT_STARTUP_RETRIES",
    "DEFAULT_STARTUP_BACKOFF_BASE",
]
