"""
Probe and metrics endpoints for listener workers.

    GET /health/live   200 while the worker's event loop keeps heartbeating
    GET /health/ready  200 while the consumer is connected
    GET /metrics       Prometheus exposition

The aiohttp app runs on a dedicated thread with its own event loop, so a
worker sitting in retry backoff or a slow broker call still answers probes.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from datetime import UTC, datetime

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

logger = logging.getLogger(__name__)

# EADDRINUSE on Linux and Windows
_ADDRESS_IN_USE = (98, 10048)

STARTUP_WAIT_SECONDS = 5.0


@dataclass
class _ProbeState:
    consumer_connected: bool = False
    error: str | None = None
    last_heartbeat: float | None = None

    @property
    def ready(self) -> bool:
        return self.consumer_connected and self.error is None


def _now() -> str:
    return datetime.now(UTC).isoformat()


class HealthCheckServer:
    """
    Kubernetes probes plus /metrics for one worker process.

    Readiness follows set_ready(). set_error() pins the worker as not ready
    but answers 200 with the error, so the pod stays up for inspection.
    Liveness turns 503 when the last record_heartbeat() is older than
    heartbeat_timeout_seconds (0 disables the check).

    A port that is already taken falls back to a dynamic one; a server that
    cannot start at all is disabled with a warning instead of failing the
    worker.
    """

    def __init__(
        self,
        port: int | None = 8080,
        worker_name: str = "senik-admin",
        enabled: bool = True,
        heartbeat_timeout_seconds: float = 60.0,
        registry=REGISTRY,
    ):
        self.port = port
        self.worker_name = worker_name
        self.registry = registry
        self.heartbeat_timeout_seconds = heartbeat_timeout_seconds
        self._enabled = enabled and port is not None
        self._started_at = time.monotonic()

        self._state = _ProbeState()
        self._lock = threading.Lock()

        self._thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_requested: asyncio.Event | None = None
        self._bound = threading.Event()
        self._actual_port: int | None = None

    def set_ready(self, consumer_connected: bool) -> None:
        with self._lock:
            was_ready = self._state.ready
            self._state.consumer_connected = consumer_connected
            now_ready = self._state.ready
        if was_ready != now_ready:
            logger.info("Readiness %s -> %s", was_ready, now_ready, extra={"worker_name": self.worker_name})

    def set_error(self, error_message: str) -> None:
        with self._lock:
            self._state.error = error_message
        logger.error("Worker marked not ready", extra={"worker_name": self.worker_name, "error": error_message})

    def clear_error(self) -> None:
        with self._lock:
            self._state.error = None

    def record_heartbeat(self) -> None:
        with self._lock:
            self._state.last_heartbeat = time.monotonic()

    def _snapshot(self) -> _ProbeState:
        with self._lock:
            return _ProbeState(**vars(self._state))

    async def handle_liveness(self, request: web.Request) -> web.Response:
        state = self._snapshot()
        body = {
            "status": "alive",
            "worker": self.worker_name,
            "uptime_seconds": int(time.monotonic() - self._started_at),
            "timestamp": _now(),
        }
        if self.heartbeat_timeout_seconds > 0 and state.last_heartbeat is not None:
            staleness = round(time.monotonic() - state.last_heartbeat, 1)
            if staleness > self.heartbeat_timeout_seconds:
                logger.warning(
                    "Event loop heartbeat stale (%ss)", staleness, extra={"worker_name": self.worker_name}
                )
                body.update(status="unhealthy", reason="event_loop_stale", heartbeat_staleness_seconds=staleness)
                return web.json_response(body, status=503)
        return web.json_response(body)

    async def handle_readiness(self, request: web.Request) -> web.Response:
        state = self._snapshot()
        if state.error:
            return web.json_response(
                {"status": "error", "worker": self.worker_name, "error": state.error, "timestamp": _now()}
            )
        return web.json_response(
            {
                "status": "ready" if state.ready else "not_ready",
                "worker": self.worker_name,
                "checks": {"consumer_connected": state.consumer_connected},
                "timestamp": _now(),
            },
            status=200 if state.ready else 503,
        )

    async def handle_metrics(self, request: web.Request) -> web.Response:
        # Passed as a raw header: aiohttp's content_type= rejects the charset parameter
        return web.Response(body=generate_latest(self.registry), headers={"Content-Type": CONTENT_TYPE_LATEST})

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health/live", self.handle_liveness)
        app.router.add_get("/health/ready", self.handle_readiness)
        app.router.add_get("/metrics", self.handle_metrics)
        return app

    async def _bind(self) -> tuple[web.AppRunner, int] | None:
        """Listen on the configured port, else a dynamic one. None if neither works."""
        candidates = [self.port] if self.port == 0 else [self.port, 0]
        for port in candidates:
            runner = web.AppRunner(self.create_app())
            await runner.setup()
            try:
                await web.TCPSite(runner, "0.0.0.0", port, reuse_address=True).start()
            except OSError as e:
                await runner.cleanup()
                if e.errno not in _ADDRESS_IN_USE:
                    raise
                logger.warning("Health port %s in use", port, extra={"worker_name": self.worker_name})
                continue
            addresses = runner.addresses
            return runner, addresses[0][1] if addresses else port
        return None

    async def _serve(self) -> None:
        bound = await self._bind()
        if bound is None:
            return
        runner, self._actual_port = bound
        logger.info("Health server listening", extra={"worker_name": self.worker_name, "port": self._actual_port})
        self._bound.set()
        try:
            await self._stop_requested.wait()
        finally:
            await runner.cleanup()

    def _thread_main(self) -> None:
        loop = asyncio.new_event_loop()
        self._loop = loop
        try:
            loop.run_until_complete(self._serve())
        except Exception:
            logger.exception("Health server crashed", extra={"worker_name": self.worker_name})
        finally:
            self._bound.set()
            self._loop = None
            loop.close()

    async def start(self) -> None:
        if not self._enabled or (self._thread is not None and self._thread.is_alive()):
            return

        self._bound.clear()
        self._stop_requested = asyncio.Event()
        self._thread = threading.Thread(
            target=self._thread_main, name=f"health-{self.worker_name}", daemon=True
        )
        self._thread.start()

        await asyncio.to_thread(self._bound.wait, STARTUP_WAIT_SECONDS)
        if self._actual_port is None:
            logger.warning(
                "Health server failed to start, continuing without probes",
                extra={"worker_name": self.worker_name, "port": self.port},
            )
            self._enabled = False

    async def stop(self) -> None:
        thread, self._thread = self._thread, None
        if thread is None:
            return

        loop = self._loop
        if loop is not None:
            try:
                loop.call_soon_threadsafe(self._stop_requested.set)
            except RuntimeError:
                # Loop closed between the check and the call
                pass
        await asyncio.to_thread(thread.join, STARTUP_WAIT_SECONDS)
        if thread.is_alive():
            logger.warning("Health server thread did not exit", extra={"worker_name": self.worker_name})
        self._actual_port = None


__all__ = ["HealthCheckServer"]
