"""Single-writer telemetry consumer.

Transport callbacks (MQTT network thread, Kafka poll thread) and the
HTTP ingestion route all hand events to this consumer. It is the only
code path that mutates the rain status: events are applied strictly in
arrival order, one at a time.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Tuple

import structlog

from services.aggregator.engine import RainEventEngine
from shared.errors import MalformedTelemetry
from shared.models.rain import TelemetryEvent

logger = structlog.get_logger(__name__)

_QueueItem = Tuple[TelemetryEvent, Optional["asyncio.Future[bool]"]]


class TelemetryConsumer:
    """Drains a queue of telemetry events into a :class:`RainEventEngine`.

    Usage::

        consumer = TelemetryConsumer(engine)
        await consumer.start()
        consumer.submit_threadsafe(event)    # from any thread
        applied = await consumer.publish(event)  # from the event loop
        await consumer.stop()
    """

    def __init__(self, engine: RainEventEngine) -> None:
        self._engine = engine
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional["asyncio.Queue[_QueueItem]"] = None
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the consume loop on the running event loop."""
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._running = True
        self._task = asyncio.create_task(self._consume_loop())
        logger.info("telemetry_consumer_started")

    async def stop(self) -> None:
        """Stop consuming. Events still queued are discarded."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        dropped = 0
        while self._queue is not None and not self._queue.empty():
            _, done = self._queue.get_nowait()
            dropped += 1
            if done is not None and not done.done():
                done.cancel()
        logger.info("telemetry_consumer_stopped", dropped=dropped)

    def submit_threadsafe(self, event: TelemetryEvent) -> None:
        """Enqueue *event* from a transport thread without waiting."""
        if not self._running or self._loop is None or self._queue is None:
            logger.warning("telemetry_dropped_consumer_stopped", channel=event.channel)
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, (event, None))
        except RuntimeError:
            # Loop already closed during shutdown
            logger.warning("telemetry_dropped_loop_closed", channel=event.channel)

    async def publish(self, event: TelemetryEvent) -> bool:
        """Enqueue *event* and wait until it has been applied.

        Returns whether the engine accepted the event (False for a
        malformed payload or an unknown channel).
        """
        if not self._running or self._queue is None:
            raise RuntimeError("telemetry consumer is not running")
        done: "asyncio.Future[bool]" = asyncio.get_running_loop().create_future()
        await self._queue.put((event, done))
        return await done

    # ── internals ────────────────────────────────────────────
    async def _consume_loop(self) -> None:
        assert self._queue is not None
        while True:
            event, done = await self._queue.get()
            try:
                applied = self._handle(event)
            finally:
                self._queue.task_done()
            if done is not None and not done.done():
                done.set_result(applied)

    def _handle(self, event: TelemetryEvent) -> bool:
        try:
            applied = self._engine.apply(event)
        except MalformedTelemetry as exc:
            logger.warning(
                "malformed_telemetry",
                channel=event.channel,
                reason=exc.reason,
                payload=exc.payload,
            )
            return False
        except Exception:
            logger.exception("telemetry_handler_error", channel=event.channel)
            return False

        if applied:
            logger.debug("telemetry_applied", channel=event.channel, payload=event.payload)
        return applied
