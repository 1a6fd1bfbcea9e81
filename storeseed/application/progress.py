"""Progress channel.

Carries pipeline events from one producer (a running pipeline) to one
consumer (an SSE response, the CLI, a test). The channel accepts any
number of progress events followed by exactly one terminal event.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import structlog

from storeseed.domain.events import (
    CompleteEvent,
    ErrorEvent,
    HeartbeatEvent,
    PipelineEvent,
    ProgressEvent,
)
from storeseed.domain.exceptions import ChannelClosedError

logger = structlog.get_logger()

Producer = Callable[["ProgressChannel"], Awaitable[None]]


class ProgressChannel:
    """Single-producer, single-consumer event queue."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[PipelineEvent] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        """True once a terminal event has been published."""
        return self._closed

    async def publish(self, event: PipelineEvent) -> None:
        """Publish an event.

        Args:
            event: Event to deliver.

        Raises:
            ChannelClosedError: If a terminal event was already published.
        """
        if self._closed:
            raise ChannelClosedError()
        if event.is_terminal:
            self._closed = True
        await self._queue.put(event)

    async def progress(self, phase: str, current: int, total: int, message: str) -> None:
        """Publish a progress tick."""
        await self.publish(
            ProgressEvent(phase=phase, current=current, total=total, message=message)
        )

    async def complete(self, summary: dict[str, Any]) -> None:
        """Publish the Complete terminal event."""
        await self.publish(CompleteEvent(summary=summary))

    async def error(self, code: str, message: str, phase: str | None = None) -> None:
        """Publish the Error terminal event."""
        await self.publish(ErrorEvent(code=code, message=message, phase=phase))

    async def get(self) -> PipelineEvent:
        """Wait for the next event."""
        return await self._queue.get()


async def _run_producer(producer: Producer, channel: ProgressChannel) -> None:
    """Run a producer and make sure the channel ends with a terminal event."""
    try:
        await producer(channel)
    except Exception as e:
        logger.exception("Pipeline crashed", error=str(e))
        if not channel.closed:
            await channel.error("INTERNAL_ERROR", f"Unexpected error: {e}")
        return
    # A producer must end the stream itself
    if not channel.closed:
        logger.error("Pipeline returned without a terminal event")
        await channel.error(
            "PIPELINE_INCOMPLETE", "Pipeline ended without reporting completion"
        )


async def stream_events(
    producer: Producer,
    heartbeat_interval: float | None = None,
) -> AsyncIterator[PipelineEvent]:
    """Run a producer as a task and yield its events in order.

    The stream always ends with exactly one terminal event. If the
    consumer stops iterating early, the producer task is cancelled and
    no further remote calls are made.

    Args:
        producer: Coroutine function receiving the channel, usually a
            pipeline's ``run``.
        heartbeat_interval: Seconds without an event after which a
            heartbeat is yielded. None disables heartbeats.

    Yields:
        Pipeline events, and heartbeats when enabled.
    """
    channel = ProgressChannel()
    task = asyncio.create_task(_run_producer(producer, channel))
    pending: asyncio.Future[PipelineEvent] | None = None
    try:
        while True:
            if pending is None:
                pending = asyncio.ensure_future(channel.get())
            done, _ = await asyncio.wait({pending}, timeout=heartbeat_interval)
            if not done:
                # Keep the same get() pending so no event is lost
                yield HeartbeatEvent()
                continue
            event = pending.result()
            pending = None
            yield event
            if event.is_terminal:
                break
        await task
    finally:
        # Runs however the loop ends, including early consumer exit
        if pending is not None and not pending.done():
            pending.cancel()
        # A live task here means the consumer stopped iterating
        if not task.done():
            logger.info("Consumer stopped early, cancelling pipeline")
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
