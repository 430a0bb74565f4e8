"""Polling loop that turns enumeration snapshots into descriptor deltas."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterable, Sequence
from typing import Any

from keywatch.core.delta import DescriptorDelta, diff
from keywatch.core.errors import DescriptorError, KeywatchError, TransportEnumerateError
from keywatch.core.model import DeviceDescriptor
from keywatch.transports.base import Transport

LOGGER = logging.getLogger(__name__)


class DeltaStream:
    """Async iterator over the deltas published by a :class:`Watcher`.

    Iteration ends once the watcher stops or the stream is closed.
    """

    def __init__(self, watcher: Watcher) -> None:
        self._watcher = watcher
        self._queue: asyncio.Queue[DescriptorDelta | None] = asyncio.Queue()
        self._finished = False
        self._exhausted = False

    def __aiter__(self) -> DeltaStream:
        return self

    async def __anext__(self) -> DescriptorDelta:
        if self._exhausted:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is None:
            self._exhausted = True
            raise StopAsyncIteration
        return item

    def close(self) -> None:
        self._watcher._unsubscribe(self)
        self._finish()

    def _publish(self, delta: DescriptorDelta) -> None:
        if not self._finished:
            self._queue.put_nowait(delta)

    def _finish(self) -> None:
        if not self._finished:
            self._finished = True
            self._queue.put_nowait(None)


def _normalize(raw_items: Iterable[Any]) -> tuple[DeviceDescriptor, ...]:
    descriptors: list[DeviceDescriptor] = []
    for raw in raw_items:
        try:
            descriptors.append(DeviceDescriptor.from_raw(raw))
        except DescriptorError as exc:
            LOGGER.warning("Ignoring enumerated device: %s", exc)
    return tuple(descriptors)


class Watcher:
    """Poll ``transport.enumerate`` and publish what changed between polls.

    A tick is dropped while watching is paused or while the previous
    enumeration is still outstanding, so enumerations never overlap. Without
    ``enumerate_timeout_s`` a call that never returns keeps every later tick
    dropped.
    """

    def __init__(self, transport: Transport, *, enumerate_timeout_s: float | None = None) -> None:
        self._transport = transport
        self._enumerate_timeout_s = enumerate_timeout_s
        self._paused = False
        self._in_progress = False
        self._can_wait = False
        self._generation = 0
        self._previous: tuple[DeviceDescriptor, ...] = ()
        self._subscribers: list[DeltaStream] = []
        self._task: asyncio.Task[None] | None = None
        self._enumeration: asyncio.Task[None] | None = None

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def enumerating(self) -> bool:
        return self._in_progress

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def snapshot(self) -> tuple[DeviceDescriptor, ...]:
        """Descriptors seen by the last published enumeration."""
        return self._previous

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def subscribe(self) -> DeltaStream:
        stream = DeltaStream(self)
        self._subscribers.append(stream)
        return stream

    def _unsubscribe(self, stream: DeltaStream) -> None:
        if stream in self._subscribers:
            self._subscribers.remove(stream)

    def start(self, period_s: float) -> None:
        if period_s <= 0:
            raise ValueError("period_s must be positive")
        if self.running:
            return
        LOGGER.info("Watching for devices every %.3fs", period_s)
        self._task = asyncio.get_running_loop().create_task(self._run(period_s), name="keywatch-watch")

    async def stop(self) -> None:
        """Stop polling and end every subscribed stream.

        An outstanding enumeration is left to finish; its result is dropped.
        """
        self._generation += 1
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        for stream in self._subscribers:
            stream._finish()
        self._subscribers.clear()
        LOGGER.info("Stopped watching for devices")

    async def _run(self, period_s: float) -> None:
        while True:
            self.tick()
            await asyncio.sleep(period_s)

    def tick(self) -> bool:
        """Start an enumeration unless one is outstanding or watching is paused."""
        if self._paused or self._in_progress:
            LOGGER.debug("Skipping tick (paused=%s, enumerating=%s)", self._paused, self._in_progress)
            return False
        self._in_progress = True
        self._enumeration = asyncio.get_running_loop().create_task(
            self._enumerate(self._generation), name="keywatch-enumerate"
        )
        return True

    async def _enumerate(self, generation: int) -> None:
        try:
            raw_items = await self._call_enumerate()
        except (KeywatchError, TimeoutError) as exc:
            LOGGER.warning("Device enumeration failed: %s", str(exc) or "timed out")
            return
        finally:
            self._in_progress = False

        if generation != self._generation:
            LOGGER.debug("Discarding enumeration finished after stop")
            return
        try:
            snapshot = _normalize(raw_items)
        except TypeError:
            LOGGER.warning("Device enumeration returned %r, expected a list of descriptors", raw_items)
            return
        self._can_wait = True
        self.publish(snapshot)

    async def _call_enumerate(self) -> Sequence[Any]:
        call = self._transport.enumerate(self._can_wait)
        if self._enumerate_timeout_s is not None:
            call = asyncio.wait_for(call, self._enumerate_timeout_s)
        try:
            return await call
        except (KeywatchError, TimeoutError):
            raise
        except Exception as exc:
            raise TransportEnumerateError(f"Enumerating devices failed: {exc}") from exc

    def publish(self, snapshot: Sequence[DeviceDescriptor]) -> DescriptorDelta:
        """Diff ``snapshot`` against the previous one and notify subscribers."""
        delta = diff(self._previous, snapshot)
        self._previous = tuple(snapshot)
        if delta:
            LOGGER.debug("Devices added=%d removed=%d", len(delta.added), len(delta.removed))
            for stream in list(self._subscribers):
                stream._publish(delta)
        return delta
