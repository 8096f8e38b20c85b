"""Per-channel processing lock with a FIFO of waiting messages."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from bugbuster.log import get_logger

logger = get_logger(__name__)

P = TypeVar("P")

Runner = Callable[[str, P], Awaitable[str]]


@dataclass
class QueueEntry(Generic[P]):
    payload: P
    future: asyncio.Future[str]


class MessageQueue(Generic[P]):
    """Serializes runs per channel without blocking ingestion.

    At most one ``runner`` call is in flight per channel. A message arriving
    while its channel is locked is parked and its ``submit`` call resolves
    once the entry has been processed, in arrival order. Channels are fully
    independent of each other.

    The lock check-and-set in ``submit`` runs before the first ``await``, so
    no further synchronization is needed on a single event loop.
    """

    def __init__(self, runner: Runner[P]):
        self._runner = runner
        self._locked: set[str] = set()
        self._pending: dict[str, deque[QueueEntry[P]]] = {}
        self._drainers: dict[str, asyncio.Task[None]] = {}

    def is_locked(self, channel_id: str) -> bool:
        return channel_id in self._locked

    def pending_count(self, channel_id: str) -> int:
        return len(self._pending.get(channel_id, ()))

    async def submit(self, channel_id: str, payload: P) -> str:
        """Run ``payload`` for the channel now, or after the messages queued before it."""
        if channel_id in self._locked:
            future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
            queue = self._pending.setdefault(channel_id, deque())
            queue.append(QueueEntry(payload, future))
            logger.info("message_queued", channel_id=channel_id, position=len(queue))
            return await future

        self._locked.add(channel_id)
        try:
            return await self._runner(channel_id, payload)
        finally:
            self._release(channel_id)

    def _release(self, channel_id: str) -> None:
        self._locked.discard(channel_id)
        if not self._pending.get(channel_id):
            self._pending.pop(channel_id, None)
            return

        # Re-acquire for the drainer before anyone else can observe the channel unlocked
        self._locked.add(channel_id)
        task = asyncio.get_running_loop().create_task(self._drain(channel_id))
        self._drainers[channel_id] = task
        task.add_done_callback(lambda t: self._forget_drainer(channel_id, t))

    def _forget_drainer(self, channel_id: str, task: asyncio.Task[None]) -> None:
        if self._drainers.get(channel_id) is task:
            del self._drainers[channel_id]

    async def _drain(self, channel_id: str) -> None:
        queue = self._pending[channel_id]
        try:
            while queue:
                entry = queue.popleft()
                if entry.future.done():
                    # Caller went away (cancelled) before its turn
                    continue
                logger.info("message_dequeued", channel_id=channel_id, remaining=len(queue))
                try:
                    result = await self._runner(channel_id, entry.payload)
                except asyncio.CancelledError:
                    if not entry.future.done():
                        entry.future.cancel()
                    raise
                except Exception as e:
                    logger.error("queued_run_failed", channel_id=channel_id, error=str(e))
                    if not entry.future.done():
                        entry.future.set_exception(e)
                else:
                    if not entry.future.done():
                        entry.future.set_result(result)
        finally:
            for entry in queue:
                if not entry.future.done():
                    entry.future.cancel()
            self._pending.pop(channel_id, None)
            self._locked.discard(channel_id)

    async def close(self) -> None:
        """Cancel drain tasks; callers still waiting get ``CancelledError``."""
        tasks = list(self._drainers.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for queue in self._pending.values():
            for entry in queue:
                if not entry.future.done():
                    entry.future.cancel()
        self._pending.clear()
