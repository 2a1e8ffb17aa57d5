"""In-process pub/sub keyed by recipient group (one group per user id).

Delivery is fire-and-forget: each subscriber owns a bounded queue and
events that do not fit are dropped for that subscriber only.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any

logger = logging.getLogger(__name__)


def group_for(user_id: int | str) -> str:
    return str(user_id)


class Broadcaster:
    """Fan-out of named events to the subscribers of one group."""

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._groups: dict[str, list[asyncio.Queue[dict[str, Any]]]] = {}
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Route emits from worker threads onto ``loop``."""
        self._loop = loop

    def subscribe(self, group: str) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._queue_size)
        with self._lock:
            self._groups.setdefault(group, []).append(queue)
        logger.debug("Subscriber joined group %s", group)
        return queue

    def unsubscribe(self, group: str, queue: asyncio.Queue[dict[str, Any]]) -> None:
        with self._lock:
            queues = self._groups.get(group, [])
            if queue in queues:
                queues.remove(queue)
            if not queues:
                self._groups.pop(group, None)

    def subscriber_count(self, group: str) -> int:
        with self._lock:
            return len(self._groups.get(group, []))

    def emit(self, group: str, event: str, data: Any) -> None:
        """Push ``event`` to every subscriber of ``group``; never blocks."""
        message = {"event": event, "data": data}
        loop = self._loop
        if loop is not None and not loop.is_closed() and not _is_current_loop(loop):
            loop.call_soon_threadsafe(self._deliver, group, message)
        else:
            self._deliver(group, message)

    def _deliver(self, group: str, message: dict[str, Any]) -> None:
        with self._lock:
            queues = list(self._groups.get(group, []))
        for q in queues:
            try:
                q.put_nowait(message)
            except asyncio.QueueFull:
                logger.debug("Dropped %s for slow subscriber in group %s", message["event"], group)


def _is_current_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False
