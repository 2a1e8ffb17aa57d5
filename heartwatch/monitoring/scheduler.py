"""Heartbeat production: runs checkers, applies retry / maintenance policy,
stores the result and hands it to the broadcaster.

Checkers only classify. Turning a failure into PENDING (retry budget left)
or DOWN happens here.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .errors import CheckError
from .models import Heartbeat, Monitor, Status

if TYPE_CHECKING:
    from ..orchestrator.server import ServerContext

logger = logging.getLogger(__name__)

MAINTENANCE_MSG = "Monitor under maintenance"

_IMPORTANT_TRANSITIONS = {
    (Status.UP, Status.DOWN),
    (Status.DOWN, Status.UP),
    (Status.PENDING, Status.DOWN),
    (Status.UP, Status.MAINTENANCE),
    (Status.DOWN, Status.MAINTENANCE),
    (Status.MAINTENANCE, Status.UP),
    (Status.MAINTENANCE, Status.DOWN),
}


def is_important_beat(previous: Status | None, current: Status) -> bool:
    """First beat, or a transition worth surfacing to the user."""
    if previous is None:
        return True
    return (previous, current) in _IMPORTANT_TRANSITIONS


def seconds_between(earlier: str, later: str) -> int:
    delta = datetime.fromisoformat(later) - datetime.fromisoformat(earlier)
    return max(0, int(delta.total_seconds()))


class HeartbeatPipeline:
    """Produces one stored heartbeat per ``beat`` call."""

    def __init__(self, context: ServerContext) -> None:
        self.context = context
        self._retries: dict[int, int] = {}
        self._lock = threading.Lock()

    def beat(self, monitor: Monitor) -> Heartbeat:
        store = self.context.store
        previous = store.get_last_heartbeat(monitor.id)
        heartbeat = Heartbeat(monitor_id=monitor.id)

        if self.context.is_under_maintenance(monitor.id):
            heartbeat.status = Status.MAINTENANCE
            heartbeat.msg = MAINTENANCE_MSG
        else:
            self._run_check(monitor, heartbeat)

        heartbeat.important = is_important_beat(
            previous.status if previous else None, heartbeat.status,
        )
        heartbeat.duration = seconds_between(previous.time, heartbeat.time) if previous else 0

        store.save_heartbeat(heartbeat)
        if heartbeat.important:
            logger.info(
                "Monitor #%d '%s': %s %s",
                monitor.id, monitor.name, heartbeat.status.name, heartbeat.msg,
            )
        return heartbeat

    def _run_check(self, monitor: Monitor, heartbeat: Heartbeat) -> None:
        checker = self.context.monitor_types.get(monitor.type)
        try:
            checker.check(monitor, heartbeat)
        except CheckError as e:
            heartbeat.ping = None
            heartbeat.msg = str(e)
            if self._use_retry(monitor):
                heartbeat.status = Status.PENDING
                logger.warning(
                    "Monitor #%d '%s': pending, retry %d/%d: %s",
                    monitor.id, monitor.name, self.retries(monitor.id), monitor.max_retries, e,
                )
            else:
                heartbeat.status = Status.DOWN
                logger.debug("Monitor #%d '%s': down: %s", monitor.id, monitor.name, e)
        except Exception as e:
            self.context.error_log(e)
            heartbeat.status = Status.DOWN
            heartbeat.ping = None
            heartbeat.msg = f"{type(e).__name__}: {e}"
        else:
            with self._lock:
                self._retries[monitor.id] = 0

    def _use_retry(self, monitor: Monitor) -> bool:
        with self._lock:
            retries = self._retries.get(monitor.id, 0)
            if retries < monitor.max_retries:
                self._retries[monitor.id] = retries + 1
                return True
            return False

    def retries(self, monitor_id: int) -> int:
        with self._lock:
            return self._retries.get(monitor_id, 0)


class MonitorScheduler:
    """Runs every active monitor at its interval.

    One asyncio task per monitor, plus a per-monitor lock shared with
    manual triggers, keeps at most one check in flight per monitor. Checks
    themselves run in a thread pool so blocking probes do not stall the
    event loop.
    """

    def __init__(
        self,
        context: ServerContext,
        pipeline: HeartbeatPipeline | None = None,
        on_result: Callable[[Monitor, Heartbeat], Any] | None = None,
        max_workers: int = 8,
    ) -> None:
        self.context = context
        self.pipeline = pipeline or HeartbeatPipeline(context)
        self.on_result = on_result if on_result is not None else context.send_heartbeat
        self._executor = ThreadPoolExecutor(max_workers=max_workers)
        self._tasks: dict[int, asyncio.Task[None]] = {}
        self._locks: dict[int, asyncio.Lock] = {}
        self._running = False

    async def start(self) -> None:
        """Start a check loop for every active monitor."""
        if self._running:
            return
        self._running = True

        monitors = self.context.store.all_monitors(active_only=True)
        if not monitors:
            logger.info("No monitors configured, scheduler idle")
            return

        for monitor in monitors:
            self._tasks[monitor.id] = asyncio.create_task(
                self._check_loop(monitor), name=f"monitor-{monitor.id}",
            )
        logger.info("Monitor scheduler started: %d monitors", len(monitors))

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks.values():
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._tasks.clear()
        self._executor.shutdown(wait=False)
        logger.info("Monitor scheduler stopped")

    async def run_monitor_now(self, monitor_id: int) -> Heartbeat | None:
        """Check one monitor immediately (manual trigger)."""
        monitor = self.context.store.load_monitor(monitor_id)
        if monitor is None:
            return None
        return await self._beat(monitor)

    def _lock_for(self, monitor_id: int) -> asyncio.Lock:
        lock = self._locks.get(monitor_id)
        if lock is None:
            lock = self._locks[monitor_id] = asyncio.Lock()
        return lock

    async def _beat(self, monitor: Monitor) -> Heartbeat:
        loop = asyncio.get_running_loop()
        async with self._lock_for(monitor.id):
            heartbeat = await loop.run_in_executor(self._executor, self.pipeline.beat, monitor)
        try:
            self.on_result(monitor, heartbeat)
        except Exception:
            logger.exception("Broadcast callback error")
        return heartbeat

    async def _check_loop(self, monitor: Monitor) -> None:
        """Persistent loop for a single monitor."""
        while self._running:
            try:
                heartbeat = await self._beat(monitor)
                logger.debug(
                    "Monitor #%d: %s (%sms)", monitor.id, heartbeat.status.name, heartbeat.ping,
                )
                await asyncio.sleep(monitor.interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception("Check loop error: monitor #%d", monitor.id)
                self.context.error_log(e, output_to_console=False)
                await asyncio.sleep(min(monitor.interval, 60))
