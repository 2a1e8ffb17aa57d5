"""Server context: owns the monitor-type and maintenance registries, the
server timezone and per-user broadcast.

Built once at startup (``ServerContext.from_settings``) and handed to the
API, scheduler and CLI explicitly.
"""

from __future__ import annotations

import logging
import threading
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..broadcast import Broadcaster, group_for
from ..config import Settings
from ..monitoring.checkers import CheckerRegistry, default_registry
from ..monitoring.errors import InvalidTimezone
from ..monitoring.maintenance import Maintenance
from ..monitoring.models import Heartbeat, Monitor
from ..monitoring.store import MonitorStore
from .services import nscd_enabled, run_service
from .timezone import apply_timezone, check_timezone, guess_timezone, timezone_offset

logger = logging.getLogger(__name__)

ERROR_LOG_NAME = "error.log"
IPV4_MAPPED_PREFIX = "::ffff:"


class ServerContext:
    """Process-wide state shared by every component of a running server."""

    def __init__(
        self,
        store: MonitorStore,
        broadcaster: Broadcaster,
        monitor_types: CheckerRegistry,
        data_dir: Path,
        env_timezone: str = "",
        is_container: bool = False,
    ) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self.monitor_types = monitor_types
        self.data_dir = Path(data_dir)
        self.env_timezone = env_timezone
        self.is_container = is_container
        self.timezone = "UTC"
        self.maintenance_list: dict[int, Maintenance] = {}
        self._maintenance_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServerContext":
        return cls(
            store=MonitorStore(settings.db_path),
            broadcaster=Broadcaster(queue_size=settings.sse_queue_size),
            monitor_types=default_registry(settings.tailscale_cli_path),
            data_dir=settings.data_dir,
            env_timezone=settings.tz,
            is_container=settings.is_container,
        )

    def init_after_store_ready(self) -> None:
        """Validate monitors against the registry, resolve timezone, load maintenance."""
        self.monitor_types.validate(self.store.all_monitors())
        self.init_timezone()
        self.load_maintenance_list()

    # ── Monitor list ─────────────────────────────────────────────────────

    def get_monitor_json_list(self, user_id: int) -> dict[str, dict[str, Any]]:
        """A user's monitors keyed by id, heaviest first, then by name."""
        result: dict[str, dict[str, Any]] = {}
        for monitor in self.store.find_monitors_by_user(user_id):
            result[str(monitor.id)] = monitor.to_json(
                in_maintenance=self.is_under_maintenance(monitor.id),
            )
        return result

    def send_monitor_list(self, user_id: int) -> dict[str, dict[str, Any]]:
        """Push the user's monitor list to that user's group only, and return it."""
        monitor_list = self.get_monitor_json_list(user_id)
        self.broadcaster.emit(group_for(user_id), "monitorList", monitor_list)
        return monitor_list

    def send_heartbeat(self, monitor: Monitor, heartbeat: Heartbeat) -> None:
        self.broadcaster.emit(group_for(monitor.user_id), "heartbeat", heartbeat.to_json())

    # ── Maintenance list ─────────────────────────────────────────────────

    def get_maintenance_json_list(self) -> dict[str, dict[str, Any]]:
        with self._maintenance_lock:
            entries = list(self.maintenance_list.items())
        return {str(mid): m.to_json() for mid, m in entries}

    def send_maintenance_list(self, user_id: int) -> dict[str, dict[str, Any]]:
        maintenance_list = self.get_maintenance_json_list()
        self.broadcaster.emit(group_for(user_id), "maintenanceList", maintenance_list)
        return maintenance_list

    def load_maintenance_list(self) -> None:
        """(Re)load every maintenance window from the store and start each one."""
        loaded = self.store.all_maintenance()
        with self._maintenance_lock:
            for previous in self.maintenance_list.values():
                previous.stop()
            self.maintenance_list = {}
            for maintenance in loaded:
                self.maintenance_list[maintenance.id] = maintenance
                maintenance.run()
        logger.info("Maintenance list loaded: %d windows", len(loaded))

    def get_maintenance(self, maintenance_id: int) -> Maintenance | None:
        with self._maintenance_lock:
            return self.maintenance_list.get(maintenance_id)

    def is_under_maintenance(self, monitor_id: int, now: datetime | None = None) -> bool:
        """True if a started window covering the monitor is in effect now."""
        with self._maintenance_lock:
            entries = list(self.maintenance_list.values())
        return any(
            m.running and m.covers(monitor_id) and m.is_under_maintenance(now)
            for m in entries
        )

    # ── Timezone ─────────────────────────────────────────────────────────

    def get_timezone(self) -> str:
        """Resolve the server timezone: env override, setting, system guess, UTC.

        Invalid candidates are logged and skipped.
        """
        if self.env_timezone:
            try:
                check_timezone(self.env_timezone)
                return self.env_timezone
            except InvalidTimezone as e:
                logger.warning("%s in TZ environment variable", e)

        stored = self.store.get_setting("serverTimezone")
        if stored:
            logger.debug("Using timezone from settings: %s", stored)
            try:
                check_timezone(stored)
                return stored
            except InvalidTimezone as e:
                logger.warning("%s in settings", e)

        guess = guess_timezone()
        if guess:
            logger.debug("Guessing timezone: %s", guess)
            try:
                check_timezone(guess)
                return guess
            except InvalidTimezone:
                logger.debug("Guessed an invalid timezone, using UTC as fallback")

        return "UTC"

    def init_timezone(self) -> str:
        self.timezone = self.get_timezone()
        apply_timezone(self.timezone)
        logger.debug("Timezone: %s (%s)", self.timezone, self.get_timezone_offset())
        return self.timezone

    def set_timezone(self, name: str) -> None:
        """Persist and apply a new server timezone; raises ``InvalidTimezone``."""
        check_timezone(name)
        self.store.set_setting("serverTimezone", name, "general")
        self.timezone = name
        apply_timezone(name)

    def get_timezone_offset(self) -> str:
        return timezone_offset(self.timezone)

    # ── Auxiliary services ───────────────────────────────────────────────

    def start(self) -> None:
        if nscd_enabled(self.store.get_setting("nscd")):
            self.start_nscd_services()

    def stop(self) -> None:
        if nscd_enabled(self.store.get_setting("nscd")):
            self.stop_nscd_services()

    def start_nscd_services(self) -> None:
        if self.is_container:
            run_service("nscd", "start")

    def stop_nscd_services(self) -> None:
        if self.is_container:
            run_service("nscd", "stop")

    # ── Clients ──────────────────────────────────────────────────────────

    def get_client_ip(self, request: Any) -> str:
        """Client address of an inbound request, honouring proxy headers if trusted."""
        client_ip = request.client.host if request.client else ""
        client_ip = client_ip.removeprefix(IPV4_MAPPED_PREFIX)

        if self.store.get_setting("trustProxy"):
            forwarded_for = request.headers.get("x-forwarded-for")
            if forwarded_for:
                first = forwarded_for.split(",")[0].strip()
                if first:
                    return first.removeprefix(IPV4_MAPPED_PREFIX)
            real_ip = request.headers.get("x-real-ip")
            if real_ip:
                return real_ip.removeprefix(IPV4_MAPPED_PREFIX)

        return client_ip

    # ── Error sink ───────────────────────────────────────────────────────

    def error_log(self, error: BaseException | str, output_to_console: bool = True) -> None:
        """Append ``error`` to ``<data_dir>/error.log`` with an ISO timestamp."""
        if isinstance(error, BaseException):
            text = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ).rstrip()
        else:
            text = str(error)

        stamp = datetime.now(timezone.utc).isoformat()
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(self.data_dir / ERROR_LOG_NAME, "a", encoding="utf-8") as f:
                f.write(f"[{stamp}] {text}\n")
        except OSError:
            logger.info("Cannot write to %s", ERROR_LOG_NAME)

        if output_to_console:
            logger.error("%s", text)

    def close(self) -> None:
        with self._maintenance_lock:
            for maintenance in self.maintenance_list.values():
                maintenance.stop()
        self.store.close()
