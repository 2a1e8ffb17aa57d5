"""Maintenance windows.

While a window is active, every monitor it covers reports MAINTENANCE no
matter what its checker says.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

STRATEGIES = ("manual", "single", "inactive")


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


@dataclass
class Maintenance:
    """A maintenance window and the monitors it covers.

    ``strategy`` decides when the window is active:
      manual: while ``active`` is set
      single: between ``start_date`` and ``end_date``
      inactive: never
    """

    id: int
    title: str
    description: str = ""
    strategy: str = "single"
    active: bool = True
    start_date: str | None = None
    end_date: str | None = None
    monitor_ids: list[int] = field(default_factory=list)
    _running: bool = field(default=False, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.strategy not in STRATEGIES:
            raise ValueError(f"Unknown maintenance strategy: {self.strategy}")

    # ── Lifecycle ────────────────────────────────────────────────────────

    def run(self) -> None:
        """Start the window's own scheduling."""
        self._running = True
        logger.debug("Maintenance %s (%s) started: %s", self.id, self.title, self.get_status())

    def stop(self) -> None:
        """Stop the window; a stopped window no longer overrides checks."""
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # ── State ────────────────────────────────────────────────────────────

    def get_status(self, now: datetime | None = None) -> str:
        """One of ``under-maintenance``, ``scheduled``, ``ended``, ``inactive``."""
        if not self.active or self.strategy == "inactive":
            return "inactive"
        if self.strategy == "manual":
            return "under-maintenance"

        now = now or datetime.now(timezone.utc)
        start = _parse_dt(self.start_date)
        end = _parse_dt(self.end_date)
        if start and now < start:
            return "scheduled"
        if end and now >= end:
            return "ended"
        return "under-maintenance"

    def is_under_maintenance(self, now: datetime | None = None) -> bool:
        return self.get_status(now) == "under-maintenance"

    def covers(self, monitor_id: int) -> bool:
        return monitor_id in self.monitor_ids

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "strategy": self.strategy,
            "active": self.active,
            "status": self.get_status(),
            "startDate": self.start_date,
            "endDate": self.end_date,
            "monitorIDs": list(self.monitor_ids),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Maintenance":
        monitor_ids = row.get("monitor_ids") or "[]"
        if isinstance(monitor_ids, str):
            monitor_ids = json.loads(monitor_ids)
        return cls(
            id=row["id"],
            title=row["title"],
            description=row.get("description") or "",
            strategy=row.get("strategy") or "single",
            active=bool(row.get("active", 1)),
            start_date=row.get("start_date"),
            end_date=row.get("end_date"),
            monitor_ids=[int(m) for m in monitor_ids],
        )
