"""Plain records shared by checkers, the store and the broadcaster.

Status integers are part of the wire format and must not be renumbered.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any


class Status(IntEnum):
    DOWN = 0
    UP = 1
    PENDING = 2
    MAINTENANCE = 3


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Monitor ──────────────────────────────────────────────────────────────────


@dataclass
class Monitor:
    """A configured target/check-type pair that is probed every ``interval`` seconds."""

    id: int
    name: str
    type: str  # key into the CheckerRegistry
    user_id: int
    hostname: str = ""
    url: str = ""
    port: int | None = None
    interval: int = 60
    weight: int = 2000
    max_retries: int = 0
    active: bool = True

    def to_json(self, in_maintenance: bool = False) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "hostname": self.hostname,
            "url": self.url,
            "port": self.port,
            "interval": self.interval,
            "weight": self.weight,
            "userID": self.user_id,
            "maxretries": self.max_retries,
            "active": self.active,
            "maintenance": in_maintenance,
        }


# ── Heartbeat ────────────────────────────────────────────────────────────────


@dataclass
class Heartbeat:
    """Result of a single check execution.

    Checkers fill in ``status``, ``msg`` and ``ping`` while the check runs;
    the pipeline sets ``important`` and ``duration`` before the record is
    stored, after which it is never changed.
    """

    monitor_id: int
    status: Status = Status.DOWN
    time: str = field(default_factory=utc_now_iso)
    msg: str = ""
    ping: int | None = None
    important: bool = False
    duration: int = 0

    def __post_init__(self) -> None:
        self.status = Status(self.status)

    def to_json(self) -> dict[str, Any]:
        """Full view, for authenticated viewers."""
        return {
            "monitorID": self.monitor_id,
            "status": int(self.status),
            "time": self.time,
            "msg": self.msg,
            "ping": self.ping,
            "important": self.important,
            "duration": self.duration,
        }

    def to_public_json(self) -> dict[str, Any]:
        """Same as ``to_json`` with the message hidden.

        Messages may carry hostnames or internal error text.
        """
        data = self.to_json()
        data["msg"] = ""
        return data

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Heartbeat":
        return cls(
            monitor_id=row["monitor_id"],
            status=Status(row["status"]),
            time=row["time"],
            msg=row.get("msg") or "",
            ping=row.get("ping"),
            important=bool(row.get("important", 0)),
            duration=row.get("duration") or 0,
        )
