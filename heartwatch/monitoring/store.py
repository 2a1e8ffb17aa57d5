"""SQLite-backed repository for monitors, heartbeats, maintenance and settings.

The rest of the code only sees the plain records from ``models`` and
``maintenance``; nothing outside this module issues SQL.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any

from .maintenance import Maintenance
from .models import Heartbeat, Monitor

logger = logging.getLogger(__name__)


class MonitorStore:
    """Repository over a single SQLite file (WAL mode)."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        # Checks run in worker threads and share this connection
        self._lock = threading.Lock()
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS monitors (
                id          INTEGER PRIMARY KEY,
                name        TEXT NOT NULL,
                type        TEXT NOT NULL,
                user_id     INTEGER NOT NULL,
                hostname    TEXT NOT NULL DEFAULT '',
                url         TEXT NOT NULL DEFAULT '',
                port        INTEGER,
                interval    INTEGER NOT NULL DEFAULT 60,
                weight      INTEGER NOT NULL DEFAULT 2000,
                max_retries INTEGER NOT NULL DEFAULT 0,
                active      INTEGER NOT NULL DEFAULT 1
            );

            CREATE INDEX IF NOT EXISTS idx_monitors_user
                ON monitors (user_id, weight DESC, name);

            CREATE TABLE IF NOT EXISTS heartbeats (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                monitor_id  INTEGER NOT NULL,
                status      INTEGER NOT NULL,
                time        TEXT NOT NULL,
                msg         TEXT,
                ping        INTEGER,
                important   INTEGER NOT NULL DEFAULT 0,
                duration    INTEGER NOT NULL DEFAULT 0
            );

            CREATE INDEX IF NOT EXISTS idx_heartbeats_monitor
                ON heartbeats (monitor_id, time DESC);

            CREATE TABLE IF NOT EXISTS maintenance (
                id          INTEGER PRIMARY KEY,
                title       TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                strategy    TEXT NOT NULL DEFAULT 'single',
                active      INTEGER NOT NULL DEFAULT 1,
                start_date  TEXT,
                end_date    TEXT,
                monitor_ids TEXT NOT NULL DEFAULT '[]'
            );

            CREATE TABLE IF NOT EXISTS settings (
                key   TEXT PRIMARY KEY,
                value TEXT,
                type  TEXT
            );
        """)
        conn.commit()

    # ── Monitors ──────────────────────────────────────────────────────────

    def save_monitor(self, monitor: Monitor) -> Monitor:
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                "INSERT OR REPLACE INTO monitors "
                "(id, name, type, user_id, hostname, url, port, interval, weight, max_retries, active) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    monitor.id, monitor.name, monitor.type, monitor.user_id,
                    monitor.hostname, monitor.url, monitor.port, monitor.interval,
                    monitor.weight, monitor.max_retries, int(monitor.active),
                ),
            )
            conn.commit()
        return monitor

    def load_monitor(self, monitor_id: int) -> Monitor | None:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT * FROM monitors WHERE id = ?", (monitor_id,),
            ).fetchone()
        return _monitor_from_row(dict(row)) if row else None

    def find_monitors_by_user(self, user_id: int) -> list[Monitor]:
        """A user's monitors, heaviest first, then by name."""
        with self._lock:
            rows = self._get_conn().execute(
                "SELECT * FROM monitors WHERE user_id = ? ORDER BY weight DESC, name",
                (user_id,),
            ).fetchall()
        return [_monitor_from_row(dict(r)) for r in rows]

    def all_monitors(self, active_only: bool = False) -> list[Monitor]:
        query = "SELECT * FROM monitors"
        if active_only:
            query += " WHERE active = 1"
        with self._lock:
            rows = self._get_conn().execute(query + " ORDER BY id").fetchall()
        return [_monitor_from_row(dict(r)) for r in rows]

    # ── Heartbeats ────────────────────────────────────────────────────────

    def save_heartbeat(self, heartbeat: Heartbeat) -> None:
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                "INSERT INTO heartbeats (monitor_id, status, time, msg, ping, important, duration) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    heartbeat.monitor_id, int(heartbeat.status), heartbeat.time,
                    heartbeat.msg, heartbeat.ping, int(heartbeat.important),
                    heartbeat.duration,
                ),
            )
            conn.commit()

    def get_last_heartbeat(self, monitor_id: int) -> Heartbeat | None:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT * FROM heartbeats WHERE monitor_id = ? "
                "ORDER BY time DESC, id DESC LIMIT 1",
                (monitor_id,),
            ).fetchone()
        return Heartbeat.from_row(dict(row)) if row else None

    def get_heartbeats(self, monitor_id: int, limit: int = 100) -> list[Heartbeat]:
        """Most recent first."""
        with self._lock:
            rows = self._get_conn().execute(
                "SELECT * FROM heartbeats WHERE monitor_id = ? "
                "ORDER BY time DESC, id DESC LIMIT ?",
                (monitor_id, limit),
            ).fetchall()
        return [Heartbeat.from_row(dict(r)) for r in rows]

    # ── Maintenance ───────────────────────────────────────────────────────

    def save_maintenance(self, maintenance: Maintenance) -> Maintenance:
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                "INSERT OR REPLACE INTO maintenance "
                "(id, title, description, strategy, active, start_date, end_date, monitor_ids) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    maintenance.id, maintenance.title, maintenance.description,
                    maintenance.strategy, int(maintenance.active),
                    maintenance.start_date, maintenance.end_date,
                    json.dumps(maintenance.monitor_ids),
                ),
            )
            conn.commit()
        return maintenance

    def all_maintenance(self) -> list[Maintenance]:
        """Every maintenance window, latest end date first, then by title."""
        with self._lock:
            rows = self._get_conn().execute(
                "SELECT * FROM maintenance ORDER BY end_date DESC, title",
            ).fetchall()
        return [Maintenance.from_row(dict(r)) for r in rows]

    # ── Settings ──────────────────────────────────────────────────────────

    def get_setting(self, key: str) -> Any:
        """Decoded value, or ``None`` when the key was never set."""
        with self._lock:
            row = self._get_conn().execute(
                "SELECT value FROM settings WHERE key = ?", (key,),
            ).fetchone()
        if row is None or row["value"] is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            return row["value"]

    def set_setting(self, key: str, value: Any, type_: str = "general") -> None:
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                "INSERT OR REPLACE INTO settings (key, value, type) VALUES (?, ?, ?)",
                (key, json.dumps(value), type_),
            )
            conn.commit()

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None


def _monitor_from_row(row: dict[str, Any]) -> Monitor:
    return Monitor(
        id=row["id"],
        name=row["name"],
        type=row["type"],
        user_id=row["user_id"],
        hostname=row.get("hostname") or "",
        url=row.get("url") or "",
        port=row.get("port"),
        interval=row["interval"],
        weight=row["weight"],
        max_retries=row["max_retries"],
        active=bool(row["active"]),
    )
