"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from heartwatch.broadcast import Broadcaster
from heartwatch.monitoring.checkers import CheckerRegistry
from heartwatch.monitoring.models import Heartbeat, Monitor, Status
from heartwatch.monitoring.store import MonitorStore
from heartwatch.orchestrator.server import ServerContext


class FakeChecker:
    """Checker whose verdict is set by the test."""

    def __init__(self) -> None:
        self.error: Exception | None = None
        self.ping = 12
        self.calls = 0

    def check(self, monitor: Monitor, heartbeat: Heartbeat) -> None:
        self.calls += 1
        if self.error is not None:
            raise self.error
        heartbeat.status = Status.UP
        heartbeat.ping = self.ping
        heartbeat.msg = f"pong from {monitor.hostname}"


@pytest.fixture
def store(tmp_path: Path) -> Generator[MonitorStore, None, None]:
    s = MonitorStore(tmp_path / "test.db")
    yield s
    s.close()


@pytest.fixture
def fake_checker() -> FakeChecker:
    return FakeChecker()


@pytest.fixture
def context(tmp_path: Path, store: MonitorStore, fake_checker: FakeChecker) -> ServerContext:
    registry = CheckerRegistry()
    registry.register("fake", fake_checker)
    return ServerContext(
        store=store,
        broadcaster=Broadcaster(queue_size=5),
        monitor_types=registry,
        data_dir=tmp_path,
    )


@pytest.fixture
def make_monitor():
    def _make(**overrides) -> Monitor:
        defaults = {
            "id": 1,
            "name": "gateway",
            "type": "fake",
            "user_id": 1,
            "hostname": "gateway.tailnet",
            "interval": 10,
        }
        defaults.update(overrides)
        return Monitor(**defaults)

    return _make
