"""Checker contract and the type-keyed registry of checker instances."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from .errors import ConfigurationError, UnknownCheckerType
from .models import Heartbeat, Monitor

logger = logging.getLogger(__name__)


@runtime_checkable
class Checker(Protocol):
    """One probing protocol.

    ``check`` either marks the heartbeat UP (status, msg, optional ping) or
    raises a ``CheckError``. Implementations keep no per-call state, so a
    single instance may serve concurrent checks of different monitors.
    """

    def check(self, monitor: Monitor, heartbeat: Heartbeat) -> None: ...


class CheckerRegistry:
    """Maps a monitor type name to its single long-lived checker."""

    def __init__(self) -> None:
        self._checkers: dict[str, Checker] = {}

    def register(self, type_name: str, checker: Checker) -> None:
        if type_name in self._checkers:
            raise ConfigurationError(f"Monitor type already registered: {type_name!r}")
        self._checkers[type_name] = checker
        logger.debug("Registered checker %s -> %s", type_name, type(checker).__name__)

    def get(self, type_name: str) -> Checker:
        try:
            return self._checkers[type_name]
        except KeyError:
            raise UnknownCheckerType(type_name) from None

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._checkers

    def types(self) -> list[str]:
        return sorted(self._checkers)

    def validate(self, monitors: list[Monitor]) -> None:
        """Fail fast if any monitor references an unregistered type."""
        for monitor in monitors:
            self.get(monitor.type)


def default_registry(tailscale_cli_path: str = "tailscale") -> CheckerRegistry:
    """Build the standard table of monitor types."""
    from .probes import DnsChecker, HttpChecker, TcpChecker
    from .tailscale import TailscalePing

    registry = CheckerRegistry()
    registry.register("tailscale-ping", TailscalePing(cli_path=tailscale_cli_path))
    registry.register("dns", DnsChecker())
    registry.register("http", HttpChecker())
    registry.register("tcp", TcpChecker())
    return registry
