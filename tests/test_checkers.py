"""Tests for the checker registry and the DNS / HTTP / TCP probes."""

from __future__ import annotations

import socket
import threading
from unittest.mock import MagicMock, patch

import httpx
import pytest

from heartwatch import __version__
from heartwatch.monitoring.checkers import Checker, CheckerRegistry, default_registry
from heartwatch.monitoring.errors import (
    CheckTimeout,
    ConfigurationError,
    ProbeFailure,
    UnknownCheckerType,
)
from heartwatch.monitoring.models import Heartbeat, Monitor, Status
from heartwatch.monitoring.probes import DnsChecker, HttpChecker, TcpChecker
from heartwatch.monitoring.tailscale import TailscalePing


# ── Registry ─────────────────────────────────────────────────────────────────


class TestCheckerRegistry:
    def test_default_types(self) -> None:
        registry = default_registry()
        assert registry.types() == ["dns", "http", "tailscale-ping", "tcp"]
        assert isinstance(registry.get("tailscale-ping"), TailscalePing)

    def test_same_instance_every_lookup(self) -> None:
        registry = default_registry()
        assert registry.get("dns") is registry.get("dns")

    def test_unknown_type_is_config_error(self) -> None:
        registry = CheckerRegistry()
        with pytest.raises(UnknownCheckerType) as exc:
            registry.get("smtp")
        assert isinstance(exc.value, ConfigurationError)
        assert "smtp" in str(exc.value)

    def test_duplicate_registration(self) -> None:
        registry = CheckerRegistry()
        registry.register("dns", DnsChecker())
        with pytest.raises(ConfigurationError):
            registry.register("dns", DnsChecker())

    def test_validate_monitors(self) -> None:
        registry = default_registry()
        ok = Monitor(id=1, name="a", type="dns", user_id=1)
        bad = Monitor(id=2, name="b", type="carrier-pigeon", user_id=1)
        registry.validate([ok])
        with pytest.raises(UnknownCheckerType):
            registry.validate([ok, bad])

    def test_checkers_satisfy_protocol(self) -> None:
        for checker in (TailscalePing(), DnsChecker(), HttpChecker(), TcpChecker()):
            assert isinstance(checker, Checker)

    def test_contains(self) -> None:
        registry = default_registry()
        assert "http" in registry
        assert "smtp" not in registry


# ── DNS ──────────────────────────────────────────────────────────────────────


class TestDnsChecker:
    def test_localhost_resolves(self) -> None:
        hb = Heartbeat(monitor_id=1)
        DnsChecker().check(Monitor(id=1, name="lh", type="dns", user_id=1, hostname="localhost"), hb)
        assert hb.status == Status.UP
        assert hb.ping is not None and hb.ping >= 0
        assert hb.msg.startswith("Resolved to")

    @patch("heartwatch.monitoring.probes.socket.getaddrinfo")
    def test_resolution_failure(self, mock_gai) -> None:
        mock_gai.side_effect = socket.gaierror("Name or service not known")
        hb = Heartbeat(monitor_id=1)
        with pytest.raises(ProbeFailure):
            DnsChecker().check(Monitor(id=1, name="x", type="dns", user_id=1, hostname="x.invalid"), hb)
        assert hb.status == Status.DOWN

    @patch("heartwatch.monitoring.probes.ping_timeout_ms", return_value=50)
    @patch("heartwatch.monitoring.probes.socket.getaddrinfo")
    def test_hung_resolver_times_out(self, mock_gai, _timeout) -> None:
        release = threading.Event()
        mock_gai.side_effect = lambda *a: release.wait(5)
        try:
            with pytest.raises(CheckTimeout) as exc:
                DnsChecker().check(Monitor(id=1, name="x", type="dns", user_id=1, hostname="slow.test"), Heartbeat(monitor_id=1))
        finally:
            release.set()
        assert "50ms" in str(exc.value)


# ── HTTP ─────────────────────────────────────────────────────────────────────


def _http_monitor() -> Monitor:
    return Monitor(id=1, name="site", type="http", user_id=1, url="https://example.test/health", interval=10)


def _mock_client(mock_client_cls, response=None, error=None) -> MagicMock:
    client = MagicMock()
    if error is not None:
        client.get.side_effect = error
    else:
        client.get.return_value = response
    mock_client_cls.return_value.__enter__.return_value = client
    mock_client_cls.return_value.__exit__.return_value = None
    return client


class TestHttpChecker:
    @patch("heartwatch.monitoring.probes.httpx.Client")
    def test_success(self, mock_client_cls) -> None:
        _mock_client(mock_client_cls, response=httpx.Response(200))
        hb = Heartbeat(monitor_id=1)
        HttpChecker().check(_http_monitor(), hb)

        assert hb.status == Status.UP
        assert hb.msg == "200 OK"
        assert mock_client_cls.call_args.kwargs["timeout"] == 8.0
        assert mock_client_cls.call_args.kwargs["headers"] == {"User-Agent": f"heartwatch/{__version__}"}

    @patch("heartwatch.monitoring.probes.httpx.Client")
    def test_bad_status(self, mock_client_cls) -> None:
        _mock_client(mock_client_cls, response=httpx.Response(503))
        with pytest.raises(ProbeFailure) as exc:
            HttpChecker().check(_http_monitor(), Heartbeat(monitor_id=1))
        assert "503" in str(exc.value)

    @patch("heartwatch.monitoring.probes.httpx.Client")
    def test_timeout(self, mock_client_cls) -> None:
        _mock_client(mock_client_cls, error=httpx.ReadTimeout("slow"))
        with pytest.raises(CheckTimeout):
            HttpChecker().check(_http_monitor(), Heartbeat(monitor_id=1))

    @patch("heartwatch.monitoring.probes.httpx.Client")
    def test_connect_error(self, mock_client_cls) -> None:
        _mock_client(mock_client_cls, error=httpx.ConnectError("refused"))
        with pytest.raises(ProbeFailure):
            HttpChecker().check(_http_monitor(), Heartbeat(monitor_id=1))


# ── TCP ──────────────────────────────────────────────────────────────────────


class TestTcpChecker:
    @patch("heartwatch.monitoring.probes.socket.create_connection")
    def test_open_port(self, mock_connect) -> None:
        hb = Heartbeat(monitor_id=1)
        TcpChecker().check(Monitor(id=1, name="db", type="tcp", user_id=1, hostname="db", port=5432), hb)
        assert hb.status == Status.UP
        assert hb.msg == "Port 5432 open"
        assert mock_connect.call_args[0][0] == ("db", 5432)

    @patch("heartwatch.monitoring.probes.socket.create_connection")
    def test_refused(self, mock_connect) -> None:
        mock_connect.side_effect = ConnectionRefusedError("refused")
        with pytest.raises(ProbeFailure):
            TcpChecker().check(Monitor(id=1, name="db", type="tcp", user_id=1, hostname="db", port=1), Heartbeat(monitor_id=1))

    @patch("heartwatch.monitoring.probes.socket.create_connection")
    def test_timeout(self, mock_connect) -> None:
        mock_connect.side_effect = socket.timeout("timed out")
        with pytest.raises(CheckTimeout):
            TcpChecker().check(Monitor(id=1, name="db", type="tcp", user_id=1, hostname="db"), Heartbeat(monitor_id=1))
