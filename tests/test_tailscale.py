"""Tests for the Tailscale ping checker: output parsing and process handling."""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from heartwatch.monitoring.errors import (
    CheckTimeout,
    ExecutionFailure,
    PeerUnreachable,
    SelfTargetInvalid,
    UnexpectedOutput,
    UnexpectedStderr,
)
from heartwatch.monitoring.models import Heartbeat, Monitor, Status
from heartwatch.monitoring.tailscale import (
    PingFailure,
    PingSuccess,
    TailscalePing,
    parse_ping_output,
    ping_timeout_ms,
)

PONG = "pong from gateway (100.101.102.103) via DERP(fra) in 23ms"


def _monitor(interval: int = 10) -> Monitor:
    return Monitor(id=7, name="gateway", type="tailscale-ping", user_id=1,
                   hostname="gateway", interval=interval)


def _completed(stdout: str = "", stderr: str = "", returncode: int = 0) -> MagicMock:
    result = MagicMock()
    result.stdout = stdout
    result.stderr = stderr
    result.returncode = returncode
    return result


# ── parse_ping_output ────────────────────────────────────────────────────────


class TestParsePingOutput:
    def test_pong_line(self) -> None:
        outcome = parse_ping_output(PONG + "\n")
        assert outcome == PingSuccess(ping=23, message=PONG)

    def test_direct_path_pong(self) -> None:
        line = "pong from nas (100.64.0.9) via 192.168.1.20:41641 in 4ms"
        outcome = parse_ping_output(line)
        assert isinstance(outcome, PingSuccess)
        assert outcome.ping == 4

    def test_stops_at_first_pong(self) -> None:
        outcome = parse_ping_output(f"{PONG}\nsomething unexpected\n")
        assert isinstance(outcome, PingSuccess)

    def test_timed_out_after_blank_lines(self) -> None:
        outcome = parse_ping_output("\n\nping \"gateway\" timed out\n")
        assert outcome == PingFailure("timeout", 'ping "gateway" timed out')

    def test_no_matching_peer(self) -> None:
        outcome = parse_ping_output('no matching peer for "ghost"\n')
        assert outcome.kind == "peer-unreachable"

    def test_local_ip(self) -> None:
        outcome = parse_ping_output("100.64.0.1 is local Tailscale IP\n")
        assert outcome.kind == "self-target"

    def test_unexpected_line_carries_text(self) -> None:
        outcome = parse_ping_output("\n\nhello there\n\n")
        assert outcome == PingFailure("unexpected-output", "hello there")

    def test_blank_only_is_inconclusive(self) -> None:
        assert parse_ping_output("\n\n\n") == PingFailure("unexpected-output", "")

    def test_empty_output_is_inconclusive(self) -> None:
        assert parse_ping_output("") == PingFailure("unexpected-output", "")

    def test_pong_without_round_trip(self) -> None:
        outcome = parse_ping_output("pong from gateway (100.64.0.2) via DERP(fra)")
        assert outcome.kind == "unexpected-output"

    def test_crlf_line_endings(self) -> None:
        outcome = parse_ping_output(PONG + "\r\n")
        assert outcome == PingSuccess(ping=23, message=PONG)

    def test_failure_maps_to_error_class(self) -> None:
        assert isinstance(PingFailure("timeout", "x").to_error(), CheckTimeout)
        assert isinstance(PingFailure("peer-unreachable", "x").to_error(), PeerUnreachable)
        assert isinstance(PingFailure("self-target", "x").to_error(), SelfTargetInvalid)
        err = PingFailure("unexpected-output", "weird").to_error()
        assert isinstance(err, UnexpectedOutput)
        assert err.detail == "weird"


# ── Timeout ratio ────────────────────────────────────────────────────────────


class TestTimeout:
    def test_ten_second_interval(self) -> None:
        assert ping_timeout_ms(10) == 8000

    def test_sixty_second_interval(self) -> None:
        assert ping_timeout_ms(60) == 48000

    @patch("heartwatch.monitoring.tailscale.subprocess.run")
    def test_timeout_passed_to_subprocess(self, mock_run) -> None:
        mock_run.return_value = _completed(stdout=PONG)
        TailscalePing().check(_monitor(interval=10), Heartbeat(monitor_id=7))

        args, kwargs = mock_run.call_args
        assert args[0] == ["tailscale", "ping", "gateway"]
        assert kwargs["timeout"] == 8.0


# ── TailscalePing.check ──────────────────────────────────────────────────────


class TestTailscalePingCheck:
    @patch("heartwatch.monitoring.tailscale.subprocess.run")
    def test_success_marks_up(self, mock_run) -> None:
        mock_run.return_value = _completed(stdout=PONG + "\n")
        hb = Heartbeat(monitor_id=7)
        TailscalePing().check(_monitor(), hb)

        assert hb.status == Status.UP
        assert hb.ping == 23
        assert hb.msg == PONG

    @patch("heartwatch.monitoring.tailscale.subprocess.run")
    def test_custom_cli_path(self, mock_run) -> None:
        mock_run.return_value = _completed(stdout=PONG)
        TailscalePing(cli_path="/usr/bin/tailscale").check(_monitor(), Heartbeat(monitor_id=7))
        assert mock_run.call_args[0][0][0] == "/usr/bin/tailscale"

    @patch("heartwatch.monitoring.tailscale.subprocess.run")
    def test_failure_leaves_heartbeat_untouched(self, mock_run) -> None:
        mock_run.return_value = _completed(stdout='ping "gateway" timed out\n')
        hb = Heartbeat(monitor_id=7, status=Status.PENDING, msg="before")

        with pytest.raises(CheckTimeout) as exc:
            TailscalePing().check(_monitor(), hb)

        assert exc.value.detail == 'ping "gateway" timed out'
        assert hb.status == Status.PENDING
        assert hb.msg == "before"
        assert hb.ping is None

    @patch("heartwatch.monitoring.tailscale.subprocess.run")
    def test_blank_output_raises_without_mutation(self, mock_run) -> None:
        mock_run.return_value = _completed(stdout="\n\n")
        hb = Heartbeat(monitor_id=7, status=Status.PENDING)

        with pytest.raises(UnexpectedOutput):
            TailscalePing().check(_monitor(), hb)
        assert hb.status == Status.PENDING

    @patch("heartwatch.monitoring.tailscale.subprocess.run")
    def test_stderr_is_failure_even_with_pong(self, mock_run) -> None:
        mock_run.return_value = _completed(stdout=PONG, stderr="warning: DERP unhealthy\n")
        hb = Heartbeat(monitor_id=7)

        with pytest.raises(UnexpectedStderr) as exc:
            TailscalePing().check(_monitor(), hb)
        assert exc.value.detail == "warning: DERP unhealthy"
        assert hb.status == Status.DOWN

    @patch("heartwatch.monitoring.tailscale.subprocess.run")
    def test_nonzero_exit(self, mock_run) -> None:
        mock_run.return_value = _completed(stderr="not logged in", returncode=1)

        with pytest.raises(ExecutionFailure) as exc:
            TailscalePing().check(_monitor(), Heartbeat(monitor_id=7))
        assert "exit code 1" in exc.value.detail
        assert "not logged in" in exc.value.detail

    @patch("heartwatch.monitoring.tailscale.subprocess.run")
    def test_missing_binary(self, mock_run) -> None:
        mock_run.side_effect = FileNotFoundError("tailscale")

        with pytest.raises(ExecutionFailure) as exc:
            TailscalePing().check(_monitor(), Heartbeat(monitor_id=7))
        assert "FileNotFoundError" in exc.value.detail

    @patch("heartwatch.monitoring.tailscale.subprocess.run")
    def test_process_timeout(self, mock_run) -> None:
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="tailscale ping gateway", timeout=8.0)

        with pytest.raises(CheckTimeout) as exc:
            TailscalePing().check(_monitor(), Heartbeat(monitor_id=7))
        assert "8000ms" in exc.value.detail

    @patch("heartwatch.monitoring.tailscale.subprocess.run")
    def test_peer_and_self_target(self, mock_run) -> None:
        mock_run.return_value = _completed(stdout='no matching peer for "ghost"\n')
        with pytest.raises(PeerUnreachable):
            TailscalePing().check(_monitor(), Heartbeat(monitor_id=7))

        mock_run.return_value = _completed(stdout="100.64.0.1 is local Tailscale IP\n")
        with pytest.raises(SelfTargetInvalid):
            TailscalePing().check(_monitor(), Heartbeat(monitor_id=7))
