"""Tailscale ping checker.

Runs ``tailscale ping <hostname>`` and classifies its output. The line
scanner is a pure function so it can be exercised without a tailnet.
"""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass

from .errors import (
    FAILURE_KINDS,
    CheckError,
    CheckTimeout,
    ExecutionFailure,
    UnexpectedStderr,
)
from .models import Heartbeat, Monitor, Status

logger = logging.getLogger(__name__)

# A check must finish before the next one for the same monitor is due.
TIMEOUT_RATIO = 0.8

_LEADING_INT = re.compile(r"\d+")


def ping_timeout_ms(interval_seconds: int) -> int:
    """Hard wall-clock limit for one ``tailscale ping`` run."""
    return int(interval_seconds * 1000 * TIMEOUT_RATIO)


# ── Output parsing ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PingSuccess:
    ping: int
    message: str


@dataclass(frozen=True)
class PingFailure:
    kind: str
    detail: str

    def to_error(self) -> CheckError:
        return FAILURE_KINDS[self.kind](self.detail)


PingOutcome = PingSuccess | PingFailure


def _parse_round_trip(line: str) -> int | None:
    # "pong from peer (100.64.0.7) via DERP(fra) in 23ms" -> 23
    _, sep, rest = line.partition(" in ")
    if not sep:
        return None
    match = _LEADING_INT.match(rest.split(" ")[0])
    return int(match.group()) if match else None


def parse_ping_output(output: str) -> PingOutcome:
    """Classify ``tailscale ping`` stdout; the first decisive line wins."""
    for raw in output.split("\n"):
        line = raw.rstrip("\r")
        if "pong from" in line:
            ping = _parse_round_trip(line)
            if ping is None:
                return PingFailure("unexpected-output", line)
            return PingSuccess(ping=ping, message=line)
        if "timed out" in line:
            return PingFailure("timeout", line)
        if "no matching peer" in line:
            return PingFailure("peer-unreachable", line)
        if "is local Tailscale IP" in line:
            return PingFailure("self-target", line)
        if line.strip():
            return PingFailure("unexpected-output", line)

    # Nothing but blank lines: inconclusive
    return PingFailure("unexpected-output", "")


# ── Checker ──────────────────────────────────────────────────────────────────


class TailscalePing:
    """Checks reachability of a tailnet peer."""

    def __init__(self, cli_path: str = "tailscale") -> None:
        self.cli_path = cli_path

    def check(self, monitor: Monitor, heartbeat: Heartbeat) -> None:
        output = self.run_ping(monitor.hostname, monitor.interval)
        outcome = parse_ping_output(output)
        if isinstance(outcome, PingFailure):
            raise outcome.to_error()

        heartbeat.status = Status.UP
        heartbeat.ping = outcome.ping
        heartbeat.msg = outcome.message

    def run_ping(self, hostname: str, interval: int) -> str:
        """Run the CLI and return stdout, raising on any process-level failure."""
        cmd = [self.cli_path, "ping", hostname]
        timeout_ms = ping_timeout_ms(interval)
        logger.debug("Tailscale: %s (timeout=%dms)", " ".join(cmd), timeout_ms)

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout_ms / 1000,
                encoding="utf-8",
                errors="replace",
            )
        except subprocess.TimeoutExpired:
            raise CheckTimeout(f"{' '.join(cmd)} gave no answer within {timeout_ms}ms") from None
        except OSError as e:
            raise ExecutionFailure(f"{type(e).__name__}: {e}") from e

        if result.returncode != 0:
            reason = (result.stderr or result.stdout).strip()
            raise ExecutionFailure(
                f"Command failed with exit code {result.returncode}: {reason}"
                if reason
                else f"Command failed with exit code {result.returncode}"
            )
        if result.stderr:
            raise UnexpectedStderr(result.stderr.strip())

        return result.stdout
