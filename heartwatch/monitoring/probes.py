"""Network probes: DNS resolve, HTTP(S) request, TCP connect.

Each probe marks the heartbeat UP with the measured latency or raises
``ProbeFailure``.
"""

from __future__ import annotations

import logging
import socket
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout

import httpx

from .. import __version__
from .errors import CheckTimeout, ProbeFailure
from .models import Heartbeat, Monitor, Status
from .tailscale import ping_timeout_ms

logger = logging.getLogger(__name__)

USER_AGENT = f"heartwatch/{__version__}"

# getaddrinfo has no timeout of its own; lookups run here so a hung resolver
# only holds a resolver thread, not a check worker.
_resolver = ThreadPoolExecutor(max_workers=4, thread_name_prefix="dns")


def _elapsed_ms(t0: float) -> int:
    return int(round((time.perf_counter() - t0) * 1000))


class DnsChecker:
    """DNS resolution check, bounded by the same 80% of the interval as the others."""

    def check(self, monitor: Monitor, heartbeat: Heartbeat) -> None:
        timeout_ms = ping_timeout_ms(monitor.interval)
        t0 = time.perf_counter()
        future = _resolver.submit(socket.getaddrinfo, monitor.hostname, None)
        try:
            addrs = future.result(timeout=timeout_ms / 1000)
        except FutureTimeout:
            raise CheckTimeout(f"{monitor.hostname} did not resolve within {timeout_ms}ms") from None
        except socket.gaierror as e:
            raise ProbeFailure(f"DNS resolution failed: {e}") from e

        ips = sorted({a[4][0] for a in addrs})
        heartbeat.status = Status.UP
        heartbeat.ping = _elapsed_ms(t0)
        heartbeat.msg = f"Resolved to {', '.join(ips[:3])}"


class HttpChecker:
    """HTTP(S) GET; any 2xx status is UP."""

    def check(self, monitor: Monitor, heartbeat: Heartbeat) -> None:
        timeout_ms = ping_timeout_ms(monitor.interval)
        t0 = time.perf_counter()
        try:
            with httpx.Client(
                timeout=timeout_ms / 1000,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            ) as client:
                resp = client.get(monitor.url)
        except httpx.TimeoutException:
            raise CheckTimeout(f"No response from {monitor.url} within {timeout_ms}ms") from None
        except httpx.HTTPError as e:
            raise ProbeFailure(f"Connection error: {type(e).__name__}: {e}") from e

        latency = _elapsed_ms(t0)
        if not resp.is_success:
            raise ProbeFailure(f"Expected 2xx, got {resp.status_code}")

        heartbeat.status = Status.UP
        heartbeat.ping = latency
        heartbeat.msg = f"{resp.status_code} {resp.reason_phrase}".strip()


class TcpChecker:
    """Raw TCP port connectivity check."""

    def check(self, monitor: Monitor, heartbeat: Heartbeat) -> None:
        port = monitor.port or 443
        timeout_ms = ping_timeout_ms(monitor.interval)
        t0 = time.perf_counter()
        try:
            with socket.create_connection((monitor.hostname, port), timeout=timeout_ms / 1000):
                pass
        except socket.timeout:
            raise CheckTimeout(f"{monitor.hostname}:{port} did not accept within {timeout_ms}ms") from None
        except OSError as e:
            raise ProbeFailure(f"TCP connect failed: {type(e).__name__}: {e}") from e

        heartbeat.status = Status.UP
        heartbeat.ping = _elapsed_ms(t0)
        heartbeat.msg = f"Port {port} open"
