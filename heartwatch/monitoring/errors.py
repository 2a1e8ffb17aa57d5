"""Failure taxonomy for checks and configuration.

Checkers raise a ``CheckError`` subclass whenever they cannot reach an UP
verdict. Whether that becomes a retry (PENDING) or a DOWN heartbeat is
decided by the caller, never by the checker.
"""

from __future__ import annotations


class CheckError(Exception):
    """Base class for every failed check."""

    kind = "check-error"
    prefix = "Check failed"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(f'{self.prefix}: "{detail}"' if detail else self.prefix)


class ExecutionFailure(CheckError):
    """The external tool could not run or exited abnormally."""

    kind = "execution-failure"
    prefix = "Execution error"


class UnexpectedStderr(CheckError):
    """The tool ran but wrote diagnostics to stderr."""

    kind = "unexpected-stderr"
    prefix = "Error in output"


class CheckTimeout(CheckError):
    """No decisive output before the deadline."""

    kind = "timeout"
    prefix = "Ping timed out"


class PeerUnreachable(CheckError):
    """Target does not exist or is hidden by access policy."""

    kind = "peer-unreachable"
    prefix = "Nonexistent or inaccessible due to ACLs"


class SelfTargetInvalid(CheckError):
    """The target is the local host, which the tool cannot ping."""

    kind = "self-target"
    prefix = "Tailscale only works if used on other machines"


class UnexpectedOutput(CheckError):
    """A line the output grammar does not recognise."""

    kind = "unexpected-output"
    prefix = "Unexpected output"


class ProbeFailure(CheckError):
    """DNS / HTTP / TCP probe reached a negative verdict."""

    kind = "probe-failure"
    prefix = "Probe failed"


FAILURE_KINDS: dict[str, type[CheckError]] = {
    cls.kind: cls
    for cls in (
        ExecutionFailure,
        UnexpectedStderr,
        CheckTimeout,
        PeerUnreachable,
        SelfTargetInvalid,
        UnexpectedOutput,
        ProbeFailure,
    )
}


class ConfigurationError(Exception):
    """Invalid process configuration; the server must not start with it."""


class UnknownCheckerType(ConfigurationError):
    def __init__(self, type_name: str) -> None:
        self.type_name = type_name
        super().__init__(f"Unknown monitor type: {type_name!r}")


class InvalidTimezone(ValueError):
    def __init__(self, timezone_name: str) -> None:
        self.timezone_name = timezone_name
        super().__init__(f"Invalid timezone: {timezone_name}")
