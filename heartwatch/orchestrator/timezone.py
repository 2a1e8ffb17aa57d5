"""Server timezone helpers: validation, system guess, process default."""

from __future__ import annotations

import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

from ..monitoring.errors import InvalidTimezone

logger = logging.getLogger(__name__)

# Any valid zone can render this instant.
REFERENCE_INSTANT = datetime(2013, 11, 18, 11, 55, tzinfo=timezone.utc)

_ETC_TIMEZONE = Path("/etc/timezone")
_ETC_LOCALTIME = Path("/etc/localtime")


def check_timezone(name: str) -> None:
    """Raise ``InvalidTimezone`` unless ``name`` is a usable IANA zone."""
    try:
        REFERENCE_INSTANT.astimezone(ZoneInfo(name)).isoformat()
    except (KeyError, ValueError, TypeError, OSError) as e:
        # ZoneInfoNotFoundError is a KeyError
        raise InvalidTimezone(name) from e


def guess_timezone() -> str | None:
    """Best-effort IANA name of the host's zone."""
    try:
        if _ETC_TIMEZONE.is_file():
            name = _ETC_TIMEZONE.read_text(encoding="utf-8").strip()
            if name:
                return name
        if _ETC_LOCALTIME.is_symlink():
            target = str(_ETC_LOCALTIME.resolve())
            _, sep, name = target.partition("zoneinfo/")
            if sep and name:
                return name
    except OSError:
        logger.debug("Cannot read system timezone", exc_info=True)
    return None


def apply_timezone(name: str) -> None:
    """Make ``name`` the process-wide default zone."""
    os.environ["TZ"] = name
    if hasattr(time, "tzset"):
        time.tzset()


def timezone_offset(name: str, at: datetime | None = None) -> str:
    """UTC offset of ``name`` as ``+HH:MM``."""
    at = at or datetime.now(timezone.utc)
    offset = at.astimezone(ZoneInfo(name)).strftime("%z")
    return f"{offset[:3]}:{offset[3:]}"
