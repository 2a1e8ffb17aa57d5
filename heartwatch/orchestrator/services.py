"""OS-level auxiliary services (nscd DNS cache) used inside the container image.

These only speed up lookups; a failure here is logged and ignored.
"""

from __future__ import annotations

import logging
import subprocess

logger = logging.getLogger(__name__)

SERVICE_TIMEOUT_SEC = 30


def run_service(name: str, action: str) -> bool:
    """``sudo service <name> <action>``; returns False instead of raising."""
    logger.info("%s %s", "Starting" if action == "start" else "Stopping", name)
    try:
        subprocess.run(
            ["sudo", "service", name, action],
            capture_output=True,
            check=True,
            timeout=SERVICE_TIMEOUT_SEC,
        )
    except (OSError, subprocess.SubprocessError):
        logger.info("Failed to %s %s", action, name)
        return False
    return True


def nscd_enabled(value: object) -> bool:
    """Unset counts as enabled; only an explicit false disables nscd."""
    return value is None or bool(value)
