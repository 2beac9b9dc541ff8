"""Startup self-checks.

The exporter needs root to read RACCT statistics for jails, and a kernel with
RACCT/RCTL enabled. Both are checked once, before any collection runs.
"""

from __future__ import annotations

import logging

import psutil

from jail_exporter import ExporterError
from jail_exporter.freebsd import RacctState, racct_state

logger = logging.getLogger(__name__)


class PrivilegeError(ExporterError):
    """Raised when not running with superuser privilege."""

    def __init__(self, message: str = "jail_exporter must be run as root"):
        super().__init__(message)


class RacctUnavailableError(ExporterError):
    """Raised when RACCT/RCTL cannot be used."""

    pass


RACCT_MESSAGES = {
    RacctState.DISABLED: "Present, but disabled; enable using kern.racct.enable=1 tunable",
    RacctState.JAILED: "Jail Exporter cannot run within a jail",
    RacctState.NOT_PRESENT: "Support not present in kernel; see rctl(8) for details",
}


def effective_uid() -> int:
    return psutil.Process().uids().effective


def ensure_root() -> None:
    """Raise PrivilegeError unless the effective uid is 0."""
    logger.debug("Ensuring that we're running as root")
    if effective_uid() != 0:
        raise PrivilegeError()


def ensure_racct_available(state: RacctState | None = None) -> None:
    """Raise RacctUnavailableError unless RACCT/RCTL is enabled."""
    logger.debug("Checking RACCT/RCTL status")
    if state is None:
        try:
            state = racct_state()
        except OSError:
            state = RacctState.NOT_PRESENT

    if state is not RacctState.ENABLED:
        raise RacctUnavailableError(RACCT_MESSAGES[state])
