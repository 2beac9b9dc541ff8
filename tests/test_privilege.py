"""Tests for startup self-checks."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from jail_exporter.freebsd import RacctState
from jail_exporter.privilege import (
    PrivilegeError,
    RacctUnavailableError,
    effective_uid,
    ensure_racct_available,
    ensure_root,
)


class TestEnsureRoot:
    """Tests for the superuser check."""

    def test_root(self):
        with patch("jail_exporter.privilege.effective_uid", return_value=0):
            ensure_root()

    def test_not_root(self):
        with patch("jail_exporter.privilege.effective_uid", return_value=1001):
            with pytest.raises(PrivilegeError, match="jail_exporter must be run as root"):
                ensure_root()

    def test_effective_uid(self):
        assert effective_uid() == os.geteuid()


class TestEnsureRacctAvailable:
    """Tests for the RACCT/RCTL check."""

    def test_enabled(self):
        ensure_racct_available(RacctState.ENABLED)

    @pytest.mark.parametrize(
        "state,message",
        [
            (RacctState.DISABLED, "kern.racct.enable=1"),
            (RacctState.JAILED, "cannot run within a jail"),
            (RacctState.NOT_PRESENT, "Support not present in kernel"),
        ],
    )
    def test_unavailable(self, state, message):
        with pytest.raises(RacctUnavailableError, match=message):
            ensure_racct_available(state)

    def test_not_freebsd(self):
        """A missing libc interface MUST read as RACCT not present."""
        with patch("jail_exporter.privilege.racct_state", side_effect=OSError(38, "not available")):
            with pytest.raises(RacctUnavailableError, match="Support not present"):
                ensure_racct_available()
