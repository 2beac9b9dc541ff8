"""FreeBSD adapters for the jail and RACCT/RCTL interfaces.

Thin ctypes wrappers around:
- jail_get(2), to enumerate running jails
- rctl_get_racct(2), to read per-jail resource usage
- sysctlbyname(3), to check whether RACCT is usable at all

libc is only loaded on first use, so the package imports on any platform.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import errno
import logging
import os
from enum import Enum

from jail_exporter.resources import ContainerIdentity, ResourceKind, ResourceSample, Usage
from jail_exporter.sources import (
    AccountingError,
    AccountingSource,
    ContainerSource,
    EnumerationError,
)

logger = logging.getLogger(__name__)

# Include jails that are shutting down, they still hold resources.
JAIL_DYING = 0x08

# Matches security.jail.param.name on FreeBSD.
JAIL_NAME_LEN = 256
JAIL_ERRMSG_LEN = 256

# Same default as rctl.c; the buffer grows by this much on ERANGE.
RCTL_DEFAULT_BUFSIZE = 128 * 1024

CTL_KERN_RACCT_ENABLE = b"kern.racct.enable"
CTL_SECURITY_JAIL_JAILED = b"security.jail.jailed"

_libc: ctypes.CDLL | None = None


class IOVec(ctypes.Structure):
    """struct iovec."""

    _fields_ = [
        ("iov_base", ctypes.c_void_p),
        ("iov_len", ctypes.c_size_t),
    ]


def load_libc() -> ctypes.CDLL:
    """Load libc with errno tracking.

    Raises:
        OSError: If libc or the required symbols are unavailable.
    """
    global _libc
    if _libc is None:
        path = ctypes.util.find_library("c")
        if path is None:
            raise OSError(errno.ENOSYS, "libc not found")
        libc = ctypes.CDLL(path, use_errno=True)
        for symbol in ("jail_get", "rctl_get_racct", "sysctlbyname"):
            if not hasattr(libc, symbol):
                raise OSError(errno.ENOSYS, f"{symbol} not available on this platform")

        libc.jail_get.argtypes = [ctypes.POINTER(IOVec), ctypes.c_uint, ctypes.c_int]
        libc.jail_get.restype = ctypes.c_int
        libc.rctl_get_racct.argtypes = [
            ctypes.c_char_p,
            ctypes.c_size_t,
            ctypes.c_char_p,
            ctypes.c_size_t,
        ]
        libc.rctl_get_racct.restype = ctypes.c_int
        _libc = libc
    return _libc


def _iov(buf) -> IOVec:
    """Describe a ctypes buffer as an iovec. The caller keeps ``buf`` alive."""
    return IOVec(ctypes.addressof(buf), ctypes.sizeof(buf))


class JailSource(ContainerSource):
    """Enumerate running jails with jail_get(2)."""

    def __init__(self, libc: ctypes.CDLL | None = None):
        self._libc = libc

    @property
    def libc(self) -> ctypes.CDLL:
        if self._libc is None:
            self._libc = load_libc()
        return self._libc

    def _next(self, lastjid: int) -> ContainerIdentity | None:
        """Return the first jail with a jid above ``lastjid``, if any."""
        name = ctypes.create_string_buffer(JAIL_NAME_LEN)
        errmsg = ctypes.create_string_buffer(JAIL_ERRMSG_LEN)

        # Parameter name / value pairs, in jail_get(2) order.
        params = [
            ctypes.create_string_buffer(b"lastjid"),
            ctypes.c_int(lastjid),
            ctypes.create_string_buffer(b"name"),
            name,
            ctypes.create_string_buffer(b"errmsg"),
            errmsg,
        ]
        iov = (IOVec * len(params))(*(_iov(p) for p in params))

        jid = self.libc.jail_get(iov, len(params), JAIL_DYING)
        if jid < 0:
            err = ctypes.get_errno()
            if err == errno.ENOENT:
                return None
            message = errmsg.value.decode("utf-8", "replace") or os.strerror(err)
            raise EnumerationError(f"jail_get failed: {message}")

        return ContainerIdentity(id=jid, name=name.value.decode("utf-8", "replace"))

    def list(self) -> list[ContainerIdentity]:
        try:
            self.libc
        except OSError as e:
            raise EnumerationError(f"Cannot enumerate jails: {e.strerror}") from e

        jails: list[ContainerIdentity] = []
        lastjid = 0
        while True:
            jail = self._next(lastjid)
            if jail is None:
                break
            jails.append(jail)
            lastjid = jail.id

        logger.debug(f"Found {len(jails)} jails")
        return jails


def parse_rusage(name: str, rusage: str) -> Usage:
    """Parse an rctl usage string such as ``cputime=3,memoryuse=4096``.

    Unknown resources are skipped so that newer kernels keep working.

    Raises:
        AccountingError: If a statistic is malformed.
    """
    usage: Usage = {}
    rusage = rusage.strip()
    if not rusage:
        return usage

    for statistic in rusage.split(","):
        key, sep, raw = statistic.partition("=")
        if not sep:
            raise AccountingError(name, f"invalid statistic {statistic!r}")

        try:
            kind = ResourceKind.from_rctl(key)
        except ValueError:
            logger.debug(f"Ignoring unknown rctl resource {key!r}")
            continue

        try:
            value = int(raw)
        except ValueError as e:
            raise AccountingError(name, f"invalid value for {key}: {raw!r}") from e

        usage[kind] = ResourceSample(kind=kind, value=value)

    return usage


class RctlAccountingSource(AccountingSource):
    """Read per-jail resource usage with rctl_get_racct(2)."""

    def __init__(self, libc: ctypes.CDLL | None = None):
        self._libc = libc

    @property
    def libc(self) -> ctypes.CDLL:
        if self._libc is None:
            self._libc = load_libc()
        return self._libc

    def raw_usage(self, name: str) -> str:
        """Return the raw rctl usage string for a jail."""
        try:
            libc = self.libc
        except OSError as e:
            raise AccountingError(name, f"rctl unavailable: {e.strerror}") from e

        filter_ = f"jail:{name}".encode()
        inbuf = ctypes.create_string_buffer(filter_)
        size = RCTL_DEFAULT_BUFSIZE

        while True:
            outbuf = ctypes.create_string_buffer(size)
            rc = libc.rctl_get_racct(inbuf, len(filter_) + 1, outbuf, size)
            if rc == 0:
                return outbuf.value.decode("utf-8", "replace")

            err = ctypes.get_errno()
            if err == errno.ERANGE:
                size += RCTL_DEFAULT_BUFSIZE
                continue
            if err == errno.ESRCH:
                raise AccountingError(name, "jail no longer exists")
            if err in (errno.ENOSYS, errno.EPERM):
                raise AccountingError(name, f"resource accounting unavailable ({racct_state().value})")
            raise AccountingError(name, os.strerror(err))

    def usage(self, identity: ContainerIdentity) -> Usage:
        return parse_rusage(identity.name, self.raw_usage(identity.name))


class RacctState(str, Enum):
    """Availability of RACCT/RCTL in the running kernel."""

    ENABLED = "enabled"
    DISABLED = "disabled"
    JAILED = "jailed"
    NOT_PRESENT = "not present"


def sysctl_int(name: bytes, libc: ctypes.CDLL | None = None) -> int:
    """Read an integer (or boolean) sysctl.

    Raises:
        OSError: If the sysctl does not exist or cannot be read.
    """
    libc = libc if libc is not None else load_libc()
    buf = ctypes.create_string_buffer(8)
    size = ctypes.c_size_t(ctypes.sizeof(buf))

    if libc.sysctlbyname(name, buf, ctypes.byref(size), None, ctypes.c_size_t(0)) != 0:
        err = ctypes.get_errno()
        raise OSError(err, os.strerror(err))

    # bool sysctls (FreeBSD 13+) are one byte, older ones are ints.
    return int.from_bytes(buf.raw[: size.value], "little", signed=True)


def racct_state(libc: ctypes.CDLL | None = None) -> RacctState:
    """Check whether RACCT/RCTL can be used from here.

    Raises:
        OSError: If libc cannot be loaded (not running on FreeBSD).
    """
    libc = libc if libc is not None else load_libc()

    try:
        jailed = sysctl_int(CTL_SECURITY_JAIL_JAILED, libc)
    except OSError:
        # Any error reading this means we assume we're jailed.
        return RacctState.JAILED
    if jailed == 1:
        return RacctState.JAILED

    try:
        enabled = sysctl_int(CTL_KERN_RACCT_ENABLE, libc)
    except OSError:
        return RacctState.NOT_PRESENT

    return RacctState.ENABLED if enabled == 1 else RacctState.DISABLED
