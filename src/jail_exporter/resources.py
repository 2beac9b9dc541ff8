"""Resource kinds and samples reported by the RACCT/RCTL subsystem.

Descriptions of the resources are taken from rctl(8).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SeriesKind(str, Enum):
    """How a resource value behaves over the lifetime of a jail."""

    COUNTER = "counter"  # Monotonic while the jail lives
    GAUGE = "gauge"  # Instantaneous value


class ResourceKind(Enum):
    """Closed set of resources tracked by rctl(8).

    Each member carries its rctl key, the exported metric name (without the
    ``jail_`` namespace), a help string and its series semantic.
    """

    COREDUMPSIZE = ("coredumpsize", "coredumpsize_bytes", "core dump size, in bytes", SeriesKind.GAUGE)
    CPUTIME = ("cputime", "cputime_seconds_total", "CPU time, in seconds", SeriesKind.COUNTER)
    DATASIZE = ("datasize", "datasize_bytes", "data size, in bytes", SeriesKind.GAUGE)
    MAXPROC = ("maxproc", "maxproc", "number of processes", SeriesKind.GAUGE)
    MEMORYLOCKED = ("memorylocked", "memorylocked_bytes", "locked memory, in bytes", SeriesKind.GAUGE)
    MEMORYUSE = ("memoryuse", "memoryuse_bytes", "resident set size, in bytes", SeriesKind.GAUGE)
    MSGQQUEUED = ("msgqqueued", "msgqqueued", "number of queued SysV messages", SeriesKind.GAUGE)
    MSGQSIZE = ("msgqsize", "msgqsize_bytes", "SysV message queue size, in bytes", SeriesKind.GAUGE)
    NMSGQ = ("nmsgq", "nmsgq", "number of SysV message queues", SeriesKind.GAUGE)
    NSEM = ("nsem", "nsem", "number of SysV semaphores", SeriesKind.GAUGE)
    NSEMOP = (
        "nsemop",
        "nsemop",
        "number of SysV semaphores modified in a single semop(2) call",
        SeriesKind.GAUGE,
    )
    NSHM = ("nshm", "nshm", "number of SysV shared memory segments", SeriesKind.GAUGE)
    NTHR = ("nthr", "nthr", "number of threads", SeriesKind.GAUGE)
    OPENFILES = ("openfiles", "openfiles", "file descriptor table size", SeriesKind.GAUGE)
    PCPU = ("pcpu", "pcpu_used", "%CPU, in percents of a single CPU core", SeriesKind.GAUGE)
    PSEUDOTERMINALS = ("pseudoterminals", "pseudoterminals", "number of PTYs", SeriesKind.GAUGE)
    READBPS = ("readbps", "readbps", "filesystem reads, in bytes per second", SeriesKind.GAUGE)
    READIOPS = ("readiops", "readiops", "filesystem reads, in operations per second", SeriesKind.GAUGE)
    SHMSIZE = ("shmsize", "shmsize_bytes", "SysV shared memory size, in bytes", SeriesKind.GAUGE)
    STACKSIZE = ("stacksize", "stacksize_bytes", "stack size, in bytes", SeriesKind.GAUGE)
    SWAPUSE = (
        "swapuse",
        "swapuse_bytes",
        "swap space that may be reserved or used, in bytes",
        SeriesKind.GAUGE,
    )
    VMEMORYUSE = ("vmemoryuse", "vmemoryuse_bytes", "address space limit, in bytes", SeriesKind.GAUGE)
    WALLCLOCK = ("wallclock", "wallclock_seconds_total", "wallclock time, in seconds", SeriesKind.COUNTER)
    WRITEBPS = ("writebps", "writebps", "filesystem writes, in bytes per second", SeriesKind.GAUGE)
    WRITEIOPS = ("writeiops", "writeiops", "filesystem writes, in operations per second", SeriesKind.GAUGE)

    def __init__(self, rctl_key: str, metric_name: str, description: str, semantic: SeriesKind):
        self.rctl_key = rctl_key
        self.metric_name = metric_name
        self.description = description
        self.semantic = semantic

    @classmethod
    def from_rctl(cls, key: str) -> ResourceKind:
        """Look up a resource by its rctl key.

        Raises:
            ValueError: If the key is not a known rctl resource.
        """
        for kind in cls:
            if kind.rctl_key == key:
                return kind
        raise ValueError(f"Unknown rctl resource: {key!r}")


@dataclass(frozen=True)
class ContainerIdentity:
    """A live jail as seen by one enumeration."""

    id: int
    name: str


@dataclass(frozen=True)
class ResourceSample:
    """Last observed value of one resource for one jail."""

    kind: ResourceKind
    value: int | float

    @property
    def semantic(self) -> SeriesKind:
        return self.kind.semantic


# Resource usage of a single jail, as returned by an AccountingSource.
Usage = dict[ResourceKind, ResourceSample]


def usage_from_values(values: dict[ResourceKind, int | float]) -> Usage:
    """Build a Usage mapping from bare values."""
    return {kind: ResourceSample(kind=kind, value=value) for kind, value in values.items()}
