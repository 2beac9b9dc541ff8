"""Label-indexed metric registry.

Holds every exported series, keyed by (metric kind, jail name), and keeps the
set of published jail names equal to the live set of the last successful
cycle.

Concurrency model:
- apply() is the only mutator and is called by one reconciliation at a time
- snapshot() may be called from any number of threads
- both hold the registry lock only while touching in-memory dictionaries, so a
  snapshot reflects either the whole of cycle N or the whole of cycle N+1
"""

from __future__ import annotations

import logging
import platform
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field

from jail_exporter import __version__
from jail_exporter.resources import (
    ContainerIdentity,
    ResourceKind,
    ResourceSample,
    Usage,
)

logger = logging.getLogger(__name__)

# Derived per-jail series sourced from ContainerIdentity rather than rctl.
ID_KIND = "id"


def default_build_info() -> dict[str, str]:
    """Labels of the constant build info series."""
    return {
        "pythonversion": platform.python_version(),
        "version": __version__,
    }


@dataclass
class MetricSeries:
    """One exported series and its last observed value."""

    kind: ResourceKind | str
    container: str
    value: int | float


@dataclass(frozen=True)
class ContainerSnapshot:
    """Published state of a single jail."""

    identity: ContainerIdentity
    samples: tuple[ResourceSample, ...]

    @property
    def name(self) -> str:
        return self.identity.name

    def value(self, kind: ResourceKind) -> int | float | None:
        for sample in self.samples:
            if sample.kind is kind:
                return sample.value
        return None


@dataclass(frozen=True)
class Snapshot:
    """Immutable view of the registry after one cycle.

    Jails are ordered by name and samples by metric name so that two
    snapshots of the same state compare (and encode) identically.
    """

    cycle: int
    containers: tuple[ContainerSnapshot, ...]
    live_count: int
    build_info: tuple[tuple[str, str], ...]

    def names(self) -> list[str]:
        return [c.name for c in self.containers]

    def get(self, name: str) -> ContainerSnapshot | None:
        for container in self.containers:
            if container.name == name:
                return container
        return None

    def series(self) -> list[MetricSeries]:
        """Flatten into per-jail series, including the derived id series."""
        result: list[MetricSeries] = []
        for container in self.containers:
            result.append(MetricSeries(ID_KIND, container.name, container.identity.id))
            for sample in container.samples:
                result.append(MetricSeries(sample.kind, container.name, sample.value))
        return result

    def same_state(self, other: Snapshot) -> bool:
        """Compare published state, ignoring the cycle number."""
        return (
            self.containers == other.containers
            and self.live_count == other.live_count
            and self.build_info == other.build_info
        )


@dataclass
class ApplyResult:
    """What a single apply() changed."""

    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    reaped: list[str] = field(default_factory=list)


@dataclass
class _ContainerEntry:
    identity: ContainerIdentity
    id_series: MetricSeries
    series: dict[ResourceKind, MetricSeries] = field(default_factory=dict)


class MetricRegistry:
    """Thread-safe storage for the exported series.

    Registries are plain objects passed to the engine and transports, so tests
    may run any number of them side by side.
    """

    def __init__(self, build_info: Mapping[str, str] | None = None):
        """Initialize an empty registry.

        Args:
            build_info: Labels for the build info series. Defaults to the
                running Python and package versions.
        """
        self._lock = threading.Lock()
        self._entries: dict[str, _ContainerEntry] = {}
        self._live_names: frozenset[str] = frozenset()
        self._live_count = 0
        self._cycle = 0
        info = dict(build_info) if build_info is not None else default_build_info()
        self._build_info: tuple[tuple[str, str], ...] = tuple(sorted(info.items()))

    @property
    def build_info(self) -> dict[str, str]:
        return dict(self._build_info)

    def live_names(self) -> frozenset[str]:
        """Names published by the last apply()."""
        with self._lock:
            return self._live_names

    def apply(
        self,
        live: Mapping[str, ContainerIdentity],
        usages: Mapping[str, Usage],
    ) -> ApplyResult:
        """Replace the published state with the result of one cycle.

        Names new to this cycle get fresh series, names seen before have their
        existing series updated in place, and every series of a name missing
        from ``live`` is reaped.

        Args:
            live: Jails that had a successful usage lookup, keyed by name.
            usages: Resource usage for each name in ``live``.

        Returns:
            ApplyResult listing added, updated and reaped names.

        Raises:
            ValueError: If ``live`` and ``usages`` disagree or a jail has no
                samples. Nothing is mutated in that case.
        """
        if set(live) != set(usages):
            raise ValueError("live set and usage keys differ")
        for name, identity in live.items():
            if identity.name != name:
                raise ValueError(f"identity {identity.name!r} filed under {name!r}")
            if not usages[name]:
                raise ValueError(f"refusing to publish {name!r} without samples")

        result = ApplyResult()
        new_names = frozenset(live)

        with self._lock:
            for name in self._live_names - new_names:
                del self._entries[name]
                result.reaped.append(name)

            for name, identity in live.items():
                usage = usages[name]
                entry = self._entries.get(name)

                if entry is None:
                    entry = _ContainerEntry(
                        identity=identity,
                        id_series=MetricSeries(ID_KIND, name, identity.id),
                    )
                    self._entries[name] = entry
                    result.added.append(name)
                else:
                    entry.identity = identity
                    entry.id_series.value = identity.id
                    result.updated.append(name)

                for kind in list(entry.series):
                    if kind not in usage:
                        del entry.series[kind]

                for kind, sample in usage.items():
                    series = entry.series.get(kind)
                    if series is None:
                        entry.series[kind] = MetricSeries(kind, name, sample.value)
                    else:
                        series.value = sample.value

            self._live_names = new_names
            self._live_count = len(new_names)
            self._cycle += 1

        if result.reaped:
            logger.debug(f"Reaped series for {len(result.reaped)} jails: {sorted(result.reaped)}")

        return result

    def snapshot(self) -> Snapshot:
        """Return an immutable copy of all current series."""
        with self._lock:
            containers = tuple(
                ContainerSnapshot(
                    identity=entry.identity,
                    samples=tuple(
                        ResourceSample(kind=s.kind, value=s.value)
                        for s in sorted(entry.series.values(), key=lambda s: s.kind.metric_name)
                    ),
                )
                for _, entry in sorted(self._entries.items())
            )
            return Snapshot(
                cycle=self._cycle,
                containers=containers,
                live_count=self._live_count,
                build_info=self._build_info,
            )
