"""Render registry snapshots in the Prometheus exposition formats.

A snapshot is exposed through a custom prometheus_client collector, so the
library's own encoders produce the text (or OpenMetrics) output.
"""

from __future__ import annotations

from collections.abc import Iterator

from prometheus_client import CollectorRegistry
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric
from prometheus_client.exposition import choose_encoder

from jail_exporter.registry import Snapshot
from jail_exporter.resources import ResourceKind, SeriesKind

NAMESPACE = "jail"

# Label carried by every per-jail series
NAME_LABEL = "name"


class SnapshotCollector:
    """prometheus_client collector yielding the series of one snapshot.

    Every metric family is emitted, with its HELP and TYPE, even when no jail
    is running.
    """

    def __init__(self, snapshot: Snapshot, namespace: str = NAMESPACE):
        self.snapshot = snapshot
        self.namespace = namespace

    def _name(self, suffix: str) -> str:
        return f"{self.namespace}_{suffix}"

    def collect(self) -> Iterator[Metric]:
        families: dict[ResourceKind, GaugeMetricFamily | CounterMetricFamily] = {}
        for kind in sorted(ResourceKind, key=lambda k: k.metric_name):
            if kind.semantic is SeriesKind.COUNTER:
                families[kind] = CounterMetricFamily(
                    self._name(kind.metric_name),
                    kind.description,
                    labels=[NAME_LABEL],
                )
            else:
                families[kind] = GaugeMetricFamily(
                    self._name(kind.metric_name),
                    kind.description,
                    labels=[NAME_LABEL],
                )

        jail_id = GaugeMetricFamily(
            self._name("id"),
            "ID of the named jail.",
            labels=[NAME_LABEL],
        )

        for container in self.snapshot.containers:
            jail_id.add_metric([container.name], container.identity.id)
            for sample in container.samples:
                families[sample.kind].add_metric([container.name], sample.value)

        yield from families.values()
        yield jail_id

        yield GaugeMetricFamily(
            self._name("num"),
            "Current number of running jails.",
            value=self.snapshot.live_count,
        )

        labels = [label for label, _ in self.snapshot.build_info]
        build_info = GaugeMetricFamily(
            self._name("exporter_build_info"),
            "A metric with a constant '1' value labelled by version "
            "from which jail_exporter was built",
            labels=labels,
        )
        build_info.add_metric([value for _, value in self.snapshot.build_info], 1)
        yield build_info


def encode(snapshot: Snapshot, accept: str | None = None) -> tuple[bytes, str]:
    """Encode a snapshot for a scraper.

    Args:
        snapshot: Registry snapshot to render.
        accept: The scraper's Accept header, used to pick between the text
            and OpenMetrics formats.

    Returns:
        Tuple of (body, content type).
    """
    registry = CollectorRegistry(auto_describe=False)
    registry.register(SnapshotCollector(snapshot))

    encoder, content_type = choose_encoder(accept)
    return encoder(registry), content_type
