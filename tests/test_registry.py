"""Tests for the metric registry.

Tests cover:
- Insert, in-place update and reaping of series
- Refusal to publish partial or inconsistent state
- Snapshot immutability and ordering
- Torn-read freedom under concurrent apply()
"""

from __future__ import annotations

import threading

import pytest

from jail_exporter.registry import ID_KIND, MetricRegistry
from jail_exporter.resources import ContainerIdentity, ResourceKind, usage_from_values


def _state(values: dict[str, tuple[int, dict[ResourceKind, int]]]):
    live = {name: ContainerIdentity(id=jid, name=name) for name, (jid, _) in values.items()}
    usages = {name: usage_from_values(v) for name, (_, v) in values.items()}
    return live, usages


class TestApply:
    """Tests for MetricRegistry.apply()."""

    def test_empty_registry(self, registry):
        """A new registry MUST publish nothing."""
        snapshot = registry.snapshot()
        assert snapshot.containers == ()
        assert snapshot.live_count == 0
        assert snapshot.cycle == 0

    def test_insert(self, registry):
        """New names MUST get series for every resource returned."""
        result = registry.apply(*_state({"web": (1, {ResourceKind.CPUTIME: 300})}))

        assert result.added == ["web"]
        snapshot = registry.snapshot()
        assert snapshot.names() == ["web"]
        assert snapshot.get("web").value(ResourceKind.CPUTIME) == 300
        assert snapshot.live_count == 1

    def test_update_in_place(self, registry):
        """Existing series MUST be updated, not replaced."""
        registry.apply(*_state({"web": (1, {ResourceKind.CPUTIME: 300})}))
        series = registry._entries["web"].series[ResourceKind.CPUTIME]

        result = registry.apply(*_state({"web": (1, {ResourceKind.CPUTIME: 310})}))

        assert result.updated == ["web"]
        assert registry._entries["web"].series[ResourceKind.CPUTIME] is series
        assert series.value == 310

    def test_reap(self, registry):
        """Names missing from the new live set MUST lose every series."""
        registry.apply(*_state({
            "a": (1, {ResourceKind.CPUTIME: 1}),
            "b": (2, {ResourceKind.CPUTIME: 2}),
            "c": (3, {ResourceKind.CPUTIME: 3}),
        }))

        result = registry.apply(*_state({
            "a": (1, {ResourceKind.CPUTIME: 1}),
            "c": (3, {ResourceKind.CPUTIME: 3}),
        }))

        assert result.reaped == ["b"]
        snapshot = registry.snapshot()
        assert snapshot.names() == ["a", "c"]
        assert all(s.container != "b" for s in snapshot.series())
        assert snapshot.live_count == 2

    def test_reap_all(self, registry):
        """An empty live set MUST reap everything."""
        registry.apply(*_state({"web": (1, {ResourceKind.CPUTIME: 300})}))
        registry.apply({}, {})

        snapshot = registry.snapshot()
        assert snapshot.series() == []
        assert snapshot.live_count == 0

    def test_resource_dropped_between_cycles(self, registry):
        """A resource no longer reported MUST not keep its old value."""
        registry.apply(*_state({"web": (1, {ResourceKind.CPUTIME: 1, ResourceKind.NTHR: 5})}))
        registry.apply(*_state({"web": (1, {ResourceKind.CPUTIME: 2})}))

        container = registry.snapshot().get("web")
        assert container.value(ResourceKind.NTHR) is None
        assert container.value(ResourceKind.CPUTIME) == 2

    def test_jid_change_updates_id_series(self, registry):
        """A restarted jail with a new jid MUST publish the new id."""
        registry.apply(*_state({"web": (1, {ResourceKind.CPUTIME: 1})}))
        registry.apply(*_state({"web": (7, {ResourceKind.CPUTIME: 1})}))

        id_series = [s for s in registry.snapshot().series() if s.kind == ID_KIND]
        assert [(s.container, s.value) for s in id_series] == [("web", 7)]

    def test_refuses_empty_usage(self, registry):
        """apply() MUST never publish a jail without samples."""
        live = {"web": ContainerIdentity(1, "web")}
        with pytest.raises(ValueError, match="without samples"):
            registry.apply(live, {"web": {}})
        assert registry.snapshot().cycle == 0

    def test_refuses_mismatched_keys(self, registry):
        """apply() MUST reject usage for names outside the live set."""
        live = {"web": ContainerIdentity(1, "web")}
        with pytest.raises(ValueError):
            registry.apply(live, {"db": usage_from_values({ResourceKind.NTHR: 1})})

    def test_cycle_counter(self, registry):
        registry.apply({}, {})
        registry.apply({}, {})
        assert registry.snapshot().cycle == 2

    def test_live_names(self, registry):
        registry.apply(*_state({"web": (1, {ResourceKind.CPUTIME: 1})}))
        assert registry.live_names() == frozenset({"web"})


class TestSnapshot:
    """Tests for Snapshot."""

    def test_snapshot_is_a_copy(self, registry):
        """Snapshots MUST not change when the registry does."""
        registry.apply(*_state({"web": (1, {ResourceKind.CPUTIME: 300})}))
        before = registry.snapshot()

        registry.apply(*_state({"web": (1, {ResourceKind.CPUTIME: 400})}))

        assert before.get("web").value(ResourceKind.CPUTIME) == 300
        assert registry.snapshot().get("web").value(ResourceKind.CPUTIME) == 400

    def test_snapshot_sorted(self, registry):
        """Jails MUST be ordered by name regardless of apply order."""
        registry.apply(*_state({
            "zeta": (1, {ResourceKind.NTHR: 1}),
            "alpha": (2, {ResourceKind.NTHR: 1}),
        }))
        assert registry.snapshot().names() == ["alpha", "zeta"]

    def test_series_include_id(self, registry):
        registry.apply(*_state({"web": (4, {ResourceKind.CPUTIME: 300})}))
        keys = {(s.kind, s.container) for s in registry.snapshot().series()}
        assert keys == {(ID_KIND, "web"), (ResourceKind.CPUTIME, "web")}

    def test_build_info(self, registry):
        snapshot = registry.snapshot()
        assert dict(snapshot.build_info) == {"pythonversion": "3.12.0", "version": "0.0.0-test"}

    def test_default_build_info(self):
        registry = MetricRegistry()
        assert set(registry.build_info) == {"pythonversion", "version"}

    def test_same_state_ignores_cycle(self, registry):
        state = _state({"web": (1, {ResourceKind.CPUTIME: 300})})
        registry.apply(*state)
        first = registry.snapshot()
        registry.apply(*state)
        second = registry.snapshot()

        assert first.cycle != second.cycle
        assert first.same_state(second)


class TestConcurrency:
    """Readers MUST never observe a torn update."""

    def test_concurrent_snapshots_see_whole_cycles(self, registry):
        state_a = _state({
            "a": (1, {ResourceKind.CPUTIME: 1, ResourceKind.NTHR: 1}),
            "b": (2, {ResourceKind.CPUTIME: 1, ResourceKind.NTHR: 1}),
        })
        state_b = _state({
            "c": (3, {ResourceKind.CPUTIME: 2, ResourceKind.NTHR: 2}),
        })
        registry.apply(*state_a)

        stop = threading.Event()
        problems: list[str] = []

        def writer():
            while not stop.is_set():
                registry.apply(*state_b)
                registry.apply(*state_a)

        def reader():
            for _ in range(2000):
                snapshot = registry.snapshot()
                names = snapshot.names()
                values = {s.value for s in snapshot.series() if s.kind != ID_KIND}

                if names == ["a", "b"]:
                    ok = values == {1} and snapshot.live_count == 2
                elif names == ["c"]:
                    ok = values == {2} and snapshot.live_count == 1
                else:
                    ok = False
                if not ok:
                    problems.append(f"torn snapshot: {names} {values} {snapshot.live_count}")

        writer_thread = threading.Thread(target=writer)
        readers = [threading.Thread(target=reader) for _ in range(4)]

        writer_thread.start()
        for t in readers:
            t.start()
        for t in readers:
            t.join()
        stop.set()
        writer_thread.join()

        assert problems == []
