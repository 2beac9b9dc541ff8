"""Property-based tests for the reconciliation invariants.

Uses Hypothesis to drive the engine through random sequences of cycles in
which jails appear, disappear, fail accounting and report nothing.
"""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from jail_exporter.engine import ReconciliationEngine
from jail_exporter.exposition import encode
from jail_exporter.registry import MetricRegistry
from jail_exporter.resources import ContainerIdentity, ResourceKind
from jail_exporter.sources import MockAccountingSource, MockContainerSource

BUILD_INFO = {"pythonversion": "3.12.0", "version": "0.0.0-test"}


# =============================================================================
# Custom Strategies
# =============================================================================

jail_names = st.sampled_from(["web", "db", "cache", "mail", "dns", "ns1"])

usage_values = st.dictionaries(
    st.sampled_from(list(ResourceKind)),
    st.integers(min_value=0, max_value=2**53),
    max_size=6,
)

# None means the jail fails accounting this cycle.
jail_states = st.one_of(st.none(), usage_values)

cycles = st.dictionaries(jail_names, jail_states, max_size=6)


def _prepare(engine: ReconciliationEngine, cycle: dict) -> set[str]:
    """Load one cycle into the mock sources, return the names expected live."""
    accounting = MockAccountingSource()
    identities = []
    expected = set()

    for jid, (name, values) in enumerate(cycle.items(), start=1):
        identities.append(ContainerIdentity(id=jid, name=name))
        if values is None:
            accounting.failing.add(name)
            continue
        accounting.set_usage(name, values)
        if values:
            expected.add(name)

    engine.container_source.set(identities)
    engine.accounting_source = accounting
    return expected


def _engine() -> ReconciliationEngine:
    return ReconciliationEngine(
        MockContainerSource(),
        MockAccountingSource(),
        MetricRegistry(build_info=BUILD_INFO),
    )


# =============================================================================
# Reconciliation Invariants
# =============================================================================


class TestReconcileInvariants:
    """Property tests over sequences of cycles."""

    @given(sequence=st.lists(cycles, min_size=1, max_size=6))
    @settings(max_examples=100)
    def test_published_names_match_successful_lookups(self, sequence):
        """After every cycle exactly the jails with usage MUST be published."""
        engine = _engine()

        for cycle in sequence:
            expected = _prepare(engine, cycle)
            snapshot = engine.reconcile().snapshot

            assert set(snapshot.names()) == expected
            assert {s.container for s in snapshot.series()} == expected

    @given(sequence=st.lists(cycles, min_size=1, max_size=6))
    @settings(max_examples=100)
    def test_live_count_matches_names(self, sequence):
        """The live count MUST equal the number of published jails."""
        engine = _engine()

        for cycle in sequence:
            _prepare(engine, cycle)
            snapshot = engine.reconcile().snapshot

            assert snapshot.live_count == len(snapshot.names())

    @given(first=cycles, second=cycles)
    @settings(max_examples=100)
    def test_reaped_jails_leave_no_series(self, first, second):
        """Jails absent from a cycle MUST have no series after it."""
        engine = _engine()
        _prepare(engine, first)
        before = set(engine.reconcile().snapshot.names())

        expected = _prepare(engine, second)
        result = engine.reconcile()

        assert set(result.reaped) == before - expected
        for name in result.reaped:
            assert result.snapshot.get(name) is None

    @given(cycle=cycles)
    @settings(max_examples=100)
    def test_published_values_are_current(self, cycle):
        """Every published series MUST carry this cycle's value."""
        engine = _engine()
        _prepare(engine, {name: {ResourceKind.NTHR: 1} for name in cycle})
        engine.reconcile()

        _prepare(engine, cycle)
        snapshot = engine.reconcile().snapshot

        for container in snapshot.containers:
            values = cycle[container.name]
            assert {s.kind: s.value for s in container.samples} == values

    @given(cycle=cycles)
    @settings(max_examples=100)
    def test_unchanged_sources_are_idempotent(self, cycle):
        """Two cycles over unchanged sources MUST expose identical output."""
        engine = _engine()
        _prepare(engine, cycle)

        first = engine.reconcile().snapshot
        second = engine.reconcile().snapshot

        assert first.same_state(second)
        assert encode(first)[0] == encode(second)[0]
