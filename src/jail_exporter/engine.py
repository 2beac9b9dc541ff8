"""Collection-reconciliation engine.

Drives one collection cycle per call:
1. enumerate live jails (failure aborts the cycle, registry untouched)
2. read resource usage per jail (failures only drop that jail this cycle)
3. apply the surviving set to the registry, reaping jails that went away
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field

from jail_exporter.registry import MetricRegistry, Snapshot
from jail_exporter.resources import ContainerIdentity, Usage
from jail_exporter.sources import AccountingError, AccountingSource, ContainerSource

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Result of a reconciliation cycle."""

    snapshot: Snapshot
    warnings: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    added: list[str] = field(default_factory=list)
    reaped: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        """Human-readable summary."""
        parts = [f"{self.snapshot.live_count} jails"]
        if self.added:
            parts.append(f"{len(self.added)} added")
        if self.reaped:
            parts.append(f"{len(self.reaped)} reaped")
        if self.warnings:
            parts.append(f"{len(self.warnings)} warnings")

        return f"ReconcileResult({', '.join(parts)}, {self.duration_seconds:.3f}s)"


class ReconciliationEngine:
    """Runs collection cycles against a MetricRegistry.

    Cycles are mutually exclusive: concurrent callers queue on the cycle lock
    and each receives a fresh, complete cycle. The slow source calls happen
    under the cycle lock only; readers of the registry are held off just for
    the final apply().
    """

    def __init__(
        self,
        container_source: ContainerSource,
        accounting_source: AccountingSource,
        registry: MetricRegistry | None = None,
    ):
        """Initialize the engine.

        Args:
            container_source: Source of live jails.
            accounting_source: Source of per-jail resource usage.
            registry: Registry to maintain. A new one is created if omitted.
        """
        self.container_source = container_source
        self.accounting_source = accounting_source
        self.registry = registry if registry is not None else MetricRegistry()
        self._cycle_lock = threading.Lock()

    def reconcile(self) -> ReconcileResult:
        """Run one collection cycle.

        Returns:
            ReconcileResult with the post-cycle snapshot and any per-jail
            warnings.

        Raises:
            EnumerationError: If the jail list cannot be read. The previous
                snapshot stays published.
        """
        with self._cycle_lock:
            start = time.monotonic()

            # Raises EnumerationError straight to the caller.
            identities = self.container_source.list()

            warnings: list[str] = []
            live, usages = self._collect(identities, warnings)

            applied = self.registry.apply(live, usages)
            snapshot = self.registry.snapshot()

        for warning in warnings:
            logger.warning(warning)

        result = ReconcileResult(
            snapshot=snapshot,
            warnings=warnings,
            duration_seconds=time.monotonic() - start,
            added=applied.added,
            reaped=applied.reaped,
        )
        logger.debug(f"Reconcile cycle {snapshot.cycle} complete: {result}")

        return result

    def _collect(
        self,
        identities: list[ContainerIdentity],
        warnings: list[str],
    ) -> tuple[dict[str, ContainerIdentity], dict[str, Usage]]:
        """Read usage for every jail, in enumeration order."""
        live: dict[str, ContainerIdentity] = {}
        usages: dict[str, Usage] = {}
        seen: dict[str, ContainerIdentity] = {}

        for identity in identities:
            logger.debug(f"JID: {identity.id}, Name: {identity.name!r}")

            if identity.name in seen:
                warnings.append(
                    f"Duplicate jail name {identity.name!r} "
                    f"(jids {seen[identity.name].id} and {identity.id})"
                )
            seen[identity.name] = identity

            # Last successful lookup wins.
            try:
                usage = self.accounting_source.usage(identity)
            except AccountingError as e:
                warnings.append(f"Skipping jail {identity.name!r} (jid {identity.id}): {e}")
                continue

            if not usage:
                warnings.append(
                    f"Skipping jail {identity.name!r} (jid {identity.id}): no resources reported"
                )
                continue

            live[identity.name] = identity
            usages[identity.name] = usage

        return live, usages
