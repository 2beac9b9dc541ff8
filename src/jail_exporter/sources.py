"""Data sources consulted by each collection cycle.

Two leaf collaborators feed the reconciliation engine:
- ContainerSource: the set of live jails at the instant it is called
- AccountingSource: the resource usage of one jail

Both are plain blocking calls; they talk to the kernel, not the network.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from jail_exporter import ExporterError
from jail_exporter.resources import ContainerIdentity, ResourceKind, Usage, usage_from_values


class EnumerationError(ExporterError):
    """Raised when the live jail list cannot be read.

    Fatal for the cycle: there is nothing partial to publish.
    """

    pass


class AccountingError(ExporterError):
    """Raised when resource usage for a single jail cannot be read."""

    def __init__(self, name: str, message: str):
        super().__init__(f"{name}: {message}")
        self.name = name


class ContainerSource(ABC):
    """Produces the current set of live jails. No caching."""

    @abstractmethod
    def list(self) -> list[ContainerIdentity]:
        """Return the jails alive right now, in enumeration order.

        Raises:
            EnumerationError: If the underlying OS call fails.
        """
        ...


class AccountingSource(ABC):
    """Produces resource usage for a jail."""

    @abstractmethod
    def usage(self, identity: ContainerIdentity) -> Usage:
        """Return the current resource usage of a jail.

        Raises:
            AccountingError: If the jail vanished or accounting is unavailable.
        """
        ...


class MockContainerSource(ContainerSource):
    """In-memory container source for testing.

    Allows tests to add and remove jails between cycles and to make the
    enumeration itself fail.
    """

    def __init__(self, containers: list[ContainerIdentity] | None = None):
        self._containers: list[ContainerIdentity] = list(containers or [])
        self.fail_with: str | None = None
        self.list_calls: int = 0

    def add(self, identity: ContainerIdentity) -> None:
        self._containers.append(identity)

    def remove(self, name: str) -> None:
        self._containers = [c for c in self._containers if c.name != name]

    def set(self, containers: list[ContainerIdentity]) -> None:
        self._containers = list(containers)

    def list(self) -> list[ContainerIdentity]:
        self.list_calls += 1
        if self.fail_with is not None:
            raise EnumerationError(self.fail_with)
        return list(self._containers)


class MockAccountingSource(AccountingSource):
    """In-memory accounting source for testing.

    Usage is keyed by jail name. Jails without usage, or listed in
    ``failing``, raise AccountingError.
    """

    def __init__(self, usage: dict[str, dict[ResourceKind, int | float]] | None = None):
        self._usage: dict[str, dict[ResourceKind, int | float]] = dict(usage or {})
        self.failing: set[str] = set()
        self.usage_calls: list[str] = []

    def set_usage(self, name: str, values: dict[ResourceKind, int | float]) -> None:
        self._usage[name] = dict(values)

    def clear_usage(self, name: str) -> None:
        self._usage.pop(name, None)

    def usage(self, identity: ContainerIdentity) -> Usage:
        self.usage_calls.append(identity.name)
        if identity.name in self.failing:
            raise AccountingError(identity.name, "jail vanished")
        if identity.name not in self._usage:
            raise AccountingError(identity.name, "no resource accounting")
        return usage_from_values(self._usage[identity.name])
