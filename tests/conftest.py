"""Shared fixtures for jail_exporter tests."""

from __future__ import annotations

import pytest

from jail_exporter.engine import ReconciliationEngine
from jail_exporter.registry import MetricRegistry
from jail_exporter.resources import ContainerIdentity, ResourceKind
from jail_exporter.sources import MockAccountingSource, MockContainerSource

BUILD_INFO = {"pythonversion": "3.12.0", "version": "0.0.0-test"}


@pytest.fixture
def registry():
    """Create a registry with fixed build info."""
    return MetricRegistry(build_info=BUILD_INFO)


@pytest.fixture
def containers():
    """Create a MockContainerSource with one jail named web."""
    return MockContainerSource([ContainerIdentity(id=1, name="web")])


@pytest.fixture
def accounting():
    """Create a MockAccountingSource with usage for web."""
    return MockAccountingSource(
        {"web": {ResourceKind.CPUTIME: 300, ResourceKind.MEMORYUSE: 4096}}
    )


@pytest.fixture
def engine(containers, accounting, registry):
    """Create a ReconciliationEngine over the mock sources."""
    return ReconciliationEngine(
        container_source=containers,
        accounting_source=accounting,
        registry=registry,
    )
