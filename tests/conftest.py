"""Pytest configuration and shared fixtures."""

import asyncio

import pytest
from hypothesis import Verbosity, settings

from cluster_lifecycle.exceptions import ApiError
from cluster_lifecycle.models.cluster import PersistedClusterSnapshot
from cluster_lifecycle.models.node import Host, NodeSelection
from cluster_lifecycle.models.site import MetadataPair, Site

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)

# Load the default profile
settings.load_profile("default")


class FakeBackend:
    """In-memory ClusterBackend that records every call.

    ``failures`` maps a method name to the exception it raises. ``gates``
    maps a method name to an asyncio.Event the call waits on before
    returning, so tests can hold a response in flight.
    """

    def __init__(self, snapshot: PersistedClusterSnapshot | None = None):
        self.snapshot = snapshot
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}

    async def _call(self, method: str, *args):
        self.calls.append((method, *args))
        gate = self.gates.get(method)
        if gate is not None:
            await gate.wait()
        if method in self.failures:
            raise self.failures[method]

    def called(self, method: str) -> list[tuple]:
        return [call[1:] for call in self.calls if call[0] == method]

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    async def get_cluster(self, name):
        await self._call("get_cluster", name)
        if self.snapshot is None:
            raise ApiError(f"GET cluster {name} returned 404", "cluster not found", 404)
        return self.snapshot

    async def create_cluster(self, cluster_spec):
        await self._call("create_cluster", cluster_spec)

    async def update_template(self, name, template):
        await self._call("update_template", name, template)

    async def update_labels(self, name, labels):
        await self._call("update_labels", name, labels)

    async def update_nodes(self, name, nodes):
        await self._call("update_nodes", name, nodes)

    async def create_or_update_metadata(self, metadata):
        await self._call("create_or_update_metadata", metadata)


class RecordingNotifier:
    """Notifier that keeps the outcomes it receives."""

    def __init__(self):
        self.outcomes = []

    def notify(self, outcome):
        self.outcomes.append(outcome)


@pytest.fixture
def snapshot():
    """A persisted two-node cluster."""
    return PersistedClusterSnapshot(
        name="edge-1",
        template="baseline-v0.1.0",
        nodes=(
            NodeSelection(host_id="host-a", role="control-plane"),
            NodeSelection(host_id="host-b", role="worker"),
        ),
        labels={"env": "prod"},
    )


@pytest.fixture
def backend(snapshot):
    return FakeBackend(snapshot)


@pytest.fixture(scope="session")
def backend_factory():
    """FakeBackend class, for tests that need a fresh backend per example."""
    return FakeBackend


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def site():
    """A site with one region pair and one site pair."""
    return Site(
        resource_id="site-1",
        name="portland",
        region="region-1",
        metadata=[MetadataPair(key="site", value="portland", origin="site")],
        inherited_location=[MetadataPair(key="region", value="us-west", origin="region")],
    )


@pytest.fixture
def other_site():
    return Site(resource_id="site-2", name="salem")


@pytest.fixture
def hosts():
    return [
        Host(resource_id="host-a", name="node-a", site_id="site-1"),
        Host(resource_id="host-b", name="node-b", site_id="site-1"),
        Host(resource_id="host-c", uuid="uuid-c", name="node-c", site_id="site-1"),
    ]


@pytest.fixture
def sample_site_payload():
    """Site payload as returned by the inventory API."""
    return {
        "resourceId": "site-1",
        "name": "portland",
        "region": {"resourceId": "region-1"},
        "metadata": [{"key": "site", "value": "portland"}],
        "inheritedMetadata": {"location": [{"key": "region", "value": "us-west"}]},
    }
