"""Fixtures for unit tests, backed by an in-memory Pulsar."""

import pytest

from fake_pulsar import ADMIN_URL, SERVICE_URL, FakeCluster
from pulsarkit.runtime.client import BrokerClient
from pulsarkit.runtime.operator import PulsarRuntimeOperator


@pytest.fixture
def cluster() -> FakeCluster:
    """Fresh broker state for each test."""
    return FakeCluster()

@pytest.fixture
def broker(cluster: FakeCluster) -> BrokerClient:
    return BrokerClient(cluster.client, cluster.admin)

@pytest.fixture
def operator(broker: BrokerClient):
    """Operator wired to the in-memory broker."""
    with PulsarRuntimeOperator(SERVICE_URL, ADMIN_URL, broker=broker) as op:
        yield op
