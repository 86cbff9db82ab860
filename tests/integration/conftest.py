"""Pytest fixtures for integration tests against a running Pulsar.

Start a standalone broker with transactions enabled, for example:

    docker run -d -p 6650:6650 -p 8080:8080 \\
        -e PULSAR_PREFIX_transactionCoordinatorEnabled=true \\
        apachepulsar/pulsar:3.2.0 bin/pulsar standalone

Test subset execution:
    pytest -m pulsar                 # Run only Pulsar tests
    pytest -m "pulsar and not slow"  # Skip the long guarantee runs
"""

import os
import random
import string
import time
from dataclasses import dataclass
from typing import Callable, Generator

import pytest
import requests

from pulsarkit.runtime.operator import PulsarRuntimeOperator


@dataclass
class InfrastructureConfig:
    """Configuration for test infrastructure.

    All settings can be overridden via environment variables:
        PULSAR_SERVICE_URL - Broker URL for host access (default: pulsar://localhost:6650)
        PULSAR_ADMIN_URL - Admin REST URL for host access (default: http://localhost:8080)
        PULSAR_CONTAINER_SERVICE_URL - Broker URL handed to pipelines (default: service URL)
        PULSAR_CONTAINER_ADMIN_URL - Admin URL handed to pipelines (default: admin URL)
    """

    service_url: str = ""
    admin_url: str = ""
    container_service_url: str = ""
    container_admin_url: str = ""

    def __post_init__(self):
        """Load configuration from environment variables with defaults."""
        self.service_url = os.getenv("PULSAR_SERVICE_URL", "pulsar://localhost:6650")
        self.admin_url = os.getenv("PULSAR_ADMIN_URL", "http://localhost:8080")
        self.container_service_url = os.getenv("PULSAR_CONTAINER_SERVICE_URL", self.service_url)
        self.container_admin_url = os.getenv("PULSAR_CONTAINER_ADMIN_URL", self.admin_url)


# Global config
INFRA_CONFIG = InfrastructureConfig()


def is_pulsar_healthy(admin_url: str, timeout: int = 5) -> bool:
    """Check if the broker answers on its admin API."""
    try:
        response = requests.get(f"{admin_url}/admin/v2/clusters", timeout=timeout)
        return response.status_code == 200
    except requests.exceptions.RequestException:
        return False


def wait_for_service(
    check_fn: Callable[[], bool],
    service_name: str,
    max_wait: int = 60,
    interval: int = 2,
) -> bool:
    """Wait for a service to become healthy."""
    start = time.time()
    while time.time() - start < max_wait:
        if check_fn():
            return True
        print(f"Waiting for {service_name}...")
        time.sleep(interval)
    return False


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def pulsar_service() -> InfrastructureConfig:
    """Skip the session's Pulsar tests when no broker is reachable."""
    if not is_pulsar_healthy(INFRA_CONFIG.admin_url):
        max_wait = int(os.getenv("PULSAR_WAIT_SECONDS", "0"))
        if not max_wait or not wait_for_service(
            lambda: is_pulsar_healthy(INFRA_CONFIG.admin_url), "Pulsar", max_wait=max_wait
        ):
            pytest.skip(f"Pulsar is not reachable at {INFRA_CONFIG.admin_url}")
    return INFRA_CONFIG


@pytest.fixture(scope="session")
def pulsar_operator(
    pulsar_service: InfrastructureConfig,
) -> Generator[PulsarRuntimeOperator, None, None]:
    """Session-scoped operator, closed after the last test."""
    operator = PulsarRuntimeOperator(
        pulsar_service.service_url,
        pulsar_service.admin_url,
        container_service_url=pulsar_service.container_service_url,
        container_admin_url=pulsar_service.container_admin_url,
    )
    yield operator
    operator.close()


@pytest.fixture
def unique_topic(pulsar_operator: PulsarRuntimeOperator) -> Generator[Callable[[str], str], None, None]:
    """Factory for topic names that are deleted after the test."""
    created = []

    def make(prefix: str = "test") -> str:
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=8))
        name = f"{prefix}-{suffix}"
        created.append(name)
        return name

    yield make

    for name in created:
        pulsar_operator.delete_topic(name)
