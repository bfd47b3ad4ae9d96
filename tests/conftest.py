"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.
"""

import pytest

from src.core.config import ClaimsSettings
from src.services.adapters.memory_repository import InMemoryClaimRepository
from src.services.audit import InMemoryAuditSink
from src.services.claim_lifecycle_service import create_claim_lifecycle_service
from src.utils.clock import ManualClock
from tests.fixtures import NOW


@pytest.fixture
def clock():
    """Clock pinned to a fixed instant."""
    return ManualClock(NOW)


@pytest.fixture
def settings():
    """Default settings, isolated from any local .env file."""
    return ClaimsSettings(_env_file=None)


@pytest.fixture
def repository():
    return InMemoryClaimRepository()


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def service(repository, clock, audit_sink, settings):
    """Fully wired lifecycle service over the in-memory store."""
    return create_claim_lifecycle_service(
        repository, clock=clock, audit_sink=audit_sink, settings=settings
    )


@pytest.fixture
def engine(service):
    return service.engine


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
