"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import random
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.fluency.algorithm_config import LearningAlgorithmConfig  # noqa: E402
from src.fluency.storage import InMemoryKeyValueStore, StorageManager  # noqa: E402
from src.fluency.time_provider import FakeTimeProvider  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (file and database stores)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def fake_clock():
    """Controllable UTC clock starting at 2024-01-01 09:00."""
    return FakeTimeProvider()


@pytest.fixture
def rng():
    """Seeded random source so selection and jitter are reproducible."""
    return random.Random(42)


@pytest.fixture
def memory_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def normal_config():
    return LearningAlgorithmConfig.create_normal()


@pytest.fixture
def speed_run_config():
    return LearningAlgorithmConfig.create_speed_run()


@pytest.fixture
def storage_factory(memory_store, fake_clock, rng):
    """Build an initialized StorageManager for a config."""

    async def _build(config, store=None):
        manager = StorageManager(config, store or memory_store, fake_clock, rng=rng)
        await manager.initialize()
        return manager

    return _build
