# PATH: tests/conftest.py
"""
Pytest configuration and fixtures for FLARB tests.
"""

import sys
from pathlib import Path

import pytest

# Add project root (and tests/ for the shared fakes) to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))
sys.path.insert(0, str(Path(__file__).parent))

from core.time import ManualClock  # noqa: E402

# 2026-01-05 12:00:00 UTC
START_TIME = 1767614400.0


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START_TIME)
