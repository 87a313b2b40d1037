"""
Pytest configuration.

This file adds the project root to the Python path so that tests can import
the domain, repositories, services, connectors and api packages, and provides
shared fixtures built on the in-memory fakes.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from fakes import InMemoryRecordStore  # noqa: E402

FIXED_NOW = datetime(2025, 4, 3, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW
