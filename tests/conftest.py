"""
Shared pytest configuration.

This file ensures the project root is on sys.path so that `import concierge`
works consistently in all tests, and provides a controllable clock.
"""

import sys
from pathlib import Path

import pytest


# Ensure project root is importable for test modules.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from concierge.storage import MemoryKeyValueStore  # noqa: E402
from tests.utils import FakeClock  # noqa: E402


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv(clock: FakeClock) -> MemoryKeyValueStore:
    return MemoryKeyValueStore(clock=clock)
