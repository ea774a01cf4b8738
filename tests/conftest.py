"""
Root conftest.py for AlgoViz backend tests.

Shared fixtures and pytest configuration for all test modules.
"""

import sys
from pathlib import Path

import pytest

# Ensure the repository root is in the path
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))


# ============================================================================
# Pytest Hooks
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "websocket: mark test as involving WebSocket communication",
    )
    config.addinivalue_line(
        "markers",
        "api: mark test as exercising the HTTP surface",
    )


def pytest_collection_modifyitems(config, items):
    """
    Automatically mark tests based on their module or name.

    - Tests in test_api.py are marked with 'api'
    - Tests with 'websocket' in name are marked with 'websocket'
    """
    for item in items:
        if item.fspath.basename == "test_api.py":
            item.add_marker(pytest.mark.api)

        if "websocket" in item.name.lower():
            item.add_marker(pytest.mark.websocket)


# ============================================================================
# Shared Fixtures
# ============================================================================


class FakeClock:
    """Monotonic clock moved by hand."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def open_grid_params():
    """3x3 grid without walls from the top-left to the bottom-right corner."""
    return {"rows": 3, "cols": 3, "start": [0, 0], "end": [2, 2]}
