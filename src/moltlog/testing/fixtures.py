"""
Pytest fixtures for testing code that logs through moltlog.

Register with ``pytest_plugins = ("moltlog.testing.fixtures",)``.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest

from ..core import diagnostics
from .mocks import MemoryDestination, MockSink
from .validators import validate_sink


@pytest.fixture
def mock_sink() -> MockSink:
    """Fresh MockSink that succeeds on every write."""
    return MockSink()


@pytest.fixture
def memory_destination() -> MemoryDestination:
    return MemoryDestination()


@pytest.fixture
def capture_diagnostics() -> Iterator[list[dict[str, Any]]]:
    """Collect diagnostic payloads instead of writing them to stderr."""
    captured: list[dict[str, Any]] = []
    diagnostics._reset_for_tests()
    diagnostics.set_writer_for_tests(captured.append)
    try:
        yield captured
    finally:
        diagnostics._reset_for_tests()


@pytest.fixture
def assert_valid_sink() -> Any:
    """Fixture returning an assertion helper for sink validation."""

    def _assert(sink: Any) -> None:
        validate_sink(sink).raise_if_invalid()

    return _assert


__all__ = [
    "assert_valid_sink",
    "capture_diagnostics",
    "memory_destination",
    "mock_sink",
]
