"""
Testing utilities for moltlog.

Mocks and validators are always available. Pytest fixtures live in
``moltlog.testing.fixtures`` and need the test extra.

Example:
    from moltlog.testing import MockSink, validate_sink

    def test_my_sink():
        sink = MockSink()
        result = validate_sink(sink)
        assert result.valid
"""

from .mocks import MemoryDestination, MockSink, MockSinkConfig
from .validators import (
    ProtocolViolationError,
    ValidationResult,
    validate_sink,
    validate_sink_lifecycle,
)

__all__ = [
    "MemoryDestination",
    "MockSink",
    "MockSinkConfig",
    "ProtocolViolationError",
    "ValidationResult",
    "validate_sink",
    "validate_sink_lifecycle",
]
