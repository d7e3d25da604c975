"""
Root pytest configuration.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest


# Register moltlog testing fixtures for all tests
pytest_plugins = ("moltlog.testing.fixtures",)

_LOG_ENV_VARS = (
    "LOG_MONGODB_URI",
    "MONGODB_URI",
    "LOG_DATABASE",
    "LOG_COLLECTION",
    "LOG_SERVICE",
    "LOG_BATCH_SIZE",
    "LOG_FLUSH_MS",
    "LOG_LEVEL",
    "LOG_TO_MONGO",
    "APP_ENV",
    "LOG_APP_ENV",
    "LOG_FILE",
    "LOG_STDOUT",
    "LOG_DRAIN_TIMEOUT_SECONDS",
    "LOG_ATEXIT_DRAIN_ENABLED",
    "LOG_SIGNAL_HANDLER_ENABLED",
    "LOG_ENABLE_METRICS",
)


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line(
        "markers",
        "critical: Tests that must never fail - core functionality",
    )
    config.addinivalue_line(
        "markers",
        "integration: Tests wiring several components together",
    )
    config.addinivalue_line(
        "markers",
        "slow: Tests that take >1 second",
    )
    config.addinivalue_line(
        "markers",
        "property: Property-based tests (may be slow)",
    )


@pytest.fixture(autouse=True)
def reset_diagnostics() -> Generator[None, None, None]:
    """Restore the stderr diagnostics writer and rate-limit state per test."""
    import moltlog.core.diagnostics as diag

    diag._reset_for_tests()
    yield
    diag._reset_for_tests()


@pytest.fixture(autouse=True)
def clean_log_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's LOG_* environment out of settings tests."""
    for name in _LOG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_shutdown_registry() -> Generator[None, None, None]:
    import moltlog.core.shutdown as shutdown

    yield
    shutdown._reset_for_tests()
