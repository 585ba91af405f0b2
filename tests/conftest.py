"""
Global pytest configuration and fixtures for KuLendBot tests.

This conftest.py provides:
- Custom pytest markers for test categorization
- Automatic integration test skipping (unless --run-integration is passed)
- Shared fakes for the lending cycle: a clock that never really sleeps and
  a scripted exchange
"""

import sys
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock

import pytest


# Add src to Python path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from kulendbot.modules.ExchangeApi import ExchangeApi  # noqa: E402
from kulendbot.modules.LendingCycle import LendingCycle, RetryPolicy  # noqa: E402


def pytest_addoption(parser):
    """Add custom command-line options for pytest.

    Options:
    --run-integration: Enable integration tests (disabled by default)
    """
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests (disabled by default)",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, isolated, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (slow, real API calls)"
    )
    config.addinivalue_line("markers", "slow: Slow-running tests (take > 1 second)")


def pytest_collection_modifyitems(config, items):
    """Marks tests under tests/integration/ and skips them unless --run-integration is passed."""
    run_integration = config.getoption("--run-integration")

    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker("integration")
            item.add_marker("slow")

        if item.get_closest_marker("integration") and not run_integration:
            item.add_marker(
                pytest.mark.skip(reason="Integration tests skipped. Use --run-integration to run.")
            )


class FakeClock:
    """time() only moves when sleep() is called."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def time(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self.sleeps.append(seconds)
            self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def api():
    api = MagicMock(spec=ExchangeApi)
    api.get_available_balance.return_value = Decimal("100")
    api.get_market_min_rate.return_value = Decimal("0.0005")
    api.create_lend_order.return_value = "order-1"
    api.list_active_lend_orders.return_value = {"totalPage": 0, "items": []}
    api.cancel_lend_order.return_value = "200000"
    return api


@pytest.fixture
def log():
    return MagicMock()


@pytest.fixture
def policy():
    return RetryPolicy(
        poll_interval=10,
        fill_timeout=300,
        balance_retry_delay=1,
        low_balance_delay=300,
        rate_retry_delay=1,
        cancel_retry_delay=10,
    )


@pytest.fixture
def cycle(api, log, policy, clock):
    return LendingCycle(api, log, Decimal("0.001"), Decimal("20"), policy, clock)
