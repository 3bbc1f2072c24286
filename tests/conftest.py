"""
Pytest configuration and shared fixtures for alpaca-tracker tests.

Usage:
    @pytest.fixture functions are automatically available to all tests.
    Import helpers from conftest when needed.
"""
import sys
from datetime import date, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest


def pytest_configure():
    """
    Ensure `src/` is on sys.path for the src-layout package import (`alpaca_tracker`).
    This keeps tests runnable without requiring an editable install.
    """
    root = Path(__file__).resolve().parents[1]
    src = root / "src"
    if src.exists():
        sys.path.insert(0, str(src))


# =============================================================================
# Test Data Helpers
# =============================================================================

def snapshots(start: date, equities: list[float]) -> list[Any]:
    """
    Consecutive-day equity snapshots starting at `start`.

    Usage:
        snaps = snapshots(date(2024, 1, 2), [100.0, 110.0, 121.0])
    """
    from alpaca_tracker.twr.models import EquitySnapshot

    return [EquitySnapshot(date=start + timedelta(days=i), equity=float(e)) for i, e in enumerate(equities)]


def deposit(d: date, amount: float | str) -> Any:
    from alpaca_tracker.twr.models import ActivityRecord

    return ActivityRecord(activity_type="CSD", date=d, net_amount=str(amount))


def withdrawal(d: date, amount: float | str) -> Any:
    from alpaca_tracker.twr.models import ActivityRecord

    return ActivityRecord(activity_type="CSW", date=d, net_amount=str(amount))


def account(name: str = "Main", first_trade_date: date | None = None) -> Any:
    from alpaca_tracker.config import AccountConfig

    return AccountConfig(name=name, api_key=f"{name}-key", api_secret=f"{name}-secret", first_trade_date=first_trade_date)


class FakeSource:
    """
    In-memory `AccountDataSource`.

    `history` / `activities` / `balances` are keyed by account name; a name in
    `failing` raises from every fetch for that account.
    """

    def __init__(
        self,
        history: dict[str, list[Any]] | None = None,
        activities: dict[str, list[Any]] | None = None,
        balances: dict[str, float] | None = None,
        failing: set[str] | None = None,
    ):
        self.history = history or {}
        self.activities = activities or {}
        self.balances = balances or {}
        self.failing = failing or set()
        self.calls: list[tuple[str, str]] = []

    def _check(self, name: str, what: str) -> None:
        self.calls.append((name, what))
        if name in self.failing:
            raise ConnectionError(f"{what} failed for {name}")

    def equity_history(self, account, start, end):
        self._check(account.name, "history")
        return [s for s in self.history.get(account.name, []) if start <= s.date <= end]

    def cash_flows(self, account, start, end):
        self._check(account.name, "activities")
        return [a for a in self.activities.get(account.name, []) if a.date is None or start <= a.date <= end]

    def current_equity(self, account):
        self._check(account.name, "balance")
        return self.balances[account.name]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def context():
    from alpaca_tracker.config import TWRContext

    return TWRContext()


@pytest.fixture
def mock_alpaca_trading_client() -> MagicMock:
    """Mock Alpaca TradingClient for tests."""
    client = MagicMock()
    mock_account = MagicMock()
    mock_account.equity = "100000.00"
    client.get_account.return_value = mock_account
    return client
