"""
"Total Accounts": one synthetic account built from several real ones.

The aggregate equity for a day is the sum over the accounts that actually have
a snapshot for that day; an account with no bar that day is left out of the
sum rather than counted as zero. Cash flows are summed per day across accounts
and the resulting series goes through the same builder as a single account.
"""
from __future__ import annotations

import logging
import math
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable, Sequence

from alpaca_tracker.twr.flows import CashFlowSchedule, aggregate_cash_flows, merge_schedules
from alpaca_tracker.twr.models import ActivityRecord, EquitySnapshot, TWRPoint
from alpaca_tracker.twr.series import build_twr_series, normalize_snapshots

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountSeriesInput:
    account: str
    snapshots: Sequence[EquitySnapshot]
    activities: Sequence[ActivityRecord] = ()
    first_trade_date: date | None = None


def common_start(inputs: Iterable[AccountSeriesInput]) -> date | None:
    """Latest of the accounts' first-trade dates (None when no account has one)."""
    dates = [i.first_trade_date for i in inputs if i.first_trade_date is not None]
    return max(dates) if dates else None


def aggregate_inputs(inputs: Sequence[AccountSeriesInput]) -> tuple[list[EquitySnapshot], CashFlowSchedule]:
    start = common_start(inputs)

    equity: dict[date, list[float]] = defaultdict(list)
    pnl: dict[date, list[float]] = defaultdict(list)
    base: dict[date, list[float]] = defaultdict(list)
    for inp in inputs:
        for s in normalize_snapshots(inp.snapshots):
            if start is not None and s.date < start:
                continue
            equity[s.date].append(float(s.equity))
            pnl[s.date].append(float(s.pnl))
            base[s.date].append(float(s.base_value))

    snapshots: list[EquitySnapshot] = []
    for d in sorted(equity):
        total = math.fsum(equity[d])
        day_pnl = math.fsum(pnl[d])
        opening = total - day_pnl
        snapshots.append(
            EquitySnapshot(
                date=d,
                equity=total,
                pnl=day_pnl,
                pnl_pct=(day_pnl / opening) if opening else 0.0,
                base_value=math.fsum(base[d]),
            )
        )

    schedule = merge_schedules(*(aggregate_cash_flows(i.activities) for i in inputs))
    logger.debug(
        "Aggregated %d account(s) into %d day(s), %d flow day(s), start=%s",
        len(inputs),
        len(snapshots),
        len(schedule.entries),
        start,
    )
    return snapshots, schedule


def build_total_twr(inputs: Sequence[AccountSeriesInput]) -> list[TWRPoint]:
    snapshots, schedule = aggregate_inputs(inputs)
    return build_twr_series(snapshots, schedule)


def account_daily_change(last_equity: float | None, current_balance: float) -> float:
    """Fractional change from the last closed session to the live balance."""
    if last_equity is None or last_equity <= 0:
        return 0.0
    return float(current_balance) / float(last_equity) - 1.0


class DailyChangeStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class DailyChange:
    account: str
    previous_equity: float
    current_equity: float

    @property
    def change(self) -> float:
        return self.current_equity - self.previous_equity

    @property
    def change_pct(self) -> float:
        return account_daily_change(self.previous_equity, self.current_equity)


@dataclass(frozen=True)
class AggregateDailyChange:
    status: DailyChangeStatus
    change: float | None = None
    change_pct: float | None = None
    previous_equity: float | None = None
    current_equity: float | None = None
    pending: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    accounts: tuple[DailyChange, ...] = field(default=())

    @property
    def ready(self) -> bool:
        return self.status is DailyChangeStatus.READY


class DailyChangeTracker:
    """
    Readiness gate for the aggregate daily-change figure.

    Each constituent account reports independently (in any order, from any
    thread). The aggregate is only produced once every constituent has
    reported; one failed constituent makes the aggregate unavailable rather
    than silently under-counted.
    """

    def __init__(self, accounts: Iterable[str]):
        self._accounts = tuple(dict.fromkeys(accounts))
        self._changes: dict[str, DailyChange] = {}
        self._failed: dict[str, str] = {}
        self._cond = threading.Condition()

    @property
    def accounts(self) -> tuple[str, ...]:
        return self._accounts

    def _check(self, account: str) -> None:
        if account not in self._accounts:
            raise ValueError(f"Unknown account '{account}' (expected one of {list(self._accounts)})")

    def report(self, account: str, previous_equity: float, current_equity: float) -> None:
        self._check(account)
        with self._cond:
            self._changes[account] = DailyChange(account, float(previous_equity), float(current_equity))
            self._failed.pop(account, None)
            self._cond.notify_all()

    def report_failure(self, account: str, reason: str = "") -> None:
        self._check(account)
        with self._cond:
            logger.warning("Daily change unavailable for %s: %s", account, reason or "unknown error")
            self._failed[account] = reason
            self._changes.pop(account, None)
            self._cond.notify_all()

    def _pending(self) -> tuple[str, ...]:
        return tuple(a for a in self._accounts if a not in self._changes and a not in self._failed)

    def _snapshot(self) -> AggregateDailyChange:
        pending = self._pending()
        failed = tuple(a for a in self._accounts if a in self._failed)
        if failed:
            return AggregateDailyChange(DailyChangeStatus.UNAVAILABLE, pending=pending, failed=failed)
        if pending or not self._accounts:
            return AggregateDailyChange(DailyChangeStatus.PENDING, pending=pending)

        changes = tuple(self._changes[a] for a in self._accounts)
        prev = math.fsum(c.previous_equity for c in changes)
        cur = math.fsum(c.current_equity for c in changes)
        return AggregateDailyChange(
            DailyChangeStatus.READY,
            change=cur - prev,
            change_pct=account_daily_change(prev, cur),
            previous_equity=prev,
            current_equity=cur,
            accounts=changes,
        )

    def snapshot(self) -> AggregateDailyChange:
        with self._cond:
            return self._snapshot()

    def wait(self, timeout: float | None = None) -> AggregateDailyChange:
        """
        Block until every constituent has reported (or timeout); return the current state.

        With no constituents there is nothing to wait for and the PENDING
        snapshot comes back immediately.
        """
        with self._cond:
            self._cond.wait_for(lambda: not self._pending(), timeout=timeout)
            return self._snapshot()
