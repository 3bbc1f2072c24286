"""
Entry points that fetch account data and run it through the TWR engine.

Every computation takes its `TWRContext` explicitly. Fetches for one request
run concurrently (history, cash flows and, for live views, the current
balance) and are joined before any computation starts; a failure in any of
them fails the whole request so a partially-fetched series is never shown.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor, as_completed
from contextlib import nullcontext
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Generic, Protocol, Sequence, TypeVar

from alpaca_tracker.config import AccountConfig, TWRContext
from alpaca_tracker.twr.aggregate import (
    AccountSeriesInput,
    AggregateDailyChange,
    DailyChangeTracker,
    aggregate_inputs,
    common_start,
)
from alpaca_tracker.twr.flows import CashFlowSchedule, aggregate_cash_flows
from alpaca_tracker.twr.live import extend_with_today
from alpaca_tracker.twr.models import ActivityRecord, EquitySnapshot, TWRPoint
from alpaca_tracker.twr.series import build_twr_series, normalize_snapshots
from alpaca_tracker.twr.window import clamp_and_rebase, first_active_day
from alpaca_tracker.utils.dates import market_today

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_WORKERS = 8
# Calendar days searched backwards for the last closed session (covers long weekends).
LAST_CLOSE_LOOKBACK_DAYS = 14


class AccountDataSource(Protocol):
    def equity_history(self, account: AccountConfig, start: date, end: date) -> list[EquitySnapshot]: ...

    def cash_flows(self, account: AccountConfig, start: date, end: date) -> list[ActivityRecord]: ...

    def current_equity(self, account: AccountConfig) -> float: ...


class TWRUnavailableError(RuntimeError):
    """A series (or daily change) could not be produced because a fetch failed."""

    def __init__(self, account: str, cause: BaseException | None = None):
        msg = f"TWR unavailable for '{account}'"
        if cause is not None:
            msg += f": {type(cause).__name__}: {cause}"
        super().__init__(msg)
        self.account = account
        self.cause = cause


@dataclass
class _AccountFetch:
    account: AccountConfig
    history: Future
    activities: Future
    balance: Future | None = None


@dataclass(frozen=True)
class _AccountData:
    account: AccountConfig
    snapshots: list[EquitySnapshot]
    activities: list[ActivityRecord]
    balance: float | None


def _executor(executor: Executor | None, workers: int):
    if executor is not None:
        return nullcontext(executor)
    return ThreadPoolExecutor(max_workers=max(1, int(workers)))


def _effective_start(account: AccountConfig, start: date) -> date:
    if account.first_trade_date is not None and account.first_trade_date > start:
        return account.first_trade_date
    return start


def _submit(ex: Executor, source: AccountDataSource, account: AccountConfig, start: date, end: date, live: bool) -> _AccountFetch:
    return _AccountFetch(
        account=account,
        history=ex.submit(source.equity_history, account, start, end),
        activities=ex.submit(source.cash_flows, account, start, end),
        balance=ex.submit(source.current_equity, account) if live else None,
    )


def _join(fetch: _AccountFetch) -> _AccountData:
    name = fetch.account.name
    try:
        snapshots = list(fetch.history.result())
        activities = list(fetch.activities.result())
        balance = float(fetch.balance.result()) if fetch.balance is not None else None
    except Exception as e:
        logger.warning("Fetch failed for %s: %s", name, e)
        raise TWRUnavailableError(name, e) from e
    logger.debug("Fetched %s: %d bar(s), %d activity row(s), balance=%s", name, len(snapshots), len(activities), balance)
    return _AccountData(fetch.account, snapshots, activities, balance)


def _finish(
    snapshots: Sequence[EquitySnapshot],
    schedule: CashFlowSchedule,
    *,
    start: date,
    end: date,
    today: date,
    balance: float | None,
    context: TWRContext,
) -> list[TWRPoint]:
    history = normalize_snapshots(snapshots)
    if balance is not None:
        # Today's bar is provisional; the live balance supersedes it.
        history = [s for s in history if s.date < today]
    series = build_twr_series(history, schedule)

    if balance is not None and series and start <= today <= end:
        last = history[-1]
        series = extend_with_today(
            series,
            today=today,
            last_historical_date=last.date,
            last_historical_equity=last.equity,
            current_balance=balance,
            flows=schedule,
            equity_threshold=context.equity_threshold,
            twr_threshold=context.twr_threshold,
        )
    return clamp_and_rebase(series, start, end)


def compute_account_twr(
    source: AccountDataSource,
    account: AccountConfig,
    *,
    start: date,
    end: date,
    context: TWRContext,
    today: date | None = None,
    live: bool = True,
    executor: Executor | None = None,
) -> list[TWRPoint]:
    """
    TWR series for one account over [start, end], rebased to 0% at the first point.

    With `live=True` and today inside the window, today's point is estimated
    from the current balance instead of the (provisional) daily bar.
    """
    today = today or market_today(context.market_tz)
    fetch_start = _effective_start(account, start)
    if fetch_start > end:
        return []
    want_live = bool(live) and fetch_start <= today <= end

    with _executor(executor, 3) as ex:
        data = _join(_submit(ex, source, account, fetch_start, end, want_live))

    return _finish(
        data.snapshots,
        aggregate_cash_flows(data.activities),
        start=fetch_start,
        end=end,
        today=today,
        balance=data.balance,
        context=context,
    )


def compute_total_twr(
    source: AccountDataSource,
    accounts: Sequence[AccountConfig],
    *,
    start: date,
    end: date,
    context: TWRContext,
    today: date | None = None,
    live: bool = True,
    trim_inactive: bool = True,
    executor: Executor | None = None,
    workers: int = DEFAULT_WORKERS,
) -> list[TWRPoint]:
    """
    TWR series for the "Total Accounts" aggregate.

    All constituents must fetch successfully; the first failure raises
    `TWRUnavailableError` naming that account. With `trim_inactive` the flat
    pre-funding stretch at the head of the aggregate is skipped.
    """
    if not accounts:
        return []
    today = today or market_today(context.market_tz)
    first = common_start(
        AccountSeriesInput(a.name, (), first_trade_date=a.first_trade_date) for a in accounts
    )
    fetch_start = max(start, first) if first is not None else start
    if fetch_start > end:
        return []
    want_live = bool(live) and fetch_start <= today <= end

    with _executor(executor, workers) as ex:
        fetches = [_submit(ex, source, a, fetch_start, end, want_live) for a in accounts]
        data = [_join(f) for f in fetches]

    inputs = [AccountSeriesInput(d.account.name, d.snapshots, d.activities, d.account.first_trade_date) for d in data]
    snapshots, schedule = aggregate_inputs(inputs)

    window_start = fetch_start
    if trim_inactive:
        history = [s for s in snapshots if not want_live or s.date < today]
        active = first_active_day(history, not_before=fetch_start)
        if active is not None and active > window_start:
            logger.debug("Aggregate trimmed to first active day %s", active)
            window_start = active
            snapshots = [s for s in snapshots if s.date >= active]

    balance = sum(d.balance for d in data if d.balance is not None) if want_live else None
    return _finish(
        snapshots,
        schedule,
        start=window_start,
        end=end,
        today=today,
        balance=balance,
        context=context,
    )


def collect_daily_changes(
    source: AccountDataSource,
    accounts: Sequence[AccountConfig],
    *,
    context: TWRContext,
    today: date | None = None,
    tracker: DailyChangeTracker | None = None,
    executor: Executor | None = None,
    workers: int = DEFAULT_WORKERS,
) -> AggregateDailyChange:
    """
    Live balance vs last closed session for every account, reported into a tracker.

    Results are reported as they complete; the returned snapshot is READY only
    when every account succeeded.
    """
    today = today or market_today(context.market_tz)
    tracker = tracker or DailyChangeTracker(a.name for a in accounts)
    lookback = today - timedelta(days=LAST_CLOSE_LOOKBACK_DAYS)

    def _one(account: AccountConfig) -> tuple[float, float]:
        history = [s for s in normalize_snapshots(source.equity_history(account, lookback, today)) if s.date < today]
        if not history:
            raise LookupError(f"no closed session since {lookback.isoformat()}")
        return history[-1].equity, float(source.current_equity(account))

    with _executor(executor, workers) as ex:
        futs = {ex.submit(_one, a): a for a in accounts}
        for fut in as_completed(futs):
            name = futs[fut].name
            try:
                prev, cur = fut.result()
            except Exception as e:
                tracker.report_failure(name, f"{type(e).__name__}: {e}")
                continue
            tracker.report(name, prev, cur)
    return tracker.snapshot()


class LatestResult(Generic[T]):
    """
    Holder that only accepts the result of the most recent request.

    Callers take an id with `begin()` before starting work and hand it back to
    `publish()`; anything published under an older id is discarded. In-flight
    work is never cancelled.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest = 0
        self._published: int | None = None
        self._value: T | None = None

    def begin(self) -> int:
        with self._lock:
            self._latest += 1
            return self._latest

    def publish(self, request_id: int, value: T) -> bool:
        with self._lock:
            if request_id != self._latest:
                logger.warning("Dropping stale result for request %d (latest is %d)", request_id, self._latest)
                return False
            self._value = value
            self._published = request_id
            return True

    @property
    def value(self) -> T | None:
        with self._lock:
            return self._value

    @property
    def published_id(self) -> int | None:
        with self._lock:
            return self._published
