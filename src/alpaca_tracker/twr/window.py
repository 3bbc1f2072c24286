from __future__ import annotations

from dataclasses import replace
from datetime import date
from enum import Enum
from typing import Sequence

import pandas as pd

from alpaca_tracker.twr.models import EquitySnapshot, TWRPoint


class HistoryPeriod(str, Enum):
    ONE_DAY = "1D"
    ONE_WEEK = "1W"
    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    ONE_YEAR = "1A"
    ALL = "all"
    CUSTOM = "custom"


_OFFSETS: dict[HistoryPeriod, pd.DateOffset] = {
    HistoryPeriod.ONE_DAY: pd.DateOffset(days=1),
    HistoryPeriod.ONE_WEEK: pd.DateOffset(days=7),
    HistoryPeriod.ONE_MONTH: pd.DateOffset(months=1),
    HistoryPeriod.THREE_MONTHS: pd.DateOffset(months=3),
    HistoryPeriod.ONE_YEAR: pd.DateOffset(years=1),
    HistoryPeriod.ALL: pd.DateOffset(years=5),
    HistoryPeriod.CUSTOM: pd.DateOffset(days=30),
}


def history_window(
    period: HistoryPeriod | str,
    today: date,
    first_trade_date: date | None = None,
) -> tuple[date, date]:
    """
    Date range [start, today] for a named period.

    The start never precedes the account's first trade. CUSTOM only supplies a
    30-day default that callers override with explicit dates.
    """
    period = HistoryPeriod(period)
    start = (pd.Timestamp(today) - _OFFSETS[period]).date()
    if first_trade_date is not None and first_trade_date > start:
        start = first_trade_date
    return start, today


def first_active_day(snapshots: Sequence[EquitySnapshot], not_before: date | None = None) -> date | None:
    """
    First day with equity > 0 whose next day's equity differs from it.

    Falls back to the first day with equity > 0. Used to skip the flat,
    pre-funding stretch at the head of an aggregate series.
    """
    eligible = [s for s in snapshots if not_before is None or s.date >= not_before]
    for cur, nxt in zip(eligible, eligible[1:]):
        if cur.equity > 0 and nxt.equity != cur.equity:
            return cur.date
    for s in eligible:
        if s.equity > 0:
            return s.date
    return None


def rebase(series: Sequence[TWRPoint]) -> list[TWRPoint]:
    """
    Restart the cumulative compounding at the first point.

    Stored daily returns are reused as-is. A point following a zero-equity day
    restarts the factor exactly as the series builder does.
    """
    out: list[TWRPoint] = []
    factor = 1.0
    prev_equity: float | None = None
    for i, p in enumerate(series):
        if i == 0 or prev_equity == 0:
            if i == 0 or p.equity > 0:
                factor = 1.0
        else:
            factor *= 1.0 + p.daily_return
        out.append(replace(p, cumulative_twr=factor - 1.0))
        prev_equity = p.equity
    return out


def clamp_and_rebase(series: Sequence[TWRPoint], start: date, end: date) -> list[TWRPoint]:
    """Keep points in [start, end] (inclusive) and rebase them to 0% at the first."""
    return rebase([p for p in series if start <= p.date <= end])
