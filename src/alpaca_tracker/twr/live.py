"""
Same-day ("live") estimate on top of a finalized historical TWR series.

The historical feed only has closed sessions; the live balance moves all day.
Rather than rebuilding the series on every balance refresh, the last point is
extended (or refreshed) from the live balance.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Sequence

from alpaca_tracker.twr.flows import CashFlowSchedule
from alpaca_tracker.twr.models import TWRPoint
from alpaca_tracker.twr.returns import daily_return

logger = logging.getLogger(__name__)

DEFAULT_EQUITY_THRESHOLD = 0.01
DEFAULT_TWR_THRESHOLD = 0.00001


def _base_point(series: Sequence[TWRPoint], last_historical_date: date) -> TWRPoint:
    # An earlier extension may already sit after the historical point; compound
    # from the historical one so repeated refreshes never double count.
    for p in reversed(series):
        if p.date <= last_historical_date:
            return p
    return series[-1]


def is_material_change(
    old: TWRPoint,
    new: TWRPoint,
    *,
    equity_threshold: float = DEFAULT_EQUITY_THRESHOLD,
    twr_threshold: float = DEFAULT_TWR_THRESHOLD,
) -> bool:
    return (
        abs(new.equity - old.equity) > equity_threshold
        or abs(new.cumulative_twr - old.cumulative_twr) > twr_threshold
    )


def extend_with_today(
    series: Sequence[TWRPoint],
    *,
    today: date,
    last_historical_date: date,
    last_historical_equity: float,
    current_balance: float,
    flows: CashFlowSchedule,
    equity_threshold: float = DEFAULT_EQUITY_THRESHOLD,
    twr_threshold: float = DEFAULT_TWR_THRESHOLD,
) -> list[TWRPoint]:
    """
    Append or refresh today's point from a live balance.

    - flows in (last_historical_date, today] are removed from the balance
    - today after the last point: append
    - today equal to the last point: replace only on a material change
    - today before the last point (stale feed): unchanged
    """
    out = list(series)
    if not out:
        return out
    last = out[-1]
    if today < last.date:
        logger.debug("Live point skipped: today %s precedes last point %s", today, last.date)
        return out
    if last_historical_date >= today:
        logger.debug("Live point skipped: history already covers %s", today)
        return out

    net = flows.net_between(last_historical_date, today)
    adjusted = float(current_balance) - net
    r = daily_return(last_historical_equity, float(current_balance), net)
    base = _base_point(out, last_historical_date)
    cumulative = (1.0 + base.cumulative_twr) * (1.0 + r) - 1.0

    point = TWRPoint(
        date=today,
        equity=float(current_balance),
        pnl=adjusted - float(last_historical_equity),
        pnl_pct=r,
        deposits=max(0.0, net),
        withdrawals=max(0.0, -net),
        net_cash_flow=net,
        daily_return=r,
        cumulative_twr=cumulative,
    )

    if today > last.date:
        out.append(point)
        return out

    if is_material_change(last, point, equity_threshold=equity_threshold, twr_threshold=twr_threshold):
        out[-1] = point
    else:
        logger.debug("Live point for %s unchanged (below materiality threshold)", today)
    return out
