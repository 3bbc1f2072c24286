from __future__ import annotations

from typing import Iterable

from alpaca_tracker.twr.flows import EMPTY_SCHEDULE, CashFlowSchedule
from alpaca_tracker.twr.models import EquitySnapshot, TWRPoint
from alpaca_tracker.twr.returns import daily_return


def normalize_snapshots(snapshots: Iterable[EquitySnapshot]) -> list[EquitySnapshot]:
    """Sort ascending by day; duplicate days collapse with the last value winning."""
    by_day: dict = {}
    for s in snapshots:
        by_day[s.date] = s
    return [by_day[d] for d in sorted(by_day)]


def build_twr_series(
    snapshots: Iterable[EquitySnapshot],
    flows: CashFlowSchedule | None = None,
) -> list[TWRPoint]:
    """
    Compound cash-flow adjusted daily returns into a cumulative TWR series.

    - flows attributed to a day are those dated in (previous day, day]
    - a day whose predecessor had zero equity contributes no return; if the
      day itself has equity the compounding restarts from 1.0 there
    - one output point per input day; the first point is always 0.0
    """
    flows = flows or EMPTY_SCHEDULE
    series = normalize_snapshots(snapshots)

    out: list[TWRPoint] = []
    cumulative = 1.0
    prev_equity = 0.0
    started = False
    for i, snap in enumerate(series):
        net = 0.0 if i == 0 else flows.net_between(series[i - 1].date, snap.date)

        r = 0.0
        if i == 0 or prev_equity == 0:
            if snap.equity > 0:
                started = True
                cumulative = 1.0
        elif started:
            r = daily_return(prev_equity, snap.equity, net)
            cumulative *= 1.0 + r

        out.append(
            TWRPoint(
                date=snap.date,
                equity=float(snap.equity),
                pnl=float(snap.pnl),
                pnl_pct=float(snap.pnl_pct),
                deposits=max(0.0, net),
                withdrawals=max(0.0, -net),
                net_cash_flow=net,
                daily_return=r,
                cumulative_twr=cumulative - 1.0,
            )
        )
        prev_equity = float(snap.equity)
    return out
