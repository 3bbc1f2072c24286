from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta

import pytest
from conftest import deposit, snapshots

from alpaca_tracker.twr.flows import EMPTY_SCHEDULE, aggregate_cash_flows
from alpaca_tracker.twr.live import extend_with_today, is_material_change
from alpaca_tracker.twr.series import build_twr_series

D1 = date(2024, 5, 6)
D2 = D1 + timedelta(days=1)
TODAY = D1 + timedelta(days=2)


def _history():
    return build_twr_series(snapshots(D1, [1000.0, 1100.0]))


def _extend(series, balance, *, today=TODAY, flows=EMPTY_SCHEDULE):
    return extend_with_today(
        series,
        today=today,
        last_historical_date=D2,
        last_historical_equity=1100.0,
        current_balance=balance,
        flows=flows,
    )


def test_appends_today_and_compounds():
    out = _extend(_history(), 1210.0)
    assert len(out) == 3
    assert out[-1].date == TODAY
    assert out[-1].daily_return == pytest.approx(0.10)
    assert out[-1].cumulative_twr == pytest.approx(1.1 * 1.1 - 1.0)
    assert out[-1].pnl == pytest.approx(110.0)


def test_todays_deposit_is_removed():
    out = _extend(_history(), 1610.0, flows=aggregate_cash_flows([deposit(TODAY, 500)]))
    assert out[-1].net_cash_flow == 500.0
    assert out[-1].daily_return == pytest.approx(10.0 / 1100.0)


def test_stale_today_leaves_series_unchanged():
    series = _history()
    assert _extend(series, 5000.0, today=D1) == series


def test_history_already_covering_today_is_unchanged():
    series = _history()
    out = extend_with_today(
        series,
        today=D2,
        last_historical_date=D2,
        last_historical_equity=1100.0,
        current_balance=2000.0,
        flows=EMPTY_SCHEDULE,
    )
    assert out == series


def test_empty_series_stays_empty():
    assert _extend([], 1000.0) == []


def test_refresh_replaces_only_on_material_change():
    first = _extend(_history(), 1210.0)

    tiny = _extend(first, 1210.004)
    assert tiny[-1] is first[-1]

    moved = _extend(first, 1221.0)
    assert len(moved) == 3
    assert moved[-1].equity == 1221.0
    # compounding restarts from the historical point, not from the previous live estimate
    assert moved[-1].cumulative_twr == pytest.approx(1.1 * 1.11 - 1.0)


def test_materiality_thresholds():
    p = _extend(_history(), 1210.0)[-1]
    assert not is_material_change(p, replace(p, equity=p.equity + 0.005))
    assert is_material_change(p, replace(p, equity=p.equity + 0.02))
    assert is_material_change(p, replace(p, cumulative_twr=p.cumulative_twr + 0.0001))
    assert not is_material_change(p, replace(p, cumulative_twr=p.cumulative_twr + 0.000001))
