from __future__ import annotations

from datetime import date, timedelta

import pytest
from conftest import deposit, snapshots, withdrawal

from alpaca_tracker.twr.flows import aggregate_cash_flows
from alpaca_tracker.twr.models import EquitySnapshot, series_to_frame
from alpaca_tracker.twr.series import build_twr_series, normalize_snapshots

D1 = date(2024, 1, 2)
D2 = D1 + timedelta(days=1)
D3 = D1 + timedelta(days=2)


def test_empty_input_gives_empty_series():
    assert build_twr_series([]) == []


def test_first_point_is_anchored_at_zero():
    series = build_twr_series(snapshots(D1, [5000.0, 5100.0]), aggregate_cash_flows([deposit(D1, 5000)]))
    assert series[0].cumulative_twr == 0.0
    assert series[0].daily_return == 0.0
    # flows on the first day are not attributed to any interval
    assert series[0].net_cash_flow == 0.0


def test_deposit_does_not_register_as_return():
    series = build_twr_series(snapshots(D1, [1000.0, 1500.0]), aggregate_cash_flows([deposit(D2, 500)]))
    assert series[1].daily_return == pytest.approx(0.0)
    assert series[1].deposits == 500.0
    assert series[1].withdrawals == 0.0


def test_compounding():
    series = build_twr_series(snapshots(D1, [100.0, 102.0, 100.98]))
    assert series[1].daily_return == pytest.approx(0.02)
    assert series[2].daily_return == pytest.approx(-0.01)
    assert series[2].cumulative_twr == pytest.approx(1.02 * 0.99 - 1.0, abs=1e-9)
    assert series[2].cumulative_pct == pytest.approx(0.98)
    assert series[1].daily_pct == pytest.approx(2.0)


def test_round_trip_without_flows():
    series = build_twr_series(snapshots(D1, [10000.0, 10100.0, 10000.0]))
    assert [p.daily_return for p in series] == pytest.approx([0.0, 0.01, 10000.0 / 10100.0 - 1.0])
    assert [p.cumulative_twr for p in series] == pytest.approx([0.0, 0.01, 0.0], abs=1e-12)


def test_withdrawal_is_added_back():
    series = build_twr_series(snapshots(D1, [10000.0, 10100.0, 9700.0]), aggregate_cash_flows([withdrawal(D3, 200)]))
    assert series[2].net_cash_flow == -200.0
    assert series[2].withdrawals == 200.0
    assert series[2].daily_return == pytest.approx(9900.0 / 10100.0 - 1.0)


def test_weekend_flow_lands_on_next_trading_day():
    fri = date(2024, 3, 1)
    mon = date(2024, 3, 4)
    snaps = [EquitySnapshot(fri, 1000.0), EquitySnapshot(mon, 1250.0)]
    series = build_twr_series(snaps, aggregate_cash_flows([deposit(date(2024, 3, 2), 250)]))
    assert series[1].net_cash_flow == 250.0
    assert series[1].daily_return == pytest.approx(0.0)


def test_zero_equity_start_then_funding():
    series = build_twr_series(snapshots(D1, [0.0, 1000.0, 1100.0]), aggregate_cash_flows([deposit(D2, 1000)]))
    assert series[1].daily_return == 0.0
    assert series[1].cumulative_twr == 0.0
    assert series[2].cumulative_twr == pytest.approx(0.10)


def test_zero_equity_mid_series_restarts_compounding():
    series = build_twr_series(snapshots(D1, [100.0, 110.0, 0.0, 50.0, 55.0]))
    assert series[2].daily_return == pytest.approx(-1.0)
    assert series[3].daily_return == 0.0
    assert series[3].cumulative_twr == 0.0
    assert series[4].cumulative_twr == pytest.approx(0.10)


def test_one_point_per_day_last_value_wins():
    snaps = [EquitySnapshot(D2, 110.0), EquitySnapshot(D1, 100.0), EquitySnapshot(D2, 120.0)]
    assert [s.equity for s in normalize_snapshots(snaps)] == [100.0, 120.0]
    series = build_twr_series(snaps)
    assert len(series) == 2
    assert series[1].daily_return == pytest.approx(0.20)


def test_series_to_frame_columns():
    df = series_to_frame(build_twr_series(snapshots(D1, [100.0, 101.0])))
    assert list(df.index.strftime("%Y-%m-%d")) == [D1.isoformat(), D2.isoformat()]
    assert df["cumulative_twr"].iloc[-1] == pytest.approx(0.01)
    assert series_to_frame([]).empty


def test_single_point_series():
    series = build_twr_series([EquitySnapshot(D1, 500.0)])
    assert len(series) == 1
    assert series[0].cumulative_twr == 0.0
    assert series[0].daily_return == 0.0


def test_negative_equity_passes_through_arithmetic():
    series = build_twr_series(snapshots(D1, [100.0, -50.0, 20.0]))
    assert [p.equity for p in series] == [100.0, -50.0, 20.0]
    assert series[1].daily_return == pytest.approx(-1.5)
    assert series[2].daily_return == pytest.approx(-1.4)
    assert series[2].cumulative_twr == pytest.approx((1.0 - 1.5) * (1.0 - 1.4) - 1.0)
