from __future__ import annotations

from datetime import date

from conftest import deposit, withdrawal

from alpaca_tracker.twr.flows import (
    EMPTY_SCHEDULE,
    aggregate_cash_flows,
    cash_flow_events,
    classify,
    merge_schedules,
    parse_amount,
)
from alpaca_tracker.twr.models import ActivityRecord, CashFlowKind

D1 = date(2024, 3, 1)
D2 = date(2024, 3, 4)
D3 = date(2024, 3, 5)


def test_classify_codes_and_names():
    assert classify("CSD") is CashFlowKind.DEPOSIT
    assert classify("deposit") is CashFlowKind.DEPOSIT
    assert classify("CSW") is CashFlowKind.WITHDRAWAL
    assert classify("FILL") is None
    assert classify(None) is None


def test_parse_amount_handles_formatting_and_garbage():
    assert parse_amount("1,250.50") == 1250.5
    assert parse_amount("$300") == 300.0
    assert parse_amount("-250.00") == 250.0
    assert parse_amount("abc") == 0.0
    assert parse_amount("nan") == 0.0
    assert parse_amount(None) == 0.0


def test_deposits_and_withdrawals_net_per_day():
    sched = aggregate_cash_flows(
        [
            deposit(D1, 1000),
            deposit(D1, "500"),
            withdrawal(D1, "-200"),
            withdrawal(D2, 300),
            ActivityRecord(activity_type="FILL", date=D2, net_amount="999"),
        ]
    )
    assert sched.by_day.get(D1, 0.0) == 1300.0
    assert sched.by_day.get(D2, 0.0) == -300.0
    assert sched.by_day.get(D3, 0.0) == 0.0


def test_unparseable_amount_counts_as_zero_not_error():
    sched = aggregate_cash_flows([deposit(D1, "n/a"), deposit(D1, 100)])
    assert sched.by_day.get(D1, 0.0) == 100.0


def test_undated_rows_are_skipped():
    events = cash_flow_events([ActivityRecord(activity_type="CSD", date=None, net_amount="100")])
    assert events == []


def test_net_between_is_half_open():
    sched = aggregate_cash_flows([deposit(D1, 100), deposit(D2, 10), withdrawal(D3, 1)])
    # (D1, D3] excludes D1, includes D3
    assert sched.net_between(D1, D3) == 9.0
    assert sched.net_between(D2, D2) == 0.0
    assert sched.net_between(None, D1) == 100.0
    assert EMPTY_SCHEDULE.net_between(D1, D3) == 0.0


def test_aggregation_independent_of_input_order():
    rows = [deposit(D1, 0.1), deposit(D1, 0.2), deposit(D1, 0.3), withdrawal(D2, 5)]
    a = aggregate_cash_flows(rows)
    b = aggregate_cash_flows(list(reversed(rows)))
    assert a == b


def test_merge_sums_per_day():
    a = aggregate_cash_flows([deposit(D1, 100), deposit(D3, 5)])
    b = aggregate_cash_flows([withdrawal(D1, 40), deposit(D2, 7)])
    merged = merge_schedules(a, b)
    assert merged.by_day[D1] == 60.0
    assert merged.by_day[D2] == 7.0
    assert merged.net_between(D1, D3) == 12.0
    assert not EMPTY_SCHEDULE


def test_day_keys_are_built_once_per_schedule():
    sched = aggregate_cash_flows([deposit(D3, 1), deposit(D1, 2), withdrawal(D2, 3)])
    assert sched.keys == (20240301, 20240304, 20240305)
    assert sched.keys is sched.keys
    assert EMPTY_SCHEDULE.keys == ()
    # keys do not take part in equality
    assert sched == aggregate_cash_flows([deposit(D1, 2), withdrawal(D2, 3), deposit(D3, 1)])
