"""
Time-weighted return engine.

Pure computation over equity snapshots and cash-flow activity rows; the
`service` module wires it to an account data source.
"""

from .aggregate import (
    AccountSeriesInput,
    AggregateDailyChange,
    DailyChange,
    DailyChangeStatus,
    DailyChangeTracker,
    account_daily_change,
    aggregate_inputs,
    build_total_twr,
)
from .flows import CashFlowSchedule, aggregate_cash_flows, merge_schedules, parse_amount
from .live import extend_with_today, is_material_change
from .models import ActivityRecord, CashFlowEvent, CashFlowKind, EquitySnapshot, TWRPoint, series_to_frame
from .returns import daily_return
from .series import build_twr_series, normalize_snapshots
from .window import HistoryPeriod, clamp_and_rebase, first_active_day, history_window, rebase

__all__ = [
    "AccountSeriesInput",
    "ActivityRecord",
    "AggregateDailyChange",
    "CashFlowEvent",
    "CashFlowKind",
    "CashFlowSchedule",
    "DailyChange",
    "DailyChangeStatus",
    "DailyChangeTracker",
    "EquitySnapshot",
    "HistoryPeriod",
    "TWRPoint",
    "account_daily_change",
    "aggregate_cash_flows",
    "aggregate_inputs",
    "build_total_twr",
    "build_twr_series",
    "clamp_and_rebase",
    "daily_return",
    "extend_with_today",
    "first_active_day",
    "history_window",
    "is_material_change",
    "merge_schedules",
    "normalize_snapshots",
    "parse_amount",
    "rebase",
    "series_to_frame",
]
