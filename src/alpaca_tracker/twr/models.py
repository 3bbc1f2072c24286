from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from enum import Enum
from typing import Any, Iterable

import pandas as pd


@dataclass(frozen=True)
class EquitySnapshot:
    """One account's total value at the close of a market day."""

    date: date
    equity: float
    pnl: float = 0.0
    pnl_pct: float = 0.0
    base_value: float = 0.0


@dataclass(frozen=True)
class ActivityRecord:
    """Raw account-activity row as delivered by the activity feed."""

    activity_type: str
    date: date | None
    net_amount: str | None
    id: str = ""


class CashFlowKind(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


@dataclass(frozen=True)
class CashFlowEvent:
    date: date
    kind: CashFlowKind
    amount: float  # positive magnitude

    @property
    def net_amount(self) -> float:
        return self.amount if self.kind is CashFlowKind.DEPOSIT else -self.amount


@dataclass(frozen=True)
class TWRPoint:
    date: date
    equity: float
    pnl: float
    pnl_pct: float
    deposits: float
    withdrawals: float
    net_cash_flow: float
    daily_return: float  # fraction, not percent
    cumulative_twr: float  # fraction; 0.0 == unchanged since series start

    @property
    def daily_pct(self) -> float:
        return self.daily_return * 100.0

    @property
    def cumulative_pct(self) -> float:
        return self.cumulative_twr * 100.0

    def as_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["date"] = self.date.isoformat()
        return d


TWR_COLUMNS = [
    "equity",
    "pnl",
    "pnl_pct",
    "deposits",
    "withdrawals",
    "net_cash_flow",
    "daily_return",
    "cumulative_twr",
]


def series_to_frame(points: Iterable[TWRPoint]) -> pd.DataFrame:
    """One row per point, indexed by calendar day."""
    rows = [asdict(p) for p in points]
    if not rows:
        return pd.DataFrame(columns=TWR_COLUMNS, index=pd.Index([], name="date"))
    df = pd.DataFrame(rows)
    df["date"] = pd.to_datetime(df["date"])
    return df.set_index("date")[TWR_COLUMNS]
