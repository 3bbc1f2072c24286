"""
Cash-flow aggregation (deposits / withdrawals) per calendar day.

Only external money movements matter for TWR; trading fills, dividends, fees,
etc. are ignored. Amounts are taken as magnitudes and signed by kind, so a feed
that reports withdrawals as "-250.00" and one that reports "250.00" agree.
"""
from __future__ import annotations

import logging
import math
from bisect import bisect_right
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Mapping

from alpaca_tracker.twr.models import ActivityRecord, CashFlowEvent, CashFlowKind
from alpaca_tracker.utils.dates import day_number

logger = logging.getLogger(__name__)

_KINDS: dict[str, CashFlowKind] = {
    "CSD": CashFlowKind.DEPOSIT,
    "deposit": CashFlowKind.DEPOSIT,
    "CSW": CashFlowKind.WITHDRAWAL,
    "withdrawal": CashFlowKind.WITHDRAWAL,
}


def classify(activity_type: str | None) -> CashFlowKind | None:
    """Map an activity type code to a cash-flow kind; None for anything else."""
    if activity_type is None:
        return None
    return _KINDS.get(str(activity_type).strip())


def parse_amount(raw: object) -> float:
    """Parse an amount string into a non-negative magnitude. Unparseable -> 0.0."""
    if raw is None:
        return 0.0
    try:
        v = float(str(raw).replace("$", "").replace(",", "").strip())
    except ValueError:
        logger.warning("Unparseable cash-flow amount %r treated as 0.0", raw)
        return 0.0
    if not math.isfinite(v):
        logger.warning("Non-finite cash-flow amount %r treated as 0.0", raw)
        return 0.0
    return abs(v)


def cash_flow_events(records: Iterable[ActivityRecord]) -> list[CashFlowEvent]:
    out: list[CashFlowEvent] = []
    for r in records:
        kind = classify(r.activity_type)
        if kind is None or r.date is None:
            continue
        out.append(CashFlowEvent(date=r.date, kind=kind, amount=parse_amount(r.net_amount)))
    out.sort(key=lambda e: (e.date, e.net_amount))
    return out


@dataclass(frozen=True)
class CashFlowSchedule:
    """
    Net external cash flow per calendar day.

    `entries` holds (YYYYMMDD, net) pairs in ascending day order so interval
    sums are two bisects and a slice.
    """

    by_day: Mapping[date, float] = field(default_factory=dict)
    entries: tuple[tuple[int, float], ...] = ()
    keys: tuple[int, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "keys", tuple(k for k, _ in self.entries))

    @classmethod
    def from_daily(cls, by_day: Mapping[date, float]) -> "CashFlowSchedule":
        days = sorted(by_day)
        return cls(
            by_day={d: by_day[d] for d in days},
            entries=tuple((day_number(d), by_day[d]) for d in days),
        )

    def __bool__(self) -> bool:
        return bool(self.entries)

    def net_between(self, after: date | None, up_to: date) -> float:
        """Sum of flows dated in the half-open interval (after, up_to]."""
        hi = bisect_right(self.keys, day_number(up_to))
        lo = 0 if after is None else bisect_right(self.keys, day_number(after))
        if lo >= hi:
            return 0.0
        return math.fsum(v for _, v in self.entries[lo:hi])


EMPTY_SCHEDULE = CashFlowSchedule()


def aggregate_cash_flows(records: Iterable[ActivityRecord]) -> CashFlowSchedule:
    """
    Classify and sum deposits/withdrawals per day.

    Deterministic regardless of input order: per-day sums use math.fsum.
    """
    per_day: dict[date, list[float]] = defaultdict(list)
    for ev in cash_flow_events(records):
        per_day[ev.date].append(ev.net_amount)
    return CashFlowSchedule.from_daily({d: math.fsum(vals) for d, vals in per_day.items()})


def merge_schedules(*schedules: CashFlowSchedule) -> CashFlowSchedule:
    """Per-day sum of several accounts' schedules."""
    per_day: dict[date, list[float]] = defaultdict(list)
    for s in schedules:
        for d, v in s.by_day.items():
            per_day[d].append(v)
    return CashFlowSchedule.from_daily({d: math.fsum(vals) for d, vals in per_day.items()})
