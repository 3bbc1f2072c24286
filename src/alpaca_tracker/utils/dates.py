"""
Calendar-day helpers for the exchange-local calendar.

Equity bars and cash-flow activities are bucketed into market days (e.g.
America/New_York), never the host's local day.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

# Daily bars are stamped at the midnight that follows the close they report;
# shifting back 2h01m lands them on the session day they describe.
DAILY_BAR_SHIFT = timedelta(minutes=121)
INTRADAY_TIMEFRAMES = frozenset({"1Min", "5Min", "15Min", "1H"})


def parse_iso_date(s: Any) -> date | None:
    """Parse ISO date string (YYYY-MM-DD, optionally followed by a time) to date."""
    if s is None:
        return None
    if isinstance(s, datetime):
        return s.date()
    if isinstance(s, date):
        return s
    try:
        return date.fromisoformat(str(s).strip()[:10])
    except (ValueError, TypeError):
        return None


def parse_ymd(s: str) -> date:
    """Parse YYYY-MM-DD string to date. Raises ValueError on failure."""
    return date.fromisoformat(s)


def day_number(d: date) -> int:
    """Encode a calendar day as a comparable YYYYMMDD integer."""
    return d.year * 10000 + d.month * 100 + d.day


def market_today(tz: str | ZoneInfo = "America/New_York", *, now: datetime | None = None) -> date:
    """Today's calendar day on the exchange-local calendar."""
    zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(zone).date()


def epoch_to_market_date(ts: int | float, tz: str | ZoneInfo, timeframe: str = "1D") -> date:
    """
    Convert an epoch-seconds bar timestamp into its market-calendar day.

    Intraday bars keep their own timestamp; daily (and coarser) bars get the
    DAILY_BAR_SHIFT adjustment first.
    """
    zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
    dt = datetime.fromtimestamp(float(ts), tz=timezone.utc)
    if timeframe not in INTRADAY_TIMEFRAMES:
        dt = dt - DAILY_BAR_SHIFT
    return dt.astimezone(zone).date()
