from __future__ import annotations

from typing import Any


def fmt_usd(x: Any) -> str:
    """Format a dollar amount as $1,234.56; "n/a" when not numeric."""
    if not isinstance(x, (int, float)):
        return "n/a"
    return f"${float(x):,.2f}"


def fmt_signed_usd(x: Any) -> str:
    if not isinstance(x, (int, float)):
        return "n/a"
    return f"{float(x):+,.2f}"


def fmt_pct(x: Any, digits: int = 2) -> str:
    """
    Format a *fractional* return (0.0123) as a signed percentage (+1.23%).
    Returns "—" when the value is missing.
    """
    if not isinstance(x, (int, float)):
        return "—"
    return f"{float(x) * 100.0:+.{digits}f}%"


def pct_style(x: Any) -> str:
    """Rich style for a signed value: green for gains, red for losses."""
    if not isinstance(x, (int, float)):
        return "dim"
    return "green" if float(x) >= 0 else "red"
