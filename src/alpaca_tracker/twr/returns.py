from __future__ import annotations


def daily_return(
    previous_equity: float | None,
    current_equity: float,
    net_flow: float = 0.0,
    *,
    first: bool = False,
) -> float:
    """
    Cash-flow adjusted return between two consecutive valuations.

    `net_flow` must be the flow dated in (previous day, current day]; it is
    removed from the current valuation so money moving in or out of the
    account does not register as performance.

    Returns 0.0 on the first day of a series or when there is no prior basis.
    """
    if first or not previous_equity:
        return 0.0
    adjusted = float(current_equity) - float(net_flow or 0.0)
    return adjusted / float(previous_equity) - 1.0
