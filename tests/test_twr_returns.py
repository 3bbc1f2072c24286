from __future__ import annotations

import pytest

from alpaca_tracker.twr.returns import daily_return


def test_plain_return():
    assert daily_return(100.0, 110.0) == pytest.approx(0.10)


def test_deposit_is_removed_from_current_valuation():
    # 1000 -> 1500 with a 500 deposit is flat performance
    assert daily_return(1000.0, 1500.0, 500.0) == pytest.approx(0.0)


def test_withdrawal_is_added_back():
    assert daily_return(10100.0, 9700.0, -200.0) == pytest.approx(9900.0 / 10100.0 - 1.0)


@pytest.mark.parametrize("prev", [0.0, None])
def test_no_basis_gives_zero(prev):
    assert daily_return(prev, 500.0, 500.0) == 0.0


def test_first_point_is_zero():
    assert daily_return(100.0, 200.0, first=True) == 0.0
