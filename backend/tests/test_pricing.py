"""Price model tests."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import numpy as np
import pytest

from factories import make_stock
from papertrade.pricing import (
    MIN_PRICE,
    generate_price_history,
    simulate_day,
    simulate_market,
)

AS_OF = date(2024, 6, 3)


def test_same_seed_replays_same_update():
    stock = make_stock(volume=500)

    first = simulate_day(stock, np.random.default_rng(7))
    second = simulate_day(stock, np.random.default_rng(7))

    assert first == second
    assert first.previous_close == Decimal("100")
    assert first.volume == 500 + first.volume_delta
    assert first.volume_delta >= 1000


@pytest.mark.parametrize("flags", [{"is_frozen": True}, {"is_active": False}])
def test_non_trading_stock_returns_none(flags):
    assert simulate_day(make_stock(**flags), np.random.default_rng(1)) is None


def test_price_never_drops_below_floor():
    stock = make_stock(price="0.01", volatility=Decimal("0.9"))
    rng = np.random.default_rng(3)

    for _ in range(50):
        update = simulate_day(stock, rng)
        assert update.price >= MIN_PRICE


def test_zero_volatility_keeps_price():
    update = simulate_day(make_stock(price="42.5"), np.random.default_rng(0), volatility=Decimal("0"))

    assert update.price == Decimal("42.5")
    assert update.was_jump is False


def test_price_cap_limits_upward_moves():
    stock = make_stock(price="100", jump_probability=Decimal("1"), max_jump_multiplier=Decimal("1.5"), price_cap=Decimal("101"))
    rng = np.random.default_rng(11)

    for _ in range(20):
        update = simulate_day(stock, rng)
        assert update.was_jump is True
        assert update.price <= Decimal("101")


def test_non_positive_price_is_an_error():
    with pytest.raises(ValueError):
        simulate_day(make_stock(price="0"), np.random.default_rng(0))


def test_market_batch_isolates_failures_and_shares_date():
    stocks = [
        make_stock("1", "AAA"),
        make_stock("2", "BBB", price="-1"),
        make_stock("3", "CCC", is_frozen=True),
        make_stock("4", "DDD", price="20"),
    ]

    batch = simulate_market(stocks, np.random.default_rng(5), as_of=AS_OF)

    assert [u.stock_id for u in batch.updates] == ["1", "4"]
    assert [f.symbol for f in batch.failures] == ["BBB"]
    assert batch.skipped == 1
    assert {p.day for p in batch.price_points} == {AS_OF}
    assert [p.price for p in batch.price_points] == [u.price for u in batch.updates]
    assert [p.volume for p in batch.price_points] == [u.volume_delta for u in batch.updates]


def test_generated_history_covers_days_before_end():
    points = generate_price_history(make_stock(), 10, np.random.default_rng(2), end=AS_OF)

    assert len(points) == 10
    assert points[0].day == AS_OF - timedelta(days=10)
    assert points[-1].day == AS_OF - timedelta(days=1)
    assert all(p.price >= MIN_PRICE for p in points)


def test_generated_history_empty_for_zero_days():
    assert generate_price_history(make_stock(), 0, np.random.default_rng(2), end=AS_OF) == []
