"""Daily price simulation for the synthetic market.

The model is a bounded random walk with occasional jumps. All entropy comes
from an injected ``numpy.random.Generator`` so a seeded generator replays the
exact same market.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal, getcontext
from typing import Iterable, List

import numpy as np

from .models import PricePoint, PriceUpdate, Stock

getcontext().prec = 28

logger = logging.getLogger(__name__)

DEFAULT_VOLATILITY = Decimal("0.02")
MIN_PRICE = Decimal("0.01")
PRICE_QUANTUM = Decimal("0.0001")
RETURN_CLIP_SIGMA = 3.0
BASE_VOLUME_MIN = 1000
BASE_VOLUME_SPAN = 50000
VOLUME_PER_UNIT_RETURN = 500000


@dataclass
class SimulationFailure:
    stock_id: str
    symbol: str
    error: str


@dataclass
class SimulationBatch:
    """Result of one scheduled tick across the whole market."""

    as_of: date
    updates: List[PriceUpdate] = field(default_factory=list)
    price_points: List[PricePoint] = field(default_factory=list)
    skipped: int = 0
    failures: List[SimulationFailure] = field(default_factory=list)


def _draw_return(stock: Stock, rng: np.random.Generator, volatility: Decimal) -> tuple[Decimal, bool]:
    jump_probability = float(stock.jump_probability or 0)
    if jump_probability > 0 and rng.random() < jump_probability:
        magnitude = Decimal(str(rng.random())) * (Decimal(stock.max_jump_multiplier) - 1)
        direction = -1 if rng.random() < 0.5 else 1
        return magnitude * direction, True
    z = float(np.clip(rng.standard_normal(), -RETURN_CLIP_SIGMA, RETURN_CLIP_SIGMA))
    return Decimal(volatility) * Decimal(str(z)), False


def _apply_return(price: Decimal, daily_return: Decimal, price_cap: Decimal | None) -> Decimal:
    new_price = price * (1 + daily_return)
    if price_cap is not None and new_price > price_cap:
        new_price = Decimal(price_cap)
    new_price = new_price.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)
    return max(new_price, MIN_PRICE)


def _draw_volume(rng: np.random.Generator, daily_return: Decimal) -> int:
    base = BASE_VOLUME_MIN + rng.random() * BASE_VOLUME_SPAN
    return max(0, int(base + abs(float(daily_return)) * VOLUME_PER_UNIT_RETURN))


def simulate_day(
    stock: Stock,
    rng: np.random.Generator,
    *,
    volatility: Decimal = DEFAULT_VOLATILITY,
) -> PriceUpdate | None:
    """Return the next day's price and volume, or ``None`` if the stock does not trade."""

    if not stock.is_active or stock.is_frozen:
        return None
    if stock.current_price is None or stock.current_price <= 0:
        raise ValueError(f"Stock {stock.symbol} has a non-positive current price")
    sigma = stock.volatility if stock.volatility is not None else volatility
    daily_return, was_jump = _draw_return(stock, rng, Decimal(sigma))
    price = _apply_return(Decimal(stock.current_price), daily_return, stock.price_cap)
    volume_delta = _draw_volume(rng, daily_return)
    return PriceUpdate(
        stock_id=stock.id,
        price=price,
        previous_close=Decimal(stock.current_price),
        volume_delta=volume_delta,
        volume=stock.volume + volume_delta,
        was_jump=was_jump,
        jump_percentage=daily_return * 100 if was_jump else None,
    )


def simulate_market(
    stocks: Iterable[Stock],
    rng: np.random.Generator,
    *,
    as_of: date,
    volatility: Decimal = DEFAULT_VOLATILITY,
) -> SimulationBatch:
    """Run the price model once for every stock, isolating per-stock failures."""

    batch = SimulationBatch(as_of=as_of)
    for stock in stocks:
        try:
            update = simulate_day(stock, rng, volatility=volatility)
        except Exception as exc:
            logger.exception("Price simulation failed for %s", stock.symbol)
            batch.failures.append(SimulationFailure(stock_id=stock.id, symbol=stock.symbol, error=str(exc)))
            continue
        if update is None:
            batch.skipped += 1
            continue
        batch.updates.append(update)
        batch.price_points.append(
            PricePoint(stock_id=stock.id, day=as_of, price=update.price, volume=update.volume_delta)
        )
    return batch


def generate_price_history(
    stock: Stock,
    days: int,
    rng: np.random.Generator,
    *,
    end: date,
    volatility: Decimal = DEFAULT_VOLATILITY,
) -> List[PricePoint]:
    """Back-fill ``days`` daily points ending the day before ``end``.

    The walk starts from a volatility-perturbed guess of where the price stood
    ``days`` ago, so the generated series ends near (not at) the current price.
    """

    if days <= 0:
        return []
    sigma = Decimal(stock.volatility if stock.volatility is not None else volatility)
    spread = Decimal(str(rng.random() - 0.5)) * sigma * Decimal(days).sqrt() / 2
    price = max((Decimal(stock.current_price) * (1 + spread)).quantize(PRICE_QUANTUM), MIN_PRICE)
    start = end - timedelta(days=days)
    history: List[PricePoint] = []
    for offset in range(days):
        daily_return, _ = _draw_return(stock, rng, sigma)
        price = _apply_return(price, daily_return, stock.price_cap)
        history.append(
            PricePoint(
                stock_id=stock.id,
                day=start + timedelta(days=offset),
                price=price,
                volume=_draw_volume(rng, daily_return),
            )
        )
    return history


__all__ = [
    "DEFAULT_VOLATILITY",
    "MIN_PRICE",
    "PRICE_QUANTUM",
    "SimulationBatch",
    "SimulationFailure",
    "generate_price_history",
    "simulate_day",
    "simulate_market",
]
