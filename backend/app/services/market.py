"""Simulation scheduler adapter: runs the price model and persists its output."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

import numpy as np
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import AppSettings, get_settings
from app.models import PriceHistory, Stock
from papertrade import models as domain
from papertrade.pricing import SimulationBatch, generate_price_history, simulate_market

logger = logging.getLogger(__name__)


def to_domain_stock(row: Stock) -> domain.Stock:
    return domain.Stock(
        id=str(row.id),
        symbol=row.symbol,
        current_price=Decimal(row.current_price),
        previous_close=Decimal(row.previous_close) if row.previous_close is not None else None,
        volume=int(row.volume or 0),
        sector=row.sector,
        name=row.name,
        market_cap=Decimal(row.market_cap) if row.market_cap is not None else None,
        is_active=bool(row.is_active),
        is_frozen=bool(row.is_frozen),
        volatility=Decimal(row.volatility) if row.volatility is not None else None,
        jump_probability=Decimal(row.jump_probability or 0),
        max_jump_multiplier=Decimal(row.max_jump_multiplier or Decimal("1.10")),
        price_cap=Decimal(row.price_cap) if row.price_cap is not None else None,
    )


def build_rng(settings: AppSettings | None = None, day: date | None = None) -> np.random.Generator:
    """Generator for one simulated day.

    A configured seed is mixed with the day so replays are repeatable while
    consecutive days still draw independent returns.
    """

    settings = settings or get_settings()
    if settings.simulation_seed is None:
        return np.random.default_rng()
    if day is None:
        return np.random.default_rng(settings.simulation_seed)
    return np.random.default_rng([settings.simulation_seed, day.toordinal()])


async def list_active_stocks(session: AsyncSession) -> list[Stock]:
    """Active stocks ordered by symbol; frozen ones are included and skipped by the model."""

    result = await session.execute(
        select(Stock).where(Stock.is_active.is_(True)).order_by(Stock.symbol)
    )
    return list(result.scalars().all())


async def _insert_price_points(session: AsyncSession, points: list[domain.PricePoint]) -> None:
    if not points:
        return
    stmt = (
        insert(PriceHistory)
        .values(
            [
                {
                    "stock_id": int(point.stock_id),
                    "day": point.day,
                    "price": point.price,
                    "volume": point.volume,
                }
                for point in points
            ]
        )
        .on_conflict_do_nothing(index_elements=[PriceHistory.stock_id, PriceHistory.day])
    )
    await session.execute(stmt)


async def run_simulation_tick(
    session: AsyncSession,
    *,
    rng: np.random.Generator | None = None,
    as_of: date | None = None,
    settings: AppSettings | None = None,
) -> SimulationBatch:
    """Advance every active stock by one simulated day and commit the results."""

    settings = settings or get_settings()
    as_of = as_of or datetime.now(timezone.utc).date()
    rng = rng or build_rng(settings, as_of)

    rows = await list_active_stocks(session)
    by_id = {str(row.id): row for row in rows}
    batch = simulate_market(
        [to_domain_stock(row) for row in rows],
        rng,
        as_of=as_of,
        volatility=settings.simulation_volatility,
    )

    for update in batch.updates:
        row = by_id[update.stock_id]
        row.previous_close = update.previous_close
        row.current_price = update.price
        row.volume = update.volume
    await _insert_price_points(session, batch.price_points)
    await session.commit()

    logger.info(
        "Simulated %s: %d updated, %d skipped, %d failed",
        as_of.isoformat(),
        len(batch.updates),
        batch.skipped,
        len(batch.failures),
    )
    return batch


async def seed_price_history(
    session: AsyncSession,
    stock_id: int,
    days: int,
    *,
    rng: np.random.Generator | None = None,
    end: date | None = None,
    settings: AppSettings | None = None,
) -> int:
    """Back-fill synthetic history for a newly listed stock; returns points written."""

    settings = settings or get_settings()
    row = await session.get(Stock, stock_id)
    if row is None:
        raise ValueError(f"Unknown stock {stock_id}")
    end = end or datetime.now(timezone.utc).date()
    points = generate_price_history(
        to_domain_stock(row),
        days,
        rng or build_rng(settings, end),
        end=end,
        volatility=settings.simulation_volatility,
    )
    await _insert_price_points(session, points)
    await session.commit()
    return len(points)


async def list_stock_history(
    session: AsyncSession,
    stock_id: int,
    start: date | None = None,
    end: date | None = None,
) -> list[PriceHistory]:
    stmt = select(PriceHistory).where(PriceHistory.stock_id == stock_id)
    if start is not None:
        stmt = stmt.where(PriceHistory.day >= start)
    if end is not None:
        stmt = stmt.where(PriceHistory.day <= end)
    result = await session.execute(stmt.order_by(PriceHistory.day))
    return list(result.scalars().all())


__all__ = [
    "build_rng",
    "list_active_stocks",
    "list_stock_history",
    "run_simulation_tick",
    "seed_price_history",
    "to_domain_stock",
]
