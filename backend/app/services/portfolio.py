"""Query adapter: loads the trade log and prices, hands them to the core."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import AppSettings, get_settings
from app.models import Portfolio, Position, PriceHistory, Stock, Transaction
from app.services.market import to_domain_stock
from papertrade import models as domain
from papertrade.analytics import (
    LeaderboardEntry,
    LeaderboardInput,
    PortfolioAnalytics,
    PositionDrift,
    build_leaderboard,
    compute_analytics,
    reconcile_positions,
)
from papertrade.cost_basis import CostBasisTracker, quantize_average
from papertrade.replay import HistorySummary, reconstruct_history, summarize_history

logger = logging.getLogger(__name__)


@dataclass
class HistoryResult:
    start: date
    end: date
    valuations: list[domain.DailyValuation]
    summary: HistorySummary


def to_domain_transaction(row: Transaction, tz: ZoneInfo | None = None) -> domain.Transaction:
    """Map a row to the core type, expressing the timestamp in ``tz`` so days bucket locally."""

    timestamp = row.timestamp
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    if tz is not None:
        timestamp = timestamp.astimezone(tz)
    return domain.Transaction(
        id=str(row.id),
        user_id=row.user_id,
        stock_id=str(row.stock_id),
        type=domain.TransactionType(row.type),
        quantity=int(row.quantity),
        price=Decimal(row.price),
        timestamp=timestamp,
        status=domain.TransactionStatus(row.status),
    )


def to_domain_position(row: Position) -> domain.Position:
    return domain.Position(
        portfolio_id=str(row.portfolio_id),
        stock=to_domain_stock(row.stock),
        quantity=int(row.quantity),
        average_buy_price=Decimal(row.average_buy_price) if row.quantity > 0 else None,
        current_value=Decimal(row.current_value or 0),
        profit_loss=Decimal(row.profit_loss or 0),
    )


def _end_of_day(day: date, tz: ZoneInfo | None = None) -> datetime:
    return datetime.combine(day, time.max, tzinfo=tz or timezone.utc)


def _zone(settings: AppSettings) -> ZoneInfo:
    return ZoneInfo(settings.timezone)


async def list_transactions(
    session: AsyncSession,
    user_id: str,
    up_to: date | None = None,
    *,
    tz: ZoneInfo | None = None,
) -> list[domain.Transaction]:
    """Completed transactions for ``user_id`` ordered by timestamp ascending."""

    stmt = select(Transaction).where(
        Transaction.user_id == user_id,
        Transaction.status == domain.TransactionStatus.COMPLETED.value,
    )
    if up_to is not None:
        stmt = stmt.where(Transaction.timestamp <= _end_of_day(up_to, tz))
    result = await session.execute(stmt.order_by(Transaction.timestamp, Transaction.id))
    return [to_domain_transaction(row, tz) for row in result.scalars().all()]


async def list_price_points(
    session: AsyncSession,
    stock_ids: Iterable[str],
    start: date,
    end: date,
) -> list[domain.PricePoint]:
    ids = sorted({int(stock_id) for stock_id in stock_ids})
    if not ids:
        return []
    result = await session.execute(
        select(PriceHistory)
        .where(
            PriceHistory.stock_id.in_(ids),
            PriceHistory.day >= start,
            PriceHistory.day <= end,
        )
        .order_by(PriceHistory.day, PriceHistory.id)
    )
    return [
        domain.PricePoint(
            stock_id=str(row.stock_id),
            day=row.day,
            price=Decimal(row.price),
            volume=int(row.volume or 0),
        )
        for row in result.scalars().all()
    ]


async def list_stocks(session: AsyncSession, stock_ids: Iterable[str]) -> dict[str, domain.Stock]:
    ids = sorted({int(stock_id) for stock_id in stock_ids})
    if not ids:
        return {}
    result = await session.execute(select(Stock).where(Stock.id.in_(ids)))
    return {str(row.id): to_domain_stock(row) for row in result.scalars().all()}


async def get_portfolio(session: AsyncSession, user_id: str) -> Portfolio | None:
    result = await session.execute(
        select(Portfolio)
        .options(selectinload(Portfolio.positions).selectinload(Position.stock))
        .where(Portfolio.user_id == user_id)
    )
    return result.scalars().first()


def resolve_window(
    start: date | None,
    end: date | None,
    settings: AppSettings,
    *,
    today: date | None = None,
) -> tuple[date, date]:
    """Apply defaults and the configured maximum span to a requested date range."""

    end = end or today or datetime.now(_zone(settings)).date()
    start = start or end - timedelta(days=settings.default_history_days - 1)
    if start > end:
        raise ValueError("start cannot be after end")
    earliest = end - timedelta(days=settings.max_history_days - 1)
    if start < earliest:
        logger.info("Clamping history start %s to %s", start, earliest)
        start = earliest
    return start, end


async def load_history(
    session: AsyncSession,
    user_id: str,
    start: date | None = None,
    end: date | None = None,
    *,
    settings: AppSettings | None = None,
) -> HistoryResult:
    settings = settings or get_settings()
    start, end = resolve_window(start, end, settings)
    transactions = await list_transactions(session, user_id, up_to=end, tz=_zone(settings))
    stock_ids = {tx.stock_id for tx in transactions}
    # Fetch from the first trade so days before ``start`` can forward-fill.
    price_from = min((tx.day for tx in transactions), default=start)
    price_points = await list_price_points(session, stock_ids, min(price_from, start), end)
    valuations = reconstruct_history(transactions, price_points, start, end)
    return HistoryResult(start=start, end=end, valuations=valuations, summary=summarize_history(valuations))


async def load_analytics(
    session: AsyncSession,
    user_id: str,
    *,
    top_n: int | None = None,
    settings: AppSettings | None = None,
) -> PortfolioAnalytics:
    settings = settings or get_settings()
    transactions = await list_transactions(session, user_id, tz=_zone(settings))
    portfolio = await get_portfolio(session, user_id)
    positions = [to_domain_position(row) for row in portfolio.positions] if portfolio else []
    stocks = await list_stocks(session, {tx.stock_id for tx in transactions})
    return compute_analytics(
        positions,
        transactions,
        stocks=stocks,
        top_n=top_n or settings.top_movers_count,
        materiality_pct=settings.sector_materiality_pct,
    )


def rewrite_position_rows(
    portfolio_id: int,
    cached: Sequence[Position],
    tracker: CostBasisTracker,
    stocks: dict[str, domain.Stock],
) -> tuple[list[int], list[Position]]:
    """Update cached rows in place from ``tracker``.

    Returns the ids of rows whose stock is no longer held and the new rows to
    insert for holdings that had no cached row.
    """

    open_quantities = tracker.open_quantities()
    by_stock = {str(row.stock_id): row for row in cached}
    stale = [row.id for stock_id, row in by_stock.items() if stock_id not in open_quantities]
    created: list[Position] = []
    for stock_id, quantity in open_quantities.items():
        holding = tracker.holding(stock_id)
        price = stocks[stock_id].current_price if stock_id in stocks else tracker.last_price(stock_id)
        row = by_stock.get(stock_id)
        if row is None:
            row = Position(portfolio_id=portfolio_id, stock_id=int(stock_id))
            created.append(row)
        row.quantity = quantity
        row.average_buy_price = quantize_average(holding.average_buy_price)
        row.current_value = price * quantity
        row.profit_loss = price * quantity - holding.cost_basis
    return stale, created


async def reconcile_user_positions(session: AsyncSession, user_id: str) -> list[PositionDrift]:
    """Rewrite the cached positions of ``user_id`` from the replayed transaction log."""

    transactions = await list_transactions(session, user_id)
    portfolio = await get_portfolio(session, user_id)
    if portfolio is None:
        portfolio = Portfolio(user_id=user_id)
        session.add(portfolio)
        await session.flush()
        cached: list[Position] = []
    else:
        cached = list(portfolio.positions)

    drift = reconcile_positions([to_domain_position(row) for row in cached], transactions)
    tracker = CostBasisTracker().apply_all(transactions)
    stocks = await list_stocks(session, tracker.open_quantities())
    stale, created = rewrite_position_rows(portfolio.id, cached, tracker, stocks)
    if stale:
        await session.execute(delete(Position).where(Position.id.in_(stale)))
    for row in created:
        session.add(row)
    await session.commit()

    if drift:
        logger.warning("Reconciled %d drifted position(s) for user %s", len(drift), user_id)
    return drift


async def load_leaderboard(
    session: AsyncSession,
    *,
    metric: str = "portfolio_value",
    limit: int | None = None,
) -> list[LeaderboardEntry]:
    """Rank every portfolio from its transaction log and current prices."""

    portfolios = (await session.execute(select(Portfolio).order_by(Portfolio.user_id))).scalars().all()
    if not portfolios:
        return []
    result = await session.execute(
        select(Transaction)
        .where(
            Transaction.user_id.in_([p.user_id for p in portfolios]),
            Transaction.status == domain.TransactionStatus.COMPLETED.value,
        )
        .order_by(Transaction.user_id, Transaction.timestamp, Transaction.id)
    )
    by_user: dict[str, list[domain.Transaction]] = {}
    for row in result.scalars().all():
        by_user.setdefault(row.user_id, []).append(to_domain_transaction(row))
    stocks = await list_stocks(session, {tx.stock_id for txs in by_user.values() for tx in txs})
    return build_leaderboard(
        leaderboard_inputs(portfolios, by_user, stocks),
        metric=metric,
        limit=limit,
    )


def leaderboard_inputs(
    portfolios: Iterable[Portfolio],
    transactions_by_user: dict[str, list[domain.Transaction]],
    stocks: dict[str, domain.Stock],
) -> list[LeaderboardInput]:
    entries: list[LeaderboardInput] = []
    for portfolio in portfolios:
        summary = compute_analytics([], transactions_by_user.get(portfolio.user_id, []), stocks=stocks).summary
        entries.append(
            LeaderboardInput(
                user_id=portfolio.user_id,
                display_name=portfolio.display_name,
                portfolio_value=summary.portfolio_value,
                total_pnl=summary.total_pnl,
            )
        )
    return entries


__all__ = [
    "HistoryResult",
    "get_portfolio",
    "leaderboard_inputs",
    "list_price_points",
    "list_stocks",
    "list_transactions",
    "load_analytics",
    "load_history",
    "load_leaderboard",
    "reconcile_user_positions",
    "resolve_window",
    "rewrite_position_rows",
    "to_domain_position",
    "to_domain_transaction",
]
