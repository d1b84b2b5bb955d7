"""Portfolio analytics over the current snapshot.

Holdings, average costs and realized gains are always rebuilt by replaying the
transaction log through :class:`CostBasisTracker`; cached positions only
contribute stock metadata and current prices. This keeps the figures here
consistent with the history series even when the position cache has drifted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, getcontext
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .cost_basis import CostBasisTracker, RealizedTrade, quantize_average
from .models import Position, Stock, Transaction

getcontext().prec = 28

logger = logging.getLogger(__name__)

UNCLASSIFIED_SECTOR = "Unclassified"
DEFAULT_TOP_N = 3
DEFAULT_MATERIALITY_PCT = Decimal("1")
MOST_TRADED_LIMIT = 5
CLOSED_TRADES_LIMIT = 5
_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


def _pct(value: Decimal, total: Decimal) -> Decimal:
    if total <= 0:
        return _ZERO
    return value / total * _HUNDRED


@dataclass
class StockPnl:
    stock_id: str
    symbol: str
    sector: Optional[str]
    quantity: int
    average_buy_price: Optional[Decimal]
    current_price: Decimal
    cost_basis: Decimal
    current_value: Decimal
    realized_pnl: Decimal
    unrealized_pnl: Decimal
    total_pnl: Decimal
    total_pnl_pct: Decimal
    unrealized_pnl_pct: Decimal = _ZERO
    closed_cost: Decimal = _ZERO

    @property
    def is_open(self) -> bool:
        return self.quantity > 0


@dataclass
class ClosedTrade:
    """A SELL and the gain it locked in against the running average cost."""

    transaction_id: str
    stock_id: str
    symbol: str
    timestamp: datetime
    quantity: int
    sell_price: Decimal
    average_cost: Decimal
    realized_pnl: Decimal
    realized_pnl_pct: Decimal


@dataclass
class PnlSummary:
    total_realized_pnl: Decimal = _ZERO
    total_unrealized_pnl: Decimal = _ZERO
    total_pnl: Decimal = _ZERO
    cost_basis_invested: Decimal = _ZERO
    total_pnl_pct: Decimal = _ZERO
    portfolio_value: Decimal = _ZERO
    best_performer: Optional[StockPnl] = None
    worst_performer: Optional[StockPnl] = None
    profitable_trades: int = 0
    unprofitable_trades: int = 0
    win_rate_pct: Decimal = _ZERO
    best_closed_trades: List[ClosedTrade] = field(default_factory=list)
    worst_closed_trades: List[ClosedTrade] = field(default_factory=list)


@dataclass
class SectorAllocation:
    name: str
    value: Decimal
    percentage: Decimal
    is_material: bool


@dataclass
class TopMovers:
    top_gainers: List[StockPnl] = field(default_factory=list)
    top_losers: List[StockPnl] = field(default_factory=list)


@dataclass
class TradeCount:
    symbol: str
    count: int


@dataclass
class ActivityMetrics:
    total_volume_traded: Decimal = _ZERO
    trade_count: int = 0
    average_trades_per_day: Decimal = _ZERO
    most_traded: List[TradeCount] = field(default_factory=list)


@dataclass
class PositionDrift:
    """Difference between a cached position and the replayed transaction log."""

    stock_id: str
    cached_quantity: int
    replayed_quantity: int
    cached_average: Optional[Decimal]
    replayed_average: Optional[Decimal]


@dataclass
class PortfolioAnalytics:
    per_stock_pnl: List[StockPnl]
    summary: PnlSummary
    sector_allocation: List[SectorAllocation]
    top_movers: TopMovers
    activity: ActivityMetrics
    drift: List[PositionDrift] = field(default_factory=list)


def _completed(transactions: Iterable[Transaction]) -> List[Transaction]:
    return sorted((tx for tx in transactions if tx.is_completed), key=lambda tx: tx.timestamp)


def _replay(transactions: Sequence[Transaction]) -> CostBasisTracker:
    return CostBasisTracker().apply_all(transactions)


def reconcile_positions(
    positions: Iterable[Position],
    transactions: Iterable[Transaction],
) -> List[PositionDrift]:
    """Report every stock where the cached position disagrees with the replayed log."""

    tracker = _replay(_completed(transactions))
    cached = {p.stock.id: p for p in positions}
    drift: List[PositionDrift] = []
    for stock_id in sorted(set(cached) | set(tracker.traded_stock_ids())):
        holding = tracker.holding(stock_id)
        position = cached.get(stock_id)
        cached_qty = position.quantity if position else 0
        cached_avg = position.average_buy_price if position and position.quantity > 0 else None
        replayed_avg = quantize_average(holding.average_buy_price)
        if cached_qty == holding.quantity and quantize_average(cached_avg) == replayed_avg:
            continue
        drift.append(
            PositionDrift(
                stock_id=stock_id,
                cached_quantity=cached_qty,
                replayed_quantity=holding.quantity,
                cached_average=cached_avg,
                replayed_average=replayed_avg,
            )
        )
    return drift


def _per_stock_pnl(tracker: CostBasisTracker, stocks: Mapping[str, Stock]) -> List[StockPnl]:
    rows: List[StockPnl] = []
    for stock_id in tracker.traded_stock_ids():
        holding = tracker.holding(stock_id)
        stock = stocks.get(stock_id)
        if stock is not None:
            symbol, sector, price = stock.symbol, stock.sector, Decimal(stock.current_price)
        else:
            symbol, sector, price = stock_id, None, tracker.last_price(stock_id) or _ZERO
        cost_basis = holding.cost_basis
        current_value = price * holding.quantity
        realized = tracker.realized_pnl(stock_id)
        unrealized = current_value - cost_basis if holding.quantity > 0 else _ZERO
        closed_cost = tracker.closed_cost(stock_id)
        total = realized + unrealized
        rows.append(
            StockPnl(
                stock_id=stock_id,
                symbol=symbol,
                sector=sector,
                quantity=holding.quantity,
                average_buy_price=holding.average_buy_price,
                current_price=price,
                cost_basis=cost_basis,
                current_value=current_value,
                realized_pnl=realized,
                unrealized_pnl=unrealized,
                total_pnl=total,
                total_pnl_pct=_pct(total, cost_basis + closed_cost),
                unrealized_pnl_pct=_pct(unrealized, cost_basis),
                closed_cost=closed_cost,
            )
        )
    return rows


def _closed_trade(trade: RealizedTrade, symbols: Mapping[str, str]) -> ClosedTrade:
    cost = trade.average_cost * trade.quantity
    return ClosedTrade(
        transaction_id=trade.transaction_id,
        stock_id=trade.stock_id,
        symbol=symbols.get(trade.stock_id, trade.stock_id),
        timestamp=trade.timestamp,
        quantity=trade.quantity,
        sell_price=trade.sell_price,
        average_cost=trade.average_cost,
        realized_pnl=trade.realized_pnl,
        realized_pnl_pct=_pct(trade.realized_pnl, cost),
    )


def rank_closed_trades(
    trades: Iterable[ClosedTrade],
    count: int = CLOSED_TRADES_LIMIT,
) -> tuple[List[ClosedTrade], List[ClosedTrade]]:
    """Return the ``count`` best and worst SELLs by realized gain, worst most negative first."""

    trades = list(trades)
    best = sorted(trades, key=lambda t: (-t.realized_pnl, t.timestamp, t.transaction_id))
    worst = sorted(trades, key=lambda t: (t.realized_pnl, t.timestamp, t.transaction_id))
    return best[:count], worst[:count]


def _summarize(rows: Sequence[StockPnl], tracker: CostBasisTracker) -> PnlSummary:
    if not rows:
        return PnlSummary()
    realized = sum((r.realized_pnl for r in rows), _ZERO)
    unrealized = sum((r.unrealized_pnl for r in rows), _ZERO)
    invested = sum((r.cost_basis + r.closed_cost for r in rows), _ZERO)
    value = sum((r.current_value for r in rows), _ZERO)
    by_total = sorted(rows, key=lambda r: r.symbol)
    best = max(by_total, key=lambda r: r.total_pnl)
    worst = min(by_total, key=lambda r: r.total_pnl)
    profitable = sum(1 for trade in tracker.realized_trades if trade.realized_pnl > 0)
    unprofitable = sum(1 for trade in tracker.realized_trades if trade.realized_pnl < 0)
    closed = profitable + unprofitable
    symbols = {r.stock_id: r.symbol for r in rows}
    best_trades, worst_trades = rank_closed_trades(
        _closed_trade(trade, symbols) for trade in tracker.realized_trades
    )
    return PnlSummary(
        total_realized_pnl=realized,
        total_unrealized_pnl=unrealized,
        total_pnl=realized + unrealized,
        cost_basis_invested=invested,
        total_pnl_pct=_pct(realized + unrealized, invested),
        portfolio_value=value,
        best_performer=best,
        worst_performer=worst,
        profitable_trades=profitable,
        unprofitable_trades=unprofitable,
        win_rate_pct=Decimal(profitable) / closed * _HUNDRED if closed else _ZERO,
        best_closed_trades=best_trades,
        worst_closed_trades=worst_trades,
    )


def sector_allocation(
    rows: Iterable[StockPnl],
    *,
    materiality_pct: Decimal = DEFAULT_MATERIALITY_PCT,
) -> List[SectorAllocation]:
    """Group open holdings by sector as a share of total portfolio value."""

    values: Dict[str, Decimal] = {}
    for row in rows:
        if not row.is_open:
            continue
        name = row.sector or UNCLASSIFIED_SECTOR
        values[name] = values.get(name, _ZERO) + row.current_value
    total = sum(values.values(), _ZERO)
    buckets = []
    for name, value in values.items():
        pct = _pct(value, total)
        buckets.append(SectorAllocation(name=name, value=value, percentage=pct, is_material=pct >= materiality_pct))
    return sorted(buckets, key=lambda b: (-b.value, b.name))


def top_movers(rows: Iterable[StockPnl], count: int = DEFAULT_TOP_N) -> TopMovers:
    rows = list(rows)
    gainers = sorted((r for r in rows if r.total_pnl > 0), key=lambda r: (-r.total_pnl, r.symbol))
    losers = sorted((r for r in rows if r.total_pnl < 0), key=lambda r: (r.total_pnl, r.symbol))
    return TopMovers(top_gainers=gainers[:count], top_losers=losers[:count])


def activity_metrics(
    transactions: Sequence[Transaction],
    stocks: Mapping[str, Stock],
) -> ActivityMetrics:
    if not transactions:
        return ActivityMetrics()
    volume = sum((tx.total_amount for tx in transactions), _ZERO)
    counts: Dict[str, int] = {}
    for tx in transactions:
        stock = stocks.get(tx.stock_id)
        symbol = stock.symbol if stock else tx.stock_id
        counts[symbol] = counts.get(symbol, 0) + 1
    span_days = (transactions[-1].day - transactions[0].day).days + 1
    most_traded = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:MOST_TRADED_LIMIT]
    return ActivityMetrics(
        total_volume_traded=volume,
        trade_count=len(transactions),
        average_trades_per_day=Decimal(len(transactions)) / span_days,
        most_traded=[TradeCount(symbol=symbol, count=count) for symbol, count in most_traded],
    )


def compute_analytics(
    positions: Iterable[Position],
    transactions: Iterable[Transaction],
    *,
    stocks: Optional[Mapping[str, Stock]] = None,
    top_n: int = DEFAULT_TOP_N,
    materiality_pct: Decimal = DEFAULT_MATERIALITY_PCT,
) -> PortfolioAnalytics:
    """Derive P&L, sector exposure, top movers and trading activity for one user."""

    positions = list(positions)
    completed = _completed(transactions)
    lookup: Dict[str, Stock] = dict(stocks or {})
    for position in positions:
        lookup[position.stock.id] = position.stock

    tracker = _replay(completed)
    drift = reconcile_positions(positions, completed)
    if drift:
        logger.warning("Cached positions drifted from the transaction log for %d stock(s)", len(drift))

    rows = _per_stock_pnl(tracker, lookup)
    return PortfolioAnalytics(
        per_stock_pnl=rows,
        summary=_summarize(rows, tracker),
        sector_allocation=sector_allocation(rows, materiality_pct=materiality_pct),
        top_movers=top_movers(rows, top_n),
        activity=activity_metrics(completed, lookup),
        drift=drift,
    )


@dataclass
class LeaderboardInput:
    user_id: str
    display_name: Optional[str]
    portfolio_value: Decimal
    total_pnl: Decimal


@dataclass
class LeaderboardEntry:
    rank: int
    user_id: str
    display_name: Optional[str]
    portfolio_value: Decimal
    total_pnl: Decimal


def build_leaderboard(
    entries: Iterable[LeaderboardInput],
    *,
    metric: str = "portfolio_value",
    limit: Optional[int] = None,
) -> List[LeaderboardEntry]:
    """Rank users by ``metric``; equal scores share a rank (1, 1, 3, ...)."""

    if metric not in ("portfolio_value", "total_pnl"):
        raise ValueError(f"Unsupported leaderboard metric {metric!r}")
    ordered = sorted(entries, key=lambda e: (-getattr(e, metric), e.user_id))
    ranked: List[LeaderboardEntry] = []
    previous: Optional[Decimal] = None
    rank = 0
    for position, entry in enumerate(ordered, start=1):
        score = getattr(entry, metric)
        if score != previous:
            rank = position
            previous = score
        ranked.append(
            LeaderboardEntry(
                rank=rank,
                user_id=entry.user_id,
                display_name=entry.display_name,
                portfolio_value=entry.portfolio_value,
                total_pnl=entry.total_pnl,
            )
        )
    return ranked[:limit] if limit is not None else ranked


__all__ = [
    "ActivityMetrics",
    "ClosedTrade",
    "LeaderboardEntry",
    "LeaderboardInput",
    "PnlSummary",
    "PortfolioAnalytics",
    "PositionDrift",
    "SectorAllocation",
    "StockPnl",
    "TopMovers",
    "UNCLASSIFIED_SECTOR",
    "activity_metrics",
    "build_leaderboard",
    "compute_analytics",
    "reconcile_positions",
    "rank_closed_trades",
    "sector_allocation",
    "top_movers",
]
