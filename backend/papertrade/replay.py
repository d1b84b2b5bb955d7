"""Pipeline functions for rebuilding daily portfolio valuations from the trade log."""
from __future__ import annotations

import bisect
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, getcontext
from typing import Dict, Iterable, List, Optional, Sequence

from .cost_basis import CostBasisTracker
from .models import DailyValuation, PricePoint, Transaction

getcontext().prec = 28


class _PriceLookup:
    """Per-stock forward-fill index over recorded price points."""

    def __init__(self, price_points: Iterable[PricePoint]):
        by_stock: Dict[str, Dict[date, Decimal]] = {}
        for point in price_points:
            # Later points for the same (stock, day) win.
            by_stock.setdefault(point.stock_id, {})[point.day] = Decimal(point.price)
        self._days: Dict[str, List[date]] = {}
        self._prices: Dict[str, List[Decimal]] = {}
        for stock_id, series in by_stock.items():
            days = sorted(series)
            self._days[stock_id] = days
            self._prices[stock_id] = [series[d] for d in days]

    def price_on(self, stock_id: str, day: date) -> Optional[Decimal]:
        days = self._days.get(stock_id)
        if not days:
            return None
        index = bisect.bisect_right(days, day)
        if index == 0:
            return None
        return self._prices[stock_id][index - 1]


def _bucket_by_day(transactions: Iterable[Transaction]) -> Dict[date, List[Transaction]]:
    buckets: Dict[date, List[Transaction]] = {}
    for tx in transactions:
        buckets.setdefault(tx.day, []).append(tx)
    return buckets


def reconstruct_history(
    transactions: Sequence[Transaction],
    price_points: Iterable[PricePoint],
    start_date: date,
    end_date: date,
) -> List[DailyValuation]:
    """Return one valuation per calendar day in ``[start_date, end_date]``.

    Transactions must be ordered by timestamp; each day's trades are applied
    before the day is valued. A held stock is priced at its latest point on
    or before the day, falling back to its last execution price when no
    point has been recorded yet. Raises ``InvalidTransactionSequence`` when
    the log oversells a stock.
    """

    if start_date > end_date:
        return []
    lookup = _PriceLookup(price_points)
    tracker = CostBasisTracker()
    buckets = _bucket_by_day(transactions)

    for day in sorted(d for d in buckets if d < start_date):
        for tx in buckets[day]:
            tracker.apply(tx)

    valuations: List[DailyValuation] = []
    total_days = (end_date - start_date).days
    for offset in range(total_days + 1):
        current = start_date + timedelta(days=offset)
        for tx in buckets.get(current, []):
            tracker.apply(tx)
        total = Decimal("0")
        for stock_id, quantity in tracker.open_quantities().items():
            price = lookup.price_on(stock_id, current)
            if price is None:
                price = tracker.last_price(stock_id)
            if price is None:
                continue
            total += price * quantity
        valuations.append(DailyValuation(date=current, total_value=total))
    return valuations


def holdings_on(transactions: Iterable[Transaction], day: date) -> Dict[str, int]:
    """Open share count per stock at the end of ``day``."""

    tracker = CostBasisTracker()
    for tx in sorted(transactions, key=lambda t: t.timestamp):
        if tx.day > day:
            break
        tracker.apply(tx)
    return tracker.open_quantities()


@dataclass
class HistorySummary:
    start_value: Decimal = Decimal("0")
    end_value: Decimal = Decimal("0")
    change_value: Decimal = Decimal("0")
    change_pct: Decimal = Decimal("0")
    peak_date: date | None = None
    peak_value: Decimal | None = None
    trough_date: date | None = None
    trough_value: Decimal | None = None
    max_drawdown_pct: Decimal = Decimal("0")


def summarize_history(valuations: Sequence[DailyValuation]) -> HistorySummary:
    if not valuations:
        return HistorySummary()
    ordered = sorted(valuations, key=lambda v: v.date)
    first, last = ordered[0], ordered[-1]
    peak_row = max(ordered, key=lambda v: v.total_value)
    trough_row = min(ordered, key=lambda v: v.total_value)
    change = last.total_value - first.total_value
    running_peak = Decimal("0")
    max_drawdown = Decimal("0")
    for row in ordered:
        running_peak = max(running_peak, row.total_value)
        if running_peak > 0:
            drawdown = (row.total_value - running_peak) / running_peak * Decimal("100")
            max_drawdown = min(max_drawdown, drawdown)
    return HistorySummary(
        start_value=first.total_value,
        end_value=last.total_value,
        change_value=change,
        change_pct=change / first.total_value * Decimal("100") if first.total_value else Decimal("0"),
        peak_date=peak_row.date,
        peak_value=peak_row.total_value,
        trough_date=trough_row.date,
        trough_value=trough_row.total_value,
        max_drawdown_pct=max_drawdown,
    )


__all__ = [
    "HistorySummary",
    "holdings_on",
    "reconstruct_history",
    "summarize_history",
]
