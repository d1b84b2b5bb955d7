"""Weighted-average cost tracking over a transaction log."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, getcontext
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .models import Transaction, TransactionType

getcontext().prec = 28

# Scale of the persisted position average (Numeric(18, 6)).
AVERAGE_QUANTUM = Decimal("0.000001")


class InvalidTransactionSequence(ValueError):
    """A SELL asked for more shares than the log says were held."""

    def __init__(self, transaction_id: str, stock_id: str, held: int, requested: int):
        self.transaction_id = transaction_id
        self.stock_id = stock_id
        self.held = held
        self.requested = requested
        super().__init__(
            f"Transaction {transaction_id} sells {requested} shares of {stock_id} "
            f"but only {held} are held"
        )


@dataclass(frozen=True)
class Holding:
    quantity: int
    average_buy_price: Optional[Decimal]

    @property
    def cost_basis(self) -> Decimal:
        if not self.quantity or self.average_buy_price is None:
            return Decimal("0")
        return self.average_buy_price * self.quantity


@dataclass(frozen=True)
class RealizedTrade:
    """Gain locked in by a single SELL."""

    transaction_id: str
    stock_id: str
    timestamp: datetime
    quantity: int
    sell_price: Decimal
    average_cost: Decimal
    realized_pnl: Decimal


EMPTY_HOLDING = Holding(quantity=0, average_buy_price=None)


def quantize_average(value: Optional[Decimal]) -> Optional[Decimal]:
    """Round an average cost to the scale stored in the position cache."""

    if value is None:
        return None
    return Decimal(value).quantize(AVERAGE_QUANTUM, rounding=ROUND_HALF_UP)


def _apply(holding: Holding, tx: Transaction) -> Tuple[Holding, Optional[RealizedTrade]]:
    quantity = int(tx.quantity)
    price = Decimal(tx.price)
    if quantity <= 0:
        raise ValueError(f"Transaction {tx.id} has non-positive quantity {quantity}")
    if tx.normalized_type() == TransactionType.BUY:
        if holding.quantity == 0 or holding.average_buy_price is None:
            return Holding(quantity=quantity, average_buy_price=price), None
        total = holding.quantity + quantity
        average = (holding.average_buy_price * holding.quantity + price * quantity) / total
        return Holding(quantity=total, average_buy_price=average), None

    if quantity > holding.quantity:
        raise InvalidTransactionSequence(str(tx.id), tx.stock_id, holding.quantity, quantity)
    if holding.average_buy_price is None:
        raise ValueError(f"Holding of {tx.stock_id} has shares but no average cost")
    remaining = holding.quantity - quantity
    realized = RealizedTrade(
        transaction_id=str(tx.id),
        stock_id=tx.stock_id,
        timestamp=tx.timestamp,
        quantity=quantity,
        sell_price=price,
        average_cost=holding.average_buy_price,
        realized_pnl=(price - holding.average_buy_price) * quantity,
    )
    if remaining == 0:
        return EMPTY_HOLDING, realized
    return Holding(quantity=remaining, average_buy_price=holding.average_buy_price), realized


def apply_transaction(
    state: Mapping[str, Holding],
    tx: Transaction,
) -> Tuple[Dict[str, Holding], Optional[Decimal]]:
    """Return ``(new_state, realized_gain)`` after applying ``tx``.

    ``state`` is never mutated. The realized gain is ``None`` for BUYs and for
    transactions that did not complete.
    """

    new_state = dict(state)
    if not tx.is_completed:
        return new_state, None
    holding, realized = _apply(state.get(tx.stock_id, EMPTY_HOLDING), tx)
    new_state[tx.stock_id] = holding
    return new_state, realized.realized_pnl if realized else None


class CostBasisTracker:
    """Accumulates holdings and realized P&L as transactions are applied in order."""

    def __init__(self) -> None:
        self._holdings: Dict[str, Holding] = {}
        self._realized: Dict[str, Decimal] = {}
        self._closed_cost: Dict[str, Decimal] = {}
        self._last_price: Dict[str, Decimal] = {}
        self.realized_trades: List[RealizedTrade] = []

    def apply(self, tx: Transaction) -> Optional[Decimal]:
        if not tx.is_completed:
            return None
        holding, realized = _apply(self._holdings.get(tx.stock_id, EMPTY_HOLDING), tx)
        self._holdings[tx.stock_id] = holding
        self._last_price[tx.stock_id] = Decimal(tx.price)
        self._realized.setdefault(tx.stock_id, Decimal("0"))
        self._closed_cost.setdefault(tx.stock_id, Decimal("0"))
        if realized is None:
            return None
        self._realized[tx.stock_id] += realized.realized_pnl
        self._closed_cost[tx.stock_id] += realized.average_cost * realized.quantity
        self.realized_trades.append(realized)
        return realized.realized_pnl

    def apply_all(self, transactions: Iterable[Transaction]) -> "CostBasisTracker":
        for tx in transactions:
            self.apply(tx)
        return self

    @property
    def holdings(self) -> Mapping[str, Holding]:
        return MappingProxyType(dict(self._holdings))

    def holding(self, stock_id: str) -> Holding:
        return self._holdings.get(stock_id, EMPTY_HOLDING)

    def open_quantities(self) -> Dict[str, int]:
        return {stock_id: h.quantity for stock_id, h in self._holdings.items() if h.quantity > 0}

    def realized_pnl(self, stock_id: str) -> Decimal:
        return self._realized.get(stock_id, Decimal("0"))

    def closed_cost(self, stock_id: str) -> Decimal:
        return self._closed_cost.get(stock_id, Decimal("0"))

    def last_price(self, stock_id: str) -> Optional[Decimal]:
        return self._last_price.get(stock_id)

    def traded_stock_ids(self) -> List[str]:
        """Stock ids in the order they first appeared in the log."""

        return list(self._realized.keys())


__all__ = [
    "AVERAGE_QUANTUM",
    "CostBasisTracker",
    "EMPTY_HOLDING",
    "Holding",
    "InvalidTransactionSequence",
    "RealizedTrade",
    "apply_transaction",
    "quantize_average",
]
