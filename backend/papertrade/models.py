"""Domain models used by the valuation and simulation core."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional


class TransactionType(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class Stock:
    """A simulated listing and its per-stock simulation parameters."""

    id: str
    symbol: str
    current_price: Decimal
    previous_close: Optional[Decimal] = None
    volume: int = 0
    sector: Optional[str] = None
    name: Optional[str] = None
    market_cap: Optional[Decimal] = None
    is_active: bool = True
    is_frozen: bool = False
    volatility: Optional[Decimal] = None
    jump_probability: Decimal = Decimal("0")
    max_jump_multiplier: Decimal = Decimal("1.10")
    price_cap: Optional[Decimal] = None


@dataclass(frozen=True)
class PricePoint:
    """Recorded closing price and volume for one stock on one day."""

    stock_id: str
    day: date
    price: Decimal
    volume: int = 0


@dataclass(frozen=True)
class Transaction:
    """An immutable executed trade; the only source of truth for holdings."""

    id: str
    user_id: str
    stock_id: str
    type: TransactionType
    quantity: int
    price: Decimal
    timestamp: datetime
    status: TransactionStatus = TransactionStatus.COMPLETED

    @property
    def total_amount(self) -> Decimal:
        return self.price * self.quantity

    @property
    def day(self) -> date:
        return self.timestamp.date()

    @property
    def is_completed(self) -> bool:
        return TransactionStatus(self.status) == TransactionStatus.COMPLETED

    def normalized_type(self) -> TransactionType:
        """Return the transaction type as an enum member for consistent comparisons."""

        return TransactionType(str(getattr(self.type, "value", self.type)).upper())


@dataclass(frozen=True)
class Position:
    """Cached holding of a portfolio; derived from the transaction log."""

    portfolio_id: str
    stock: Stock
    quantity: int
    average_buy_price: Optional[Decimal]
    current_value: Decimal = Decimal("0")
    profit_loss: Decimal = Decimal("0")


@dataclass(frozen=True)
class DailyValuation:
    """Total market value of a portfolio at the end of one calendar day."""

    date: date
    total_value: Decimal


@dataclass(frozen=True)
class PriceUpdate:
    """Next-day price and volume produced by the price model."""

    stock_id: str
    price: Decimal
    previous_close: Decimal
    volume_delta: int
    volume: int
    was_jump: bool = False
    jump_percentage: Optional[Decimal] = None


__all__ = [
    "DailyValuation",
    "Position",
    "PricePoint",
    "PriceUpdate",
    "Stock",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
]
