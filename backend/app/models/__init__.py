"""Database model exports."""

from .market import PriceHistory, Stock
from .portfolio import TRANSACTION_STATUSES, TRANSACTION_TYPES, Portfolio, Position, Transaction

__all__ = [
    "Stock",
    "PriceHistory",
    "Portfolio",
    "Position",
    "Transaction",
    "TRANSACTION_TYPES",
    "TRANSACTION_STATUSES",
]
