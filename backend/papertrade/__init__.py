"""Valuation and simulation core for the paper-trading simulator."""

from .analytics import PortfolioAnalytics, build_leaderboard, compute_analytics, reconcile_positions
from .cost_basis import CostBasisTracker, Holding, InvalidTransactionSequence, apply_transaction
from .models import (
    DailyValuation,
    Position,
    PricePoint,
    PriceUpdate,
    Stock,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from .pricing import SimulationBatch, generate_price_history, simulate_day, simulate_market
from .replay import HistorySummary, holdings_on, reconstruct_history, summarize_history

__all__ = [
    "CostBasisTracker",
    "DailyValuation",
    "Holding",
    "HistorySummary",
    "InvalidTransactionSequence",
    "PortfolioAnalytics",
    "Position",
    "PricePoint",
    "PriceUpdate",
    "SimulationBatch",
    "Stock",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "apply_transaction",
    "build_leaderboard",
    "compute_analytics",
    "generate_price_history",
    "holdings_on",
    "reconcile_positions",
    "reconstruct_history",
    "simulate_day",
    "simulate_market",
    "summarize_history",
]
