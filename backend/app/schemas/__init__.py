"""Pydantic schema exports."""

from .market import (
    PriceHistoryPointSchema,
    SeedHistoryRequest,
    SeedHistoryResponse,
    SimulationFailureSchema,
    SimulationTickRequest,
    SimulationTickResponse,
    StockSchema,
)
from .portfolio import (
    ActivitySchema,
    AnalyticsResponse,
    ClosedTradeSchema,
    DailyValuationSchema,
    HistoryResponse,
    HistorySummarySchema,
    LeaderboardEntrySchema,
    PnlSummarySchema,
    PositionDriftSchema,
    ReconcileResponse,
    SectorAllocationSchema,
    StockPnlSchema,
    TopMoversSchema,
    TradeCountSchema,
)

__all__ = [
    "ActivitySchema",
    "AnalyticsResponse",
    "ClosedTradeSchema",
    "DailyValuationSchema",
    "HistoryResponse",
    "HistorySummarySchema",
    "LeaderboardEntrySchema",
    "PnlSummarySchema",
    "PositionDriftSchema",
    "PriceHistoryPointSchema",
    "ReconcileResponse",
    "SectorAllocationSchema",
    "SeedHistoryRequest",
    "SeedHistoryResponse",
    "SimulationFailureSchema",
    "SimulationTickRequest",
    "SimulationTickResponse",
    "StockPnlSchema",
    "StockSchema",
    "TopMoversSchema",
    "TradeCountSchema",
]
