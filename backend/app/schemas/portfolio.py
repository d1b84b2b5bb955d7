"""Pydantic schemas for portfolio history and analytics."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class DailyValuationSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: date
    total_value: float


class HistorySummarySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start_value: float
    end_value: float
    change_value: float
    change_pct: float
    peak_date: date | None = None
    peak_value: float | None = None
    trough_date: date | None = None
    trough_value: float | None = None
    max_drawdown_pct: float


class HistoryResponse(BaseModel):
    start: date
    end: date
    valuations: list[DailyValuationSchema]
    summary: HistorySummarySchema

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "start": "2024-03-01",
                "end": "2024-03-02",
                "valuations": [
                    {"date": "2024-03-01", "total_value": 1000.0},
                    {"date": "2024-03-02", "total_value": 1100.0},
                ],
                "summary": {
                    "start_value": 1000.0,
                    "end_value": 1100.0,
                    "change_value": 100.0,
                    "change_pct": 10.0,
                    "peak_date": "2024-03-02",
                    "peak_value": 1100.0,
                    "trough_date": "2024-03-01",
                    "trough_value": 1000.0,
                    "max_drawdown_pct": 0.0,
                },
            }
        },
    )


class StockPnlSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stock_id: str
    symbol: str
    sector: str | None = None
    quantity: int
    average_buy_price: float | None = None
    current_price: float
    cost_basis: float
    current_value: float
    realized_pnl: float
    unrealized_pnl: float
    total_pnl: float
    total_pnl_pct: float
    unrealized_pnl_pct: float = 0.0


class ClosedTradeSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    transaction_id: str
    stock_id: str
    symbol: str
    timestamp: datetime
    quantity: int
    sell_price: float
    average_cost: float
    realized_pnl: float
    realized_pnl_pct: float


class PnlSummarySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_realized_pnl: float
    total_unrealized_pnl: float
    total_pnl: float
    cost_basis_invested: float
    total_pnl_pct: float
    portfolio_value: float
    best_performer: StockPnlSchema | None = None
    worst_performer: StockPnlSchema | None = None
    profitable_trades: int
    unprofitable_trades: int
    win_rate_pct: float
    best_closed_trades: list[ClosedTradeSchema] = Field(default_factory=list)
    worst_closed_trades: list[ClosedTradeSchema] = Field(default_factory=list)


class SectorAllocationSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    value: float
    percentage: float
    is_material: bool


class TopMoversSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    top_gainers: list[StockPnlSchema]
    top_losers: list[StockPnlSchema]


class TradeCountSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    symbol: str
    count: int


class ActivitySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_volume_traded: float
    trade_count: int
    average_trades_per_day: float
    most_traded: list[TradeCountSchema]


class PositionDriftSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stock_id: str
    cached_quantity: int
    replayed_quantity: int
    cached_average: float | None = None
    replayed_average: float | None = None


class AnalyticsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    per_stock_pnl: list[StockPnlSchema]
    summary: PnlSummarySchema
    sector_allocation: list[SectorAllocationSchema]
    top_movers: TopMoversSchema
    activity: ActivitySchema
    drift: list[PositionDriftSchema] = Field(default_factory=list)


class ReconcileResponse(BaseModel):
    user_id: str
    drift: list[PositionDriftSchema]


class LeaderboardEntrySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rank: int
    user_id: str
    display_name: str | None = None
    portfolio_value: float
    total_pnl: float


__all__ = [
    "ActivitySchema",
    "ClosedTradeSchema",
    "AnalyticsResponse",
    "DailyValuationSchema",
    "HistoryResponse",
    "HistorySummarySchema",
    "LeaderboardEntrySchema",
    "PnlSummarySchema",
    "PositionDriftSchema",
    "ReconcileResponse",
    "SectorAllocationSchema",
    "StockPnlSchema",
    "TopMoversSchema",
    "TradeCountSchema",
]
