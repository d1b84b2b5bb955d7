"""Pydantic schemas for the simulated market."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field


class StockSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    symbol: str
    name: str | None = None
    sector: str | None = None
    current_price: float
    previous_close: float | None = None
    volume: int
    is_active: bool
    is_frozen: bool


class PriceHistoryPointSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day: date
    price: float
    volume: int


class SimulationFailureSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stock_id: str
    symbol: str
    error: str


class SimulationTickRequest(BaseModel):
    as_of: date | None = Field(default=None, description="Day stamped on every snapshot of the tick")
    seed: int | None = Field(default=None, description="Overrides the configured simulation seed")


class SimulationTickResponse(BaseModel):
    as_of: date
    updated: int
    skipped: int
    failures: list[SimulationFailureSchema]

    class Config:
        json_schema_extra = {
            "example": {"as_of": "2024-03-01", "updated": 42, "skipped": 3, "failures": []}
        }


class SeedHistoryRequest(BaseModel):
    days: int = Field(..., gt=0, le=3650)
    seed: int | None = None


class SeedHistoryResponse(BaseModel):
    stock_id: int
    written: int


__all__ = [
    "PriceHistoryPointSchema",
    "SeedHistoryRequest",
    "SeedHistoryResponse",
    "SimulationFailureSchema",
    "SimulationTickRequest",
    "SimulationTickResponse",
    "StockSchema",
]
