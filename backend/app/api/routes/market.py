"""Market endpoints: stock listings, price history, and the simulation tick."""

from __future__ import annotations

from datetime import date

import numpy as np
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.context import InternalAuth
from app.db.session import get_db
from app.models import Stock
from app.schemas import (
    PriceHistoryPointSchema,
    SeedHistoryRequest,
    SeedHistoryResponse,
    SimulationFailureSchema,
    SimulationTickRequest,
    SimulationTickResponse,
    StockSchema,
)
from app.services import market as market_service

router = APIRouter()


@router.get("/stocks", response_model=list[StockSchema])
async def get_stocks(
    include_inactive: bool = False,
    session: AsyncSession = Depends(get_db),
) -> list[StockSchema]:
    stmt = select(Stock).order_by(Stock.symbol)
    if not include_inactive:
        stmt = stmt.where(Stock.is_active.is_(True))
    rows = (await session.execute(stmt)).scalars().all()
    return [StockSchema.model_validate(row) for row in rows]


@router.get("/stocks/{stock_id}/history", response_model=list[PriceHistoryPointSchema])
async def get_stock_history(
    stock_id: int,
    start: date | None = None,
    end: date | None = None,
    session: AsyncSession = Depends(get_db),
) -> list[PriceHistoryPointSchema]:
    if start and end and start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start cannot be after end")
    rows = await market_service.list_stock_history(session, stock_id, start, end)
    return [PriceHistoryPointSchema.model_validate(row) for row in rows]


@router.post("/simulate", response_model=SimulationTickResponse, dependencies=[InternalAuth])
async def post_simulation_tick(
    request: SimulationTickRequest | None = None,
    session: AsyncSession = Depends(get_db),
) -> SimulationTickResponse:
    """Advance the market by one day; called by the external scheduler."""

    request = request or SimulationTickRequest()
    rng = np.random.default_rng(request.seed) if request.seed is not None else None
    batch = await market_service.run_simulation_tick(session, rng=rng, as_of=request.as_of)
    return SimulationTickResponse(
        as_of=batch.as_of,
        updated=len(batch.updates),
        skipped=batch.skipped,
        failures=[SimulationFailureSchema.model_validate(failure) for failure in batch.failures],
    )


@router.post(
    "/stocks/{stock_id}/seed-history",
    response_model=SeedHistoryResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[InternalAuth],
)
async def post_seed_history(
    stock_id: int,
    request: SeedHistoryRequest,
    session: AsyncSession = Depends(get_db),
) -> SeedHistoryResponse:
    rng = np.random.default_rng(request.seed) if request.seed is not None else None
    try:
        written = await market_service.seed_price_history(session, stock_id, request.days, rng=rng)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return SeedHistoryResponse(stock_id=stock_id, written=written)


__all__ = ["router"]
