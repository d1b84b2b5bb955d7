"""Portfolio endpoints backed by on-demand replay of the transaction log."""

from __future__ import annotations

from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.context import RequestContext, get_request_context
from app.db.session import get_db
from app.schemas import (
    AnalyticsResponse,
    HistoryResponse,
    LeaderboardEntrySchema,
    PositionDriftSchema,
    ReconcileResponse,
)
from app.services import portfolio as portfolio_service
from papertrade.cost_basis import InvalidTransactionSequence

router = APIRouter()


def _conflict(exc: InvalidTransactionSequence) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    start: date | None = None,
    end: date | None = None,
    context: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
) -> HistoryResponse:
    try:
        result = await portfolio_service.load_history(session, context.user_id, start, end)
    except InvalidTransactionSequence as exc:
        raise _conflict(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return HistoryResponse.model_validate(result)


@router.get("/analytics", response_model=AnalyticsResponse)
async def get_analytics(
    top_n: int | None = Query(default=None, gt=0, le=50),
    context: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
) -> AnalyticsResponse:
    try:
        analytics = await portfolio_service.load_analytics(session, context.user_id, top_n=top_n)
    except InvalidTransactionSequence as exc:
        raise _conflict(exc) from exc
    return AnalyticsResponse.model_validate(analytics)


@router.post("/reconcile", response_model=ReconcileResponse)
async def post_reconcile(
    context: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
) -> ReconcileResponse:
    try:
        drift = await portfolio_service.reconcile_user_positions(session, context.user_id)
    except InvalidTransactionSequence as exc:
        raise _conflict(exc) from exc
    return ReconcileResponse(
        user_id=context.user_id,
        drift=[PositionDriftSchema.model_validate(item) for item in drift],
    )


@router.get("/leaderboard", response_model=list[LeaderboardEntrySchema])
async def get_leaderboard(
    metric: Literal["portfolio_value", "total_pnl"] = "portfolio_value",
    limit: int = Query(default=10, gt=0, le=100),
    session: AsyncSession = Depends(get_db),
) -> list[LeaderboardEntrySchema]:
    try:
        entries = await portfolio_service.load_leaderboard(session, metric=metric, limit=limit)
    except InvalidTransactionSequence as exc:
        raise _conflict(exc) from exc
    return [LeaderboardEntrySchema.model_validate(entry) for entry in entries]


__all__ = ["router"]
