"""HTTP surface tests with the database and services stubbed out."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.api.routes import api_router
from app.db.session import get_db
from app.services import market as market_service
from app.services import portfolio as portfolio_service
from factories import make_stock, make_tx
from papertrade.analytics import compute_analytics
from papertrade.cost_basis import InvalidTransactionSequence
from papertrade.models import PricePoint
from papertrade.pricing import SimulationBatch, SimulationFailure
from papertrade.replay import reconstruct_history, summarize_history

USER = {"X-User-Id": "alice"}


async def _no_db():
    yield None


def _app() -> FastAPI:
    app = FastAPI()
    app.include_router(api_router)
    app.dependency_overrides[get_db] = _no_db
    return app


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=_app()), base_url="http://test")


async def test_history_returns_daily_series(monkeypatch: pytest.MonkeyPatch):
    start, end = date(2024, 3, 1), date(2024, 3, 3)
    valuations = reconstruct_history(
        [make_tx("t1", "BUY", 10, "100", start)],
        [PricePoint(stock_id="1", day=date(2024, 3, 2), price=Decimal("110"))],
        start,
        end,
    )
    calls = []

    async def fake_load_history(session, user_id, start_arg, end_arg):
        calls.append((user_id, start_arg, end_arg))
        return portfolio_service.HistoryResult(start, end, valuations, summarize_history(valuations))

    monkeypatch.setattr(portfolio_service, "load_history", fake_load_history)

    async with _client() as client:
        response = await client.get("/portfolio/history?start=2024-03-01&end=2024-03-03", headers=USER)

    assert response.status_code == 200
    payload = response.json()
    assert [row["total_value"] for row in payload["valuations"]] == [1000.0, 1100.0, 1100.0]
    assert payload["summary"]["change_pct"] == pytest.approx(10.0)
    assert calls == [("alice", start, end)]


async def test_history_requires_user_header():
    async with _client() as client:
        response = await client.get("/portfolio/history")

    assert response.status_code == 401


async def test_history_maps_bad_log_to_conflict(monkeypatch: pytest.MonkeyPatch):
    async def fake_load_history(session, user_id, start, end):
        raise InvalidTransactionSequence("t9", "1", held=2, requested=5)

    monkeypatch.setattr(portfolio_service, "load_history", fake_load_history)

    async with _client() as client:
        response = await client.get("/portfolio/history", headers=USER)

    assert response.status_code == 409
    assert "t9" in response.json()["detail"]


async def test_history_rejects_inverted_range(monkeypatch: pytest.MonkeyPatch):
    async def fake_load_history(session, user_id, start, end):
        raise ValueError("start cannot be after end")

    monkeypatch.setattr(portfolio_service, "load_history", fake_load_history)

    async with _client() as client:
        response = await client.get("/portfolio/history?start=2024-03-05&end=2024-03-01", headers=USER)

    assert response.status_code == 400


async def test_analytics_serialises_core_result(monkeypatch: pytest.MonkeyPatch):
    analytics = compute_analytics(
        [],
        [
            make_tx("t1", "BUY", 10, "100", date(2024, 5, 1)),
            make_tx("t2", "SELL", 4, "120", date(2024, 5, 5)),
        ],
        stocks={"1": make_stock(price="115", sector="Tech")},
    )

    async def fake_load_analytics(session, user_id, *, top_n=None):
        return analytics

    monkeypatch.setattr(portfolio_service, "load_analytics", fake_load_analytics)

    async with _client() as client:
        response = await client.get("/portfolio/analytics", headers=USER)

    assert response.status_code == 200
    payload = response.json()
    assert payload["summary"]["total_realized_pnl"] == pytest.approx(80.0)
    assert payload["per_stock_pnl"][0]["average_buy_price"] == pytest.approx(100.0)
    assert payload["sector_allocation"][0]["name"] == "Tech"
    assert payload["top_movers"]["top_gainers"][0]["symbol"] == "ACME"
    assert payload["activity"]["trade_count"] == 2
    assert payload["summary"]["best_closed_trades"][0]["realized_pnl"] == pytest.approx(80.0)
    assert payload["per_stock_pnl"][0]["unrealized_pnl_pct"] == pytest.approx(15.0)


async def test_simulate_reports_batch_counts(monkeypatch: pytest.MonkeyPatch):
    seen = {}

    async def fake_tick(session, *, rng=None, as_of=None):
        seen["rng"], seen["as_of"] = rng, as_of
        return SimulationBatch(
            as_of=as_of,
            skipped=1,
            failures=[SimulationFailure(stock_id="2", symbol="BBB", error="boom")],
        )

    monkeypatch.setattr(market_service, "run_simulation_tick", fake_tick)

    async with _client() as client:
        response = await client.post("/market/simulate", json={"as_of": "2024-06-03", "seed": 4})

    assert response.status_code == 200
    assert response.json() == {
        "as_of": "2024-06-03",
        "updated": 0,
        "skipped": 1,
        "failures": [{"stock_id": "2", "symbol": "BBB", "error": "boom"}],
    }
    assert seen["as_of"] == date(2024, 6, 3)
    assert seen["rng"] is not None


async def test_stock_history_rejects_inverted_range():
    async with _client() as client:
        response = await client.get("/market/stocks/1/history?start=2024-03-05&end=2024-03-01")

    assert response.status_code == 400
