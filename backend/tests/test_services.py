"""Adapter tests with the database replaced by in-memory fakes."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from app.config import AppSettings
from app.models import Portfolio, Position, Stock, Transaction
from app.services import portfolio as portfolio_service
from app.services.market import build_rng, to_domain_stock
from app.services.portfolio import (
    leaderboard_inputs,
    resolve_window,
    rewrite_position_rows,
    to_domain_transaction,
)
from factories import make_stock, make_tx
from papertrade.cost_basis import CostBasisTracker
from papertrade.models import TransactionStatus, TransactionType
from papertrade.pricing import simulate_day

TODAY = date(2024, 6, 30)


def test_window_defaults_to_recent_days(settings: AppSettings):
    start, end = resolve_window(None, None, settings, today=TODAY)

    assert end == TODAY
    assert (end - start).days == settings.default_history_days - 1


def test_window_is_clamped_to_maximum_span(settings: AppSettings):
    start, end = resolve_window(date(2000, 1, 1), TODAY, settings, today=TODAY)

    assert (end - start).days == settings.max_history_days - 1


def test_inverted_window_is_rejected(settings: AppSettings):
    with pytest.raises(ValueError):
        resolve_window(date(2024, 7, 2), date(2024, 7, 1), settings)


def test_seeded_settings_give_repeatable_generator(settings: AppSettings):
    assert build_rng(settings).random() == build_rng(settings).random()


def test_rows_convert_to_domain_types():
    stock_row = SimpleNamespace(
        id=3,
        symbol="CRUX",
        current_price=Decimal("12.5"),
        previous_close=None,
        volume=None,
        sector=None,
        name="Crux Labs",
        market_cap=None,
        is_active=True,
        is_frozen=False,
        volatility=None,
        jump_probability=None,
        max_jump_multiplier=None,
        price_cap=None,
    )
    tx_row = SimpleNamespace(
        id=11,
        user_id="alice",
        stock_id=3,
        type="SELL",
        quantity=2,
        price=Decimal("13"),
        timestamp=datetime(2024, 6, 1, tzinfo=timezone.utc),
        status="COMPLETED",
    )

    stock = to_domain_stock(stock_row)
    tx = to_domain_transaction(tx_row)

    assert stock.id == "3"
    assert stock.volume == 0
    assert stock.max_jump_multiplier == Decimal("1.10")
    assert tx.id == "11"
    assert tx.stock_id == "3"
    assert tx.type is TransactionType.SELL
    assert tx.status is TransactionStatus.COMPLETED
    assert tx.total_amount == Decimal("26")


def test_seeded_ticks_differ_between_days_but_replay_per_day(settings: AppSettings):
    monday, tuesday = date(2024, 6, 3), date(2024, 6, 4)
    stock = make_stock(price="100")

    first = simulate_day(stock, build_rng(settings, monday))
    again = simulate_day(stock, build_rng(settings, monday))
    next_day = simulate_day(stock, build_rng(settings, tuesday))

    assert first == again
    assert first.price != next_day.price


def test_seeded_walk_does_not_repeat_the_same_return(settings: AppSettings):
    stock = make_stock(price="100")
    ratios = set()
    for offset in range(5):
        update = simulate_day(stock, build_rng(settings, date(2024, 6, 3) + timedelta(days=offset)))
        ratios.add(update.price / update.previous_close)
        stock = replace(stock, current_price=update.price)

    assert len(ratios) == 5


def test_transactions_bucket_by_configured_timezone():
    row = SimpleNamespace(
        id=1,
        user_id="alice",
        stock_id=1,
        type="BUY",
        quantity=1,
        price=Decimal("5"),
        timestamp=datetime(2024, 6, 1, 2, 30, tzinfo=timezone.utc),
        status="COMPLETED",
    )

    assert to_domain_transaction(row).day == date(2024, 6, 1)
    assert to_domain_transaction(row, ZoneInfo("America/New_York")).day == date(2024, 5, 31)


def _stock_row(stock_id: int, symbol: str, price: str) -> Stock:
    return Stock(id=stock_id, symbol=symbol, current_price=Decimal(price))


def test_rewrite_updates_inserts_and_drops_rows():
    kept = Position(id=1, portfolio_id=7, stock_id=1, quantity=1, average_buy_price=Decimal("1"))
    closed = Position(id=2, portfolio_id=7, stock_id=2, quantity=4, average_buy_price=Decimal("20"))
    tracker = CostBasisTracker().apply_all(
        [
            make_tx("t1", "BUY", 1, "10", date(2024, 6, 1), stock_id="1"),
            make_tx("t2", "BUY", 2, "11", date(2024, 6, 1), stock_id="1", hour=11),
            make_tx("t3", "BUY", 4, "20", date(2024, 6, 1), stock_id="2", hour=12),
            make_tx("t4", "SELL", 4, "21", date(2024, 6, 2), stock_id="2"),
            make_tx("t5", "BUY", 5, "3", date(2024, 6, 2), stock_id="3", hour=11),
        ]
    )
    stocks = {"1": make_stock("1", "ACME", price="12")}

    stale, created = rewrite_position_rows(7, [kept, closed], tracker, stocks)

    assert stale == [2]
    assert kept.quantity == 3
    assert kept.average_buy_price == Decimal("10.666667")
    assert kept.current_value == Decimal("36")
    assert kept.profit_loss.quantize(Decimal("0.01")) == Decimal("4.00")
    (new_row,) = created
    assert (new_row.portfolio_id, new_row.stock_id, new_row.quantity) == (7, 3, 5)
    assert new_row.current_value == Decimal("15")


class _Result:
    def __init__(self, rows):
        self._rows = rows

    def scalars(self):
        return self

    def all(self):
        return list(self._rows)


class FakeSession:
    def __init__(self, results=()):
        self._results = list(results)
        self.added = []
        self.executed = []
        self.commits = 0

    def add(self, obj):
        self.added.append(obj)

    async def flush(self):
        for obj in self.added:
            if isinstance(obj, Portfolio) and obj.id is None:
                obj.id = 99

    async def execute(self, stmt):
        self.executed.append(stmt)
        return _Result(self._results.pop(0) if self._results else [])

    async def commit(self):
        self.commits += 1


async def test_reconcile_creates_missing_portfolio_and_rows(monkeypatch: pytest.MonkeyPatch):
    log = [make_tx("t1", "BUY", 2, "50", date(2024, 6, 1), stock_id="4")]

    async def fake_transactions(session, user_id, up_to=None, *, tz=None):
        return log

    async def fake_portfolio(session, user_id):
        return None

    async def fake_stocks(session, stock_ids):
        return {"4": make_stock("4", "DYNA", price="55")}

    monkeypatch.setattr(portfolio_service, "list_transactions", fake_transactions)
    monkeypatch.setattr(portfolio_service, "get_portfolio", fake_portfolio)
    monkeypatch.setattr(portfolio_service, "list_stocks", fake_stocks)
    session = FakeSession()

    drift = await portfolio_service.reconcile_user_positions(session, "bob")

    portfolio, position = session.added
    assert portfolio.user_id == "bob"
    assert (position.portfolio_id, position.stock_id, position.quantity) == (99, 4, 2)
    assert position.profit_loss == Decimal("10")
    assert [(d.stock_id, d.cached_quantity, d.replayed_quantity) for d in drift] == [("4", 0, 2)]
    assert session.executed == []
    assert session.commits == 1


async def test_reconcile_deletes_closed_rows(monkeypatch: pytest.MonkeyPatch):
    log = [
        make_tx("t1", "BUY", 2, "50", date(2024, 6, 1), stock_id="4"),
        make_tx("t2", "SELL", 2, "60", date(2024, 6, 2), stock_id="4"),
    ]
    portfolio = Portfolio(id=5, user_id="carol")
    stock_row = _stock_row(4, "DYNA", "55")
    portfolio.positions = [
        Position(id=8, portfolio_id=5, stock_id=4, quantity=2, average_buy_price=Decimal("50"), stock=stock_row)
    ]

    async def fake_transactions(session, user_id, up_to=None, *, tz=None):
        return log

    async def fake_portfolio(session, user_id):
        return portfolio

    async def fake_stocks(session, stock_ids):
        return {}

    monkeypatch.setattr(portfolio_service, "list_transactions", fake_transactions)
    monkeypatch.setattr(portfolio_service, "get_portfolio", fake_portfolio)
    monkeypatch.setattr(portfolio_service, "list_stocks", fake_stocks)
    session = FakeSession()

    drift = await portfolio_service.reconcile_user_positions(session, "carol")

    assert len(session.executed) == 1
    assert session.added == []
    assert [(d.cached_quantity, d.replayed_quantity) for d in drift] == [(2, 0)]


async def test_leaderboard_loads_all_users_in_fixed_queries(monkeypatch: pytest.MonkeyPatch):
    portfolios = [Portfolio(id=1, user_id="alice", display_name="Alice"), Portfolio(id=2, user_id="bob")]
    rows = [
        Transaction(
            id=1,
            user_id="alice",
            stock_id=1,
            type="BUY",
            quantity=10,
            price=Decimal("100"),
            total_amount=Decimal("1000"),
            status="COMPLETED",
            timestamp=datetime(2024, 6, 1, 10, tzinfo=timezone.utc),
        ),
        Transaction(
            id=2,
            user_id="bob",
            stock_id=1,
            type="BUY",
            quantity=2,
            price=Decimal("90"),
            total_amount=Decimal("180"),
            status="COMPLETED",
            timestamp=datetime(2024, 6, 1, 11, tzinfo=timezone.utc),
        ),
    ]
    stock_calls = []

    async def fake_stocks(session, stock_ids):
        stock_calls.append(set(stock_ids))
        return {"1": make_stock("1", "ACME", price="110")}

    monkeypatch.setattr(portfolio_service, "list_stocks", fake_stocks)
    session = FakeSession([portfolios, rows])

    board = await portfolio_service.load_leaderboard(session, metric="total_pnl")

    assert len(session.executed) == 2
    assert stock_calls == [{"1"}]
    assert [(e.rank, e.user_id, e.total_pnl) for e in board] == [
        (1, "alice", Decimal("100")),
        (2, "bob", Decimal("40")),
    ]


def test_leaderboard_includes_users_without_trades():
    entries = leaderboard_inputs([Portfolio(id=3, user_id="dave")], {}, {})

    assert [(e.user_id, e.portfolio_value, e.total_pnl) for e in entries] == [("dave", Decimal("0"), Decimal("0"))]
