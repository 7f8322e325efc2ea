"""Ledger API tests."""

from __future__ import annotations

import threading
from decimal import Decimal

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.api.routes.ledger import router as ledger_router
from app.config import AppSettings
from app.services.sessions import TradingServices
from tradedesk.notifications import RecordingNotifier
from tradedesk.persistence import InMemoryStateStore
from tradedesk.quotes import InMemoryQuoteSource


def _app(initial_balance: str = "1000", store: InMemoryStateStore | None = None) -> FastAPI:
    settings = AppSettings(timezone="UTC", initial_balance=Decimal(initial_balance))
    app = FastAPI()
    app.state.services = TradingServices.from_settings(
        settings,
        store=store or InMemoryStateStore(),
        quotes=InMemoryQuoteSource({"ppc": "19.85", "ete": "15.25"}),
        notifier=RecordingNotifier(),
    )
    app.include_router(ledger_router, prefix="/ledger", tags=["ledger"])
    return app


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def test_new_ledger_starts_with_initial_balance():
    async with _client(_app()) as client:
        response = await client.get("/ledger/alice")

    assert response.status_code == 200
    payload = response.json()
    assert payload["user_id"] == "alice"
    assert Decimal(payload["balance"]) == Decimal("1000")
    assert payload["holdings"] == []


async def test_trade_uses_quote_when_price_omitted():
    async with _client(_app()) as client:
        response = await client.post(
            "/ledger/alice/trades",
            json={"instrument_id": "ppc", "display_name": "PPC", "side": "buy", "amount": "198.50"},
        )
        trades = await client.get("/ledger/alice/trades")

    assert response.status_code == 201
    payload = response.json()
    assert Decimal(payload["trade"]["price"]) == Decimal("19.85")
    assert Decimal(payload["trade"]["shares"]) == Decimal("10")
    assert Decimal(payload["state"]["balance"]) == Decimal("801.50")
    assert payload["state"]["holdings"][0]["instrument_id"] == "ppc"
    assert [t["id"] for t in trades.json()] == [payload["trade"]["id"]]


async def test_trade_failures_map_to_error_detail():
    async with _client(_app("50")) as client:
        broke = await client.post(
            "/ledger/bob/trades",
            json={"instrument_id": "ete", "side": "buy", "amount": 100, "price": 20},
        )
        oversell = await client.post(
            "/ledger/bob/trades",
            json={"instrument_id": "ete", "side": "sell", "amount": 10, "price": 20},
        )
        invalid = await client.post(
            "/ledger/bob/trades",
            json={"instrument_id": "ete", "side": "buy", "amount": -1, "price": 20},
        )
        no_quote = await client.post(
            "/ledger/bob/trades",
            json={"instrument_id": "hto", "side": "buy", "amount": 10},
        )
        state = await client.get("/ledger/bob")

    assert broke.status_code == 400
    assert broke.json()["detail"]["code"] == "INSUFFICIENT_BALANCE"
    assert "€50" in broke.json()["detail"]["message"]
    assert oversell.status_code == 400
    assert oversell.json()["detail"]["code"] == "INSUFFICIENT_SHARES"
    assert invalid.status_code == 400
    assert invalid.json()["detail"]["code"] == "INVALID_INPUT"
    assert no_quote.status_code == 503
    assert no_quote.json()["detail"]["code"] == "QUOTE_UNAVAILABLE"
    assert Decimal(state.json()["balance"]) == Decimal("50")


async def test_portfolio_and_history():
    async with _client(_app()) as client:
        await client.post("/ledger/carol/trades", json={"instrument_id": "ete", "side": "buy", "amount": 150, "price": 15})
        await client.post("/ledger/carol/trades", json={"instrument_id": "ete", "side": "sell", "amount": 45, "price": 15})
        portfolio = await client.get("/ledger/carol/portfolio")
        history = await client.get("/ledger/carol/trades/history")

    assert portfolio.status_code == 200
    body = portfolio.json()
    # 7 shares left at a cost of 105, valued at the 15.25 quote.
    assert Decimal(body["value"]) == Decimal("106.75")
    assert Decimal(body["cost"]) == Decimal("105")
    assert Decimal(body["pnl"]) == Decimal("1.75")
    assert Decimal(body["total"]) == Decimal(body["balance"]) + Decimal(body["value"])

    groups = history.json()["groups"]
    assert [g["title"] for g in groups] == ["Today"]
    assert [t["side"] for t in groups[0]["trades"]] == ["sell", "buy"]
    summary = history.json()["summary"]
    assert summary["total_trades"] == 2
    assert summary["buy_count"] == 1
    assert summary["sell_count"] == 1
    assert Decimal(summary["total_volume"]) == Decimal("195")


async def test_deposit_and_reset():
    async with _client(_app()) as client:
        deposit = await client.post("/ledger/dave/deposit", json={"amount": "500"})
        bad = await client.post("/ledger/dave/deposit", json={"amount": "0"})
        await client.post("/ledger/dave/trades", json={"instrument_id": "ete", "side": "buy", "amount": 100, "price": 10})
        reset = await client.post("/ledger/dave/reset")
        trades = await client.get("/ledger/dave/trades")

    assert Decimal(deposit.json()["balance"]) == Decimal("1500")
    assert Decimal(deposit.json()["net_deposits"]) == Decimal("500")
    assert bad.status_code == 400
    assert Decimal(reset.json()["balance"]) == Decimal("1000")
    assert reset.json()["holdings"] == []
    assert trades.json() == []


class ThreadRecordingStateStore(InMemoryStateStore):
    def __init__(self) -> None:
        super().__init__()
        self.save_threads: list[int] = []

    def save(self, namespace, key, record):
        self.save_threads.append(threading.get_ident())
        super().save(namespace, key, record)


async def test_trade_writes_state_off_the_event_loop_thread():
    store = ThreadRecordingStateStore()
    async with _client(_app(store=store)) as client:
        response = await client.post(
            "/ledger/alice/trades",
            json={"instrument_id": "ppc", "display_name": "PPC", "side": "buy", "amount": "100", "price": "20"},
        )

    assert response.status_code == 201
    assert store.save_threads
    assert threading.get_ident() not in store.save_threads
