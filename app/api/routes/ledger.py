"""Paper-trading ledger endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.api.dependencies.services import get_services, http_error, raise_for_error
from app.core.telemetry import get_tracer
from app.schemas import (
    DepositRequest,
    HoldingSchema,
    LedgerStateSchema,
    PortfolioSchema,
    TradeGroupSchema,
    TradeHistoryResponse,
    TradeHistorySummarySchema,
    TradeRequest,
    TradeResponse,
    TradeSchema,
    TradeWithPnLSchema,
)
from app.services.sessions import TradingServices
from tradedesk.models import ErrorCode
from tradedesk.trade_log import trade_pnl

router = APIRouter()


def _quotes_for(services: TradingServices, instrument_ids) -> dict:
    ids = sorted(set(instrument_ids))
    return services.quotes.get_prices(ids) if ids else {}


@router.get("/{user_id}", response_model=LedgerStateSchema)
def get_ledger(user_id: str, services: TradingServices = Depends(get_services)) -> LedgerStateSchema:
    return LedgerStateSchema.from_state(user_id, services.ledger(user_id).snapshot())


@router.post("/{user_id}/trades", response_model=TradeResponse, status_code=status.HTTP_201_CREATED)
def post_trade(
    user_id: str,
    payload: TradeRequest,
    services: TradingServices = Depends(get_services),
) -> TradeResponse:
    with get_tracer().start_as_current_span("ledger.execute_trade") as span:
        span.set_attribute("ledger.user_id", user_id)
        span.set_attribute("ledger.instrument_id", payload.instrument_id)
        span.set_attribute("ledger.side", payload.side.value)
        price = payload.price
        if price is None:
            price = services.quote(payload.instrument_id)
            if price is None:
                raise http_error(ErrorCode.QUOTE_UNAVAILABLE, f"No quote available for {payload.instrument_id}")
        result = services.ledger(user_id).execute_trade(
            payload.instrument_id,
            payload.display_name,
            payload.side,
            payload.amount,
            price,
        )
        span.set_attribute("ledger.success", result.success)
        if not result.success:
            raise_for_error(result.error)
    return TradeResponse(
        trade=TradeSchema.model_validate(result.trade),
        state=LedgerStateSchema.from_state(user_id, result.state),
    )


@router.get("/{user_id}/trades", response_model=list[TradeSchema])
def list_trades(user_id: str, services: TradingServices = Depends(get_services)) -> list[TradeSchema]:
    return [TradeSchema.model_validate(trade) for trade in services.ledger(user_id).trade_log.trades()]


@router.get("/{user_id}/trades/history", response_model=TradeHistoryResponse)
def trade_history(user_id: str, services: TradingServices = Depends(get_services)) -> TradeHistoryResponse:
    log = services.ledger(user_id).trade_log
    trades = log.trades()
    quotes = _quotes_for(services, (t.instrument_id for t in trades))
    groups = [
        TradeGroupSchema(
            title=group.title.value,
            trades=[TradeWithPnLSchema.from_trade(t, trade_pnl(t, quotes)) for t in group.trades],
        )
        for group in log.group_by_date(tz=services.timezone)
    ]
    return TradeHistoryResponse(
        groups=groups,
        summary=TradeHistorySummarySchema.from_summary(log.summary(quotes)),
    )


@router.get("/{user_id}/portfolio", response_model=PortfolioSchema)
def get_portfolio(user_id: str, services: TradingServices = Depends(get_services)) -> PortfolioSchema:
    ledger = services.ledger(user_id)
    holdings = ledger.holdings()
    quotes = _quotes_for(services, (h.instrument_id for h in holdings))
    value = ledger.portfolio_value(quotes)
    pnl = ledger.portfolio_pnl(quotes)
    balance = ledger.balance
    return PortfolioSchema(
        user_id=user_id,
        balance=balance,
        value=value,
        cost=ledger.portfolio_cost(),
        pnl=pnl.pnl,
        pnl_percent=pnl.pnl_percent,
        total=balance + value,
        holdings=[HoldingSchema.from_holding(h) for h in holdings],
    )


@router.post("/{user_id}/deposit", response_model=LedgerStateSchema)
def post_deposit(
    user_id: str,
    payload: DepositRequest,
    services: TradingServices = Depends(get_services),
) -> LedgerStateSchema:
    result = services.ledger(user_id).deposit(payload.amount)
    if not result.success:
        raise_for_error(result.error)
    return LedgerStateSchema.from_state(user_id, result.state)


@router.post("/{user_id}/reset", response_model=LedgerStateSchema)
def post_reset(user_id: str, services: TradingServices = Depends(get_services)) -> LedgerStateSchema:
    state = services.ledger(user_id).reset()
    return LedgerStateSchema.from_state(user_id, state)
