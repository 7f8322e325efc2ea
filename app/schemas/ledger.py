"""Pydantic schemas for paper-trading ledgers and trade history."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from tradedesk.models import Holding, LedgerState, Trade, TradeSide
from tradedesk.trade_log import TradeHistorySummary, TradePnL


class TradeRequest(BaseModel):
    instrument_id: str = Field(..., min_length=1, examples=["opap"])
    display_name: str | None = Field(default=None, examples=["OPAP S.A."])
    side: TradeSide
    amount: Decimal = Field(..., description="Euros to spend (buy) or receive (sell)", examples=["1000"])
    price: Decimal | None = Field(
        default=None,
        description="Execution price; the current quote is used when omitted.",
    )


class DepositRequest(BaseModel):
    amount: Decimal = Field(..., examples=["5000"])


class HoldingSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    instrument_id: str
    display_name: str
    shares: Decimal
    total_cost: Decimal
    avg_cost: Decimal | None = None

    @classmethod
    def from_holding(cls, holding: Holding) -> "HoldingSchema":
        return cls(
            instrument_id=holding.instrument_id,
            display_name=holding.display_name,
            shares=holding.shares,
            total_cost=holding.total_cost,
            avg_cost=holding.avg_cost,
        )


class TradeSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    instrument_id: str
    display_name: str
    side: TradeSide
    amount: Decimal
    shares: Decimal
    price: Decimal
    timestamp: datetime


class LedgerStateSchema(BaseModel):
    user_id: str
    balance: Decimal
    initial_balance: Decimal
    net_deposits: Decimal
    realized_pnl: Decimal
    holdings: list[HoldingSchema]

    @classmethod
    def from_state(cls, user_id: str, state: LedgerState) -> "LedgerStateSchema":
        return cls(
            user_id=user_id,
            balance=state.balance,
            initial_balance=state.initial_balance,
            net_deposits=state.net_deposits,
            realized_pnl=state.realized_pnl,
            holdings=[
                HoldingSchema.from_holding(h) for h in sorted(state.holdings.values(), key=lambda h: h.instrument_id)
            ],
        )


class TradeResponse(BaseModel):
    trade: TradeSchema
    state: LedgerStateSchema


class ErrorDetail(BaseModel):
    code: str
    message: str


class PortfolioSchema(BaseModel):
    user_id: str
    balance: Decimal
    value: Decimal
    cost: Decimal
    pnl: Decimal
    pnl_percent: Decimal
    total: Decimal = Field(..., description="Cash balance plus market value of holdings")
    holdings: list[HoldingSchema]


class TradeWithPnLSchema(TradeSchema):
    pnl: Decimal | None = None
    pnl_percent: Decimal | None = None

    @classmethod
    def from_trade(cls, trade: Trade, pnl: TradePnL | None) -> "TradeWithPnLSchema":
        return cls(
            id=trade.id,
            instrument_id=trade.instrument_id,
            display_name=trade.display_name,
            side=trade.side,
            amount=trade.amount,
            shares=trade.shares,
            price=trade.price,
            timestamp=trade.timestamp,
            pnl=pnl.pnl if pnl is not None else None,
            pnl_percent=pnl.pnl_percent if pnl is not None else None,
        )


class TradeGroupSchema(BaseModel):
    title: str
    trades: list[TradeWithPnLSchema]


class TradeHistorySummarySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_trades: int
    buy_count: int
    sell_count: int
    total_volume: Decimal
    total_pnl: Decimal

    @classmethod
    def from_summary(cls, summary: TradeHistorySummary) -> "TradeHistorySummarySchema":
        return cls.model_validate(summary)


class TradeHistoryResponse(BaseModel):
    groups: list[TradeGroupSchema]
    summary: TradeHistorySummarySchema


__all__ = [
    "DepositRequest",
    "ErrorDetail",
    "HoldingSchema",
    "LedgerStateSchema",
    "PortfolioSchema",
    "TradeGroupSchema",
    "TradeHistoryResponse",
    "TradeHistorySummarySchema",
    "TradeRequest",
    "TradeResponse",
    "TradeSchema",
    "TradeWithPnLSchema",
]
