"""Append-only trade history and the reports derived from it."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterable, Iterator, Mapping, Optional
from zoneinfo import ZoneInfo

from .models import Trade, to_decimal, utcnow


class DateGroup(str, Enum):
    TODAY = "Today"
    YESTERDAY = "Yesterday"
    THIS_WEEK = "This Week"
    EARLIER = "Earlier"


_GROUP_ORDER = (DateGroup.TODAY, DateGroup.YESTERDAY, DateGroup.THIS_WEEK, DateGroup.EARLIER)


@dataclass(frozen=True)
class TradePnL:
    pnl: Decimal
    pnl_percent: Decimal


@dataclass
class TradeGroup:
    title: DateGroup
    trades: list[Trade] = field(default_factory=list)


@dataclass(frozen=True)
class TradeHistorySummary:
    total_trades: int
    buy_count: int
    sell_count: int
    total_volume: Decimal
    total_pnl: Decimal


class TradeLog:
    """Ordered, append-only record of executed trades.

    Trades are never mutated or removed; the only way to empty a log is to
    start a new one (``Ledger.reset`` does exactly that).
    """

    def __init__(self, trades: Iterable[Trade] = ()):
        self._trades: list[Trade] = []
        self._ids: set[str] = set()
        self._lock = threading.Lock()
        for trade in trades:
            self.append(trade)

    def append(self, trade: Trade) -> None:
        with self._lock:
            if trade.id in self._ids:
                raise ValueError(f"Trade {trade.id} already recorded")
            self._trades.append(trade)
            self._ids.add(trade.id)

    def trades(self) -> list[Trade]:
        with self._lock:
            return list(self._trades)

    def get(self, trade_id: str) -> Optional[Trade]:
        with self._lock:
            for trade in self._trades:
                if trade.id == trade_id:
                    return trade
        return None

    def for_instrument(self, instrument_id: str) -> list[Trade]:
        return [trade for trade in self.trades() if trade.instrument_id == instrument_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._trades)

    def __iter__(self) -> Iterator[Trade]:
        return iter(self.trades())

    def group_by_date(self, now: datetime | None = None, tz: str = "UTC") -> list[TradeGroup]:
        return group_by_date(self.trades(), now=now, tz=tz)

    def summary(self, quotes: Mapping[str, object]) -> TradeHistorySummary:
        return summarize(self.trades(), quotes)


def date_group(timestamp: datetime, now: datetime, tz: str = "UTC") -> DateGroup:
    """Place ``timestamp`` relative to local midnight of ``now``."""

    zone = ZoneInfo(tz)
    local_now = now.astimezone(zone)
    today_start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    yesterday_start = today_start - timedelta(days=1)
    week_start = today_start - timedelta(days=6)
    local_ts = timestamp.astimezone(zone)
    if local_ts >= today_start:
        return DateGroup.TODAY
    if local_ts >= yesterday_start:
        return DateGroup.YESTERDAY
    if local_ts >= week_start:
        return DateGroup.THIS_WEEK
    return DateGroup.EARLIER


def group_by_date(trades: Iterable[Trade], now: datetime | None = None, tz: str = "UTC") -> list[TradeGroup]:
    """Return newest-first trades bucketed Today/Yesterday/This Week/Earlier.

    Empty buckets are omitted.
    """

    now = now or utcnow()
    buckets: dict[DateGroup, TradeGroup] = {group: TradeGroup(title=group) for group in _GROUP_ORDER}
    ordered = sorted(trades, key=lambda t: (t.timestamp, t.id), reverse=True)
    for trade in ordered:
        buckets[date_group(trade.timestamp, now, tz)].trades.append(trade)
    return [buckets[group] for group in _GROUP_ORDER if buckets[group].trades]


def _quote_for(quotes: Mapping[str, object], instrument_id: str) -> Optional[Decimal]:
    raw = quotes.get(instrument_id)
    if raw is None:
        return None
    try:
        price = to_decimal(raw)
    except ValueError:
        return None
    return price if price > 0 else None


def trade_pnl(trade: Trade, quotes: Mapping[str, object]) -> Optional[TradePnL]:
    """Live P&L of one trade against the current quote.

    A buy gains when the price has risen since execution. A sell gains when
    it was executed above the current price. ``None`` without a quote.
    """

    current = _quote_for(quotes, trade.instrument_id)
    if current is None:
        return None
    if trade.is_buy:
        pnl = trade.shares * current - trade.amount
        pnl_percent = (current - trade.price) / trade.price * Decimal("100")
    else:
        pnl = trade.amount - trade.shares * current
        pnl_percent = (trade.price - current) / current * Decimal("100")
    return TradePnL(pnl=pnl, pnl_percent=pnl_percent)


def summarize(trades: Iterable[Trade], quotes: Mapping[str, object]) -> TradeHistorySummary:
    trades = list(trades)
    total_pnl = Decimal("0")
    for trade in trades:
        result = trade_pnl(trade, quotes)
        if result is not None:
            total_pnl += result.pnl
    return TradeHistorySummary(
        total_trades=len(trades),
        buy_count=sum(1 for t in trades if t.is_buy),
        sell_count=sum(1 for t in trades if not t.is_buy),
        total_volume=sum((t.amount for t in trades), Decimal("0")),
        total_pnl=total_pnl,
    )


__all__ = [
    "DateGroup",
    "TradeGroup",
    "TradeHistorySummary",
    "TradeLog",
    "TradePnL",
    "date_group",
    "group_by_date",
    "summarize",
    "trade_pnl",
]
