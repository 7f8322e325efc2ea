from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from tradedesk.models import Trade, TradeSide
from tradedesk.trade_log import DateGroup, TradeLog, date_group, group_by_date, summarize, trade_pnl

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def make_trade(trade_id: str, side: TradeSide, amount: str, price: str, when: datetime, instrument: str = "x") -> Trade:
    return Trade(
        id=trade_id,
        instrument_id=instrument,
        display_name=instrument.upper(),
        side=side,
        amount=Decimal(amount),
        shares=Decimal(amount) / Decimal(price),
        price=Decimal(price),
        timestamp=when,
    )


def test_append_rejects_duplicate_ids():
    log = TradeLog()
    trade = make_trade("t-1", TradeSide.BUY, "100", "10", NOW)
    log.append(trade)

    with pytest.raises(ValueError):
        log.append(trade)
    assert len(log) == 1
    assert log.get("t-1") == trade
    assert log.get("missing") is None


def test_trades_returns_copy_in_insertion_order():
    log = TradeLog([
        make_trade("t-1", TradeSide.BUY, "100", "10", NOW),
        make_trade("t-2", TradeSide.BUY, "50", "5", NOW, instrument="y"),
    ])
    trades = log.trades()
    trades.clear()

    assert [t.id for t in log] == ["t-1", "t-2"]
    assert [t.id for t in log.for_instrument("y")] == ["t-2"]


@pytest.mark.parametrize(
    "when, expected",
    [
        (NOW - timedelta(hours=11), DateGroup.TODAY),
        (NOW - timedelta(hours=13), DateGroup.YESTERDAY),
        (NOW - timedelta(days=6), DateGroup.THIS_WEEK),
        (NOW - timedelta(days=7), DateGroup.EARLIER),
    ],
)
def test_date_group_boundaries(when, expected):
    assert date_group(when, NOW) == expected


def test_date_group_uses_local_midnight():
    # 23:30 UTC on the 14th is already the 15th in Athens (UTC+2).
    late = datetime(2024, 3, 14, 23, 30, tzinfo=timezone.utc)
    assert date_group(late, NOW, tz="UTC") == DateGroup.YESTERDAY
    assert date_group(late, NOW, tz="Europe/Athens") == DateGroup.TODAY


def test_group_by_date_orders_newest_first_and_skips_empty_groups():
    trades = [
        make_trade("t-1", TradeSide.BUY, "100", "10", NOW - timedelta(days=30)),
        make_trade("t-2", TradeSide.BUY, "100", "10", NOW - timedelta(hours=1)),
        make_trade("t-3", TradeSide.SELL, "50", "10", NOW - timedelta(minutes=5)),
    ]
    groups = group_by_date(trades, now=NOW)

    assert [g.title for g in groups] == [DateGroup.TODAY, DateGroup.EARLIER]
    assert [t.id for t in groups[0].trades] == ["t-3", "t-2"]
    assert [t.id for t in groups[1].trades] == ["t-1"]


def test_buy_pnl_gains_when_price_rises():
    trade = make_trade("t-1", TradeSide.BUY, "100", "10", NOW)
    result = trade_pnl(trade, {"x": Decimal("12")})

    assert result.pnl == Decimal("20")
    assert result.pnl_percent == Decimal("20")


def test_sell_pnl_gains_when_price_falls():
    trade = make_trade("t-1", TradeSide.SELL, "100", "10", NOW)
    result = trade_pnl(trade, {"x": Decimal("8")})

    assert result.pnl == Decimal("20")
    assert result.pnl_percent == Decimal("25")


def test_pnl_is_none_without_quote():
    trade = make_trade("t-1", TradeSide.BUY, "100", "10", NOW)
    assert trade_pnl(trade, {}) is None
    assert trade_pnl(trade, {"x": "0"}) is None


def test_summary_counts_and_volume():
    trades = [
        make_trade("t-1", TradeSide.BUY, "100", "10", NOW),
        make_trade("t-2", TradeSide.BUY, "50", "5", NOW, instrument="y"),
        make_trade("t-3", TradeSide.SELL, "40", "10", NOW),
    ]
    summary = summarize(trades, {"x": Decimal("11")})

    assert summary.total_trades == 3
    assert summary.buy_count == 2
    assert summary.sell_count == 1
    assert summary.total_volume == Decimal("190")
    # t-1: +10, t-2: no quote, t-3: 40 - 4 * 11 = -4
    assert summary.total_pnl == Decimal("6")
