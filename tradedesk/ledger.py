"""Paper-trading ledger: cash balance, holdings and trade execution.

Each ``Ledger`` belongs to one user's paper account. Every mutating call
validates, builds the next state, writes it through to the state store and
only then swaps it in, all while holding the ledger lock. A failed call, or a
store that raises, therefore leaves balance, holdings and the trade log
exactly as they were.

Cost basis is kept as a running total per holding. Buying adds the amount
paid; selling removes a proportional slice, so the average cost is always
derived (``total_cost / shares``) and never stored.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Any, Callable, Mapping, Optional

from .models import (
    CURRENCY_SYMBOL,
    DepositResult,
    ErrorCode,
    HOLDING_EPSILON,
    Holding,
    LedgerState,
    OperationError,
    PortfolioPnL,
    SHARE_QUANTUM,
    Trade,
    TradeResult,
    TradeSide,
    to_decimal,
    utcnow,
)
from .persistence import LEDGER_NAMESPACE, StateStore
from .trade_log import TradeLog

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_BALANCE = Decimal("100000")

Clock = Callable[[], datetime]


def _quantize_shares(value: Decimal) -> Decimal:
    return value.quantize(SHARE_QUANTUM, rounding=ROUND_HALF_EVEN)


def _money(value: Decimal) -> str:
    return f"{CURRENCY_SYMBOL}{value:.2f}"


class Ledger:
    """One user's simulated cash and holdings."""

    def __init__(
        self,
        owner_id: str,
        *,
        initial_balance: Decimal | str | float = DEFAULT_INITIAL_BALANCE,
        store: StateStore | None = None,
        clock: Clock = utcnow,
        state: LedgerState | None = None,
        trade_log: TradeLog | None = None,
    ):
        opening = to_decimal(initial_balance)
        if opening < 0:
            raise ValueError("initial_balance must be >= 0")
        self.owner_id = owner_id
        self._store = store
        self._clock = clock
        self._lock = threading.RLock()
        self._state = state or LedgerState.opening(opening)
        self._trade_log = trade_log or TradeLog()
        self._sequence = len(self._trade_log)
        # Quotes seen by valuation calls; newer than execution prices but not persisted.
        self._seen_prices: dict[str, Decimal] = {}

    @classmethod
    def restore(
        cls,
        owner_id: str,
        store: StateStore,
        *,
        initial_balance: Decimal | str | float = DEFAULT_INITIAL_BALANCE,
        clock: Clock = utcnow,
    ) -> "Ledger":
        """Rebuild a ledger from its persisted record, or open a fresh one."""

        record = store.load(LEDGER_NAMESPACE, owner_id)
        if record is None:
            return cls(owner_id, initial_balance=initial_balance, store=store, clock=clock)
        state = LedgerState.from_record(record["state"])
        trades = TradeLog(Trade.from_record(item) for item in record.get("trades", []))
        logger.info("Restored ledger %s with %d trades", owner_id, len(trades))
        return cls(
            owner_id,
            initial_balance=state.initial_balance,
            store=store,
            clock=clock,
            state=state,
            trade_log=trades,
        )

    # ------------------------------------------------------------------ reads

    @property
    def balance(self) -> Decimal:
        with self._lock:
            return self._state.balance

    @property
    def trade_log(self) -> TradeLog:
        return self._trade_log

    def snapshot(self) -> LedgerState:
        with self._lock:
            return self._state.copy()

    def holding(self, instrument_id: str) -> Optional[Holding]:
        with self._lock:
            return self._state.holdings.get(instrument_id)

    def holdings(self) -> list[Holding]:
        with self._lock:
            return sorted(self._state.holdings.values(), key=lambda h: h.instrument_id)

    def can_buy(self, amount: Decimal | str | float) -> bool:
        try:
            value = to_decimal(amount)
        except ValueError:
            return False
        with self._lock:
            return value > 0 and value <= self._state.balance

    def can_sell(self, instrument_id: str, shares: Decimal | str | float) -> bool:
        try:
            value = to_decimal(shares)
        except ValueError:
            return False
        with self._lock:
            holding = self._state.holdings.get(instrument_id)
            return holding is not None and holding.shares >= value

    # ------------------------------------------------------------- valuation

    def resolve_price(self, instrument_id: str, quotes: Mapping[str, Any]) -> Optional[Decimal]:
        """Price used to value ``instrument_id``.

        Order of preference: the quote passed in, the last quote seen by an
        earlier valuation, the last execution price, the holding's average
        cost. A missing quote never values a holding at zero.
        """

        raw = quotes.get(instrument_id)
        if raw is not None:
            try:
                price = to_decimal(raw)
            except ValueError:
                price = None
            if price is not None and price > 0:
                with self._lock:
                    self._seen_prices[instrument_id] = price
                return price
        with self._lock:
            if instrument_id in self._seen_prices:
                return self._seen_prices[instrument_id]
            if instrument_id in self._state.last_prices:
                return self._state.last_prices[instrument_id]
            holding = self._state.holdings.get(instrument_id)
        if holding is not None and holding.avg_cost is not None:
            logger.warning("No price known for %s; valuing at average cost", instrument_id)
            return holding.avg_cost
        return None

    def portfolio_value(self, quotes: Mapping[str, Any]) -> Decimal:
        total = Decimal("0")
        for holding in self.holdings():
            price = self.resolve_price(holding.instrument_id, quotes)
            if price is not None:
                total += holding.shares * price
        return total

    def portfolio_cost(self) -> Decimal:
        with self._lock:
            return self._state.total_cost

    def portfolio_pnl(self, quotes: Mapping[str, Any]) -> PortfolioPnL:
        value = self.portfolio_value(quotes)
        cost = self.portfolio_cost()
        pnl = value - cost
        pnl_percent = pnl / cost * Decimal("100") if cost > 0 else Decimal("0")
        return PortfolioPnL(pnl=pnl, pnl_percent=pnl_percent)

    # ------------------------------------------------------------- mutations

    def execute_trade(
        self,
        instrument_id: str,
        display_name: str | None,
        side: TradeSide | str,
        amount: Decimal | str | float,
        price: Decimal | str | float,
    ) -> TradeResult:
        """Execute a buy or sell of ``amount`` euros at ``price``.

        Validation failures come back as ``TradeResult(success=False)``; they
        are never raised.
        """

        try:
            trade_side = TradeSide(side)
            amount_value = to_decimal(amount)
            price_value = to_decimal(price)
        except ValueError as exc:
            return TradeResult.failed(ErrorCode.INVALID_INPUT, str(exc))
        if not instrument_id:
            return TradeResult.failed(ErrorCode.INVALID_INPUT, "Instrument is required")
        if amount_value <= 0:
            return TradeResult.failed(ErrorCode.INVALID_INPUT, "Amount must be greater than zero")
        if price_value <= 0:
            return TradeResult.failed(ErrorCode.INVALID_INPUT, "Price must be greater than zero")

        shares = _quantize_shares(amount_value / price_value)
        if shares <= 0:
            return TradeResult.failed(ErrorCode.INVALID_INPUT, "Amount is too small to buy any shares")

        with self._lock:
            state = self._state
            if trade_side == TradeSide.BUY:
                outcome = self._apply_buy(state, instrument_id, display_name, amount_value, shares)
            else:
                outcome = self._apply_sell(state, instrument_id, amount_value, shares)
            if isinstance(outcome, OperationError):
                logger.info("Trade rejected for %s: %s", self.owner_id, outcome.message)
                return TradeResult(success=False, error=outcome)

            now = self._clock()
            trade = Trade(
                id=self._next_trade_id(now),
                instrument_id=instrument_id,
                display_name=display_name or instrument_id,
                side=trade_side,
                amount=amount_value,
                shares=shares,
                price=price_value,
                timestamp=now,
            )
            next_state = replace(outcome, last_prices={**outcome.last_prices, instrument_id: price_value})
            self._commit(next_state, trade)
            logger.info(
                "Executed %s %s %s shares @ %s for %s",
                trade.side.value,
                instrument_id,
                shares,
                price_value,
                self.owner_id,
            )
            return TradeResult(success=True, trade=trade, state=next_state.copy())

    def _apply_buy(
        self,
        state: LedgerState,
        instrument_id: str,
        display_name: str | None,
        amount: Decimal,
        shares: Decimal,
    ) -> LedgerState | OperationError:
        if amount > state.balance:
            return OperationError(
                ErrorCode.INSUFFICIENT_BALANCE,
                f"Insufficient balance: {_money(state.balance)} available, {_money(amount)} requested",
            )
        holdings = dict(state.holdings)
        existing = holdings.get(instrument_id)
        if existing is not None:
            holdings[instrument_id] = replace(
                existing,
                shares=existing.shares + shares,
                total_cost=existing.total_cost + amount,
            )
        else:
            holdings[instrument_id] = Holding(
                instrument_id=instrument_id,
                display_name=display_name or instrument_id,
                shares=shares,
                total_cost=amount,
            )
        return replace(state, balance=state.balance - amount, holdings=holdings)

    def _apply_sell(
        self,
        state: LedgerState,
        instrument_id: str,
        amount: Decimal,
        shares: Decimal,
    ) -> LedgerState | OperationError:
        existing = state.holdings.get(instrument_id)
        owned = existing.shares if existing is not None else Decimal("0")
        if existing is None or existing.shares < shares:
            return OperationError(
                ErrorCode.INSUFFICIENT_SHARES,
                f"Insufficient shares: {owned.normalize():f} owned, {shares.normalize():f} requested",
            )
        holdings = dict(state.holdings)
        cost_removed = existing.total_cost / existing.shares * shares
        new_shares = existing.shares - shares
        new_total_cost = max(Decimal("0"), existing.total_cost - cost_removed)
        if new_shares < HOLDING_EPSILON:
            # Dust is dropped together with whatever cost basis is left on it.
            cost_removed = existing.total_cost
            del holdings[instrument_id]
        else:
            holdings[instrument_id] = replace(existing, shares=new_shares, total_cost=new_total_cost)
        return replace(
            state,
            balance=state.balance + amount,
            holdings=holdings,
            realized_pnl=state.realized_pnl + (amount - cost_removed),
        )

    def deposit(self, amount: Decimal | str | float) -> DepositResult:
        """Add paper cash to the account."""

        try:
            value = to_decimal(amount)
        except ValueError as exc:
            return DepositResult(success=False, error=OperationError(ErrorCode.INVALID_INPUT, str(exc)))
        if value <= 0:
            return DepositResult(
                success=False,
                error=OperationError(ErrorCode.INVALID_INPUT, "Deposit must be greater than zero"),
            )
        with self._lock:
            state = self._state
            next_state = replace(
                state,
                balance=state.balance + value,
                net_deposits=state.net_deposits + value,
            )
            self._commit(next_state)
            logger.info("Deposited %s for %s", _money(value), self.owner_id)
            return DepositResult(success=True, state=next_state.copy())

    def reset(self) -> LedgerState:
        """Start a new paper session: opening balance, no holdings, no trades."""

        with self._lock:
            fresh = LedgerState.opening(self._state.initial_balance)
            self._write(fresh, [])
            self._state = fresh
            self._trade_log = TradeLog()
            self._sequence = 0
            self._seen_prices.clear()
            logger.info("Reset ledger %s", self.owner_id)
            return fresh.copy()

    # -------------------------------------------------------------- plumbing

    def _next_trade_id(self, now: datetime) -> str:
        millis = int(now.timestamp() * 1000)
        return f"trade-{millis:013d}-{self._sequence + 1:06d}"

    def _commit(self, next_state: LedgerState, trade: Trade | None = None) -> None:
        trades = self._trade_log.trades()
        if trade is not None:
            trades.append(trade)
        self._write(next_state, trades)
        self._state = next_state
        if trade is not None:
            self._trade_log.append(trade)
            self._sequence += 1

    def _write(self, state: LedgerState, trades: list[Trade]) -> None:
        if self._store is None:
            return
        self._store.save(LEDGER_NAMESPACE, self.owner_id, self._record(state, trades))

    def _record(self, state: LedgerState, trades: list[Trade]) -> dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "state": state.to_record(),
            "trades": [trade.to_record() for trade in trades],
        }

    def to_record(self) -> dict[str, Any]:
        with self._lock:
            return self._record(self._state, self._trade_log.trades())


__all__ = ["DEFAULT_INITIAL_BALANCE", "Ledger"]
