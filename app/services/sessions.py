"""Service container wiring ledgers, alerts, quotes and notifications together."""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from app.config import AppSettings
from tradedesk.alerts import AlertStore
from tradedesk.evaluator import AlertEvaluator
from tradedesk.ledger import Ledger
from tradedesk.notifications import LoggingNotifier, NotificationHistory, Notifier
from tradedesk.persistence import InMemoryStateStore, SqlStateStore, StateStore
from tradedesk.quotes import InMemoryQuoteSource, LastKnownQuoteSource, QuoteSource

logger = logging.getLogger(__name__)


class TradingServices:
    """Everything the HTTP layer and the alert monitor share.

    One instance is created per application and hung off ``app.state``;
    ledgers and notification histories are created lazily per user/device
    and restored from the state store on first access.
    """

    def __init__(
        self,
        *,
        store: StateStore,
        quotes: QuoteSource,
        alerts: AlertStore,
        evaluator: AlertEvaluator,
        notifier: Notifier,
        initial_balance: Decimal = Decimal("100000"),
        history_limit: int = 100,
        timezone: str = "UTC",
        currency_symbol: str = "€",
    ):
        self.store = store
        self.quotes = quotes
        self.alerts = alerts
        self.evaluator = evaluator
        self.notifier = notifier
        self.initial_balance = initial_balance
        self.history_limit = history_limit
        self.timezone = timezone
        self.currency_symbol = currency_symbol
        self._ledgers: dict[str, Ledger] = {}
        self._histories: dict[str, NotificationHistory] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        store: StateStore | None = None,
        quotes: QuoteSource | None = None,
        notifier: Notifier | None = None,
    ) -> "TradingServices":
        if store is None:
            if settings.state_database_url:
                store = SqlStateStore(settings.state_database_url)
            else:
                store = InMemoryStateStore()
        if quotes is None:
            quotes = LastKnownQuoteSource(InMemoryQuoteSource(settings.demo_quotes))
        alerts = AlertStore.restore(store, max_alerts_per_device=settings.max_alerts_per_device)
        evaluator = AlertEvaluator(
            alerts,
            cooldown=timedelta(minutes=settings.alert_cooldown_minutes),
            timezone=settings.timezone,
        )
        logger.info("Trading services ready (store=%s)", type(store).__name__)
        return cls(
            store=store,
            quotes=quotes,
            alerts=alerts,
            evaluator=evaluator,
            notifier=notifier or LoggingNotifier(),
            initial_balance=settings.initial_balance,
            history_limit=settings.notification_history_limit,
            timezone=settings.timezone,
            currency_symbol=settings.currency_symbol,
        )

    def ledger(self, user_id: str) -> Ledger:
        with self._lock:
            ledger = self._ledgers.get(user_id)
            if ledger is None:
                ledger = Ledger.restore(user_id, self.store, initial_balance=self.initial_balance)
                self._ledgers[user_id] = ledger
            return ledger

    def history(self, device_id: str) -> NotificationHistory:
        with self._lock:
            history = self._histories.get(device_id)
            if history is None:
                history = NotificationHistory(self.history_limit, store=self.store, device_id=device_id)
                self._histories[device_id] = history
            return history

    def drop_history(self, device_id: str) -> None:
        with self._lock:
            history = self._histories.pop(device_id, None)
        if history is None:
            history = NotificationHistory(self.history_limit, store=self.store, device_id=device_id)
        history.clear()

    def quote(self, instrument_id: str) -> Optional[Decimal]:
        return self.quotes.get_price(instrument_id)

    def close(self) -> None:
        if isinstance(self.store, SqlStateStore):
            self.store.dispose()


__all__ = ["TradingServices"]
