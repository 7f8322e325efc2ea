"""Paper-trading ledger and price-alert engine."""

from .alerts import AlertStore, AlertStoreStats
from .evaluator import AlertEvaluator, EvaluationOutcome
from .ledger import Ledger
from .models import (
    AlertResult,
    AlertRule,
    AlertType,
    DeviceRegistration,
    ErrorCode,
    FiredAlert,
    Holding,
    LedgerState,
    NotificationPreferences,
    OperationError,
    Platform,
    PortfolioPnL,
    Trade,
    TradeResult,
    TradeSide,
)
from .notifications import (
    LoggingNotifier,
    NotificationHistory,
    NotificationPayload,
    Notifier,
    format_alert_message,
)
from .persistence import InMemoryStateStore, SqlStateStore, StateStore
from .quotes import InMemoryQuoteSource, LastKnownQuoteSource, QuoteSource
from .trade_log import TradeLog

__all__ = [
    "AlertEvaluator",
    "AlertResult",
    "AlertRule",
    "AlertStore",
    "AlertStoreStats",
    "AlertType",
    "DeviceRegistration",
    "ErrorCode",
    "EvaluationOutcome",
    "FiredAlert",
    "Holding",
    "InMemoryQuoteSource",
    "InMemoryStateStore",
    "LastKnownQuoteSource",
    "Ledger",
    "LedgerState",
    "LoggingNotifier",
    "NotificationHistory",
    "NotificationPayload",
    "NotificationPreferences",
    "Notifier",
    "OperationError",
    "Platform",
    "PortfolioPnL",
    "QuoteSource",
    "SqlStateStore",
    "StateStore",
    "Trade",
    "TradeLog",
    "TradeResult",
    "TradeSide",
    "format_alert_message",
]
