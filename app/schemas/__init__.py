"""Pydantic schema exports."""

from .alerts import (
    AlertCreateRequest,
    AlertRuleSchema,
    AlertStatsSchema,
    CheckResultSchema,
    DeviceRegisterRequest,
    DeviceSchema,
    NotificationHistoryItemSchema,
    NotificationHistoryResponse,
    PreferencesSchema,
    PreferencesUpdateRequest,
)
from .ledger import (
    DepositRequest,
    ErrorDetail,
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

__all__ = [
    "AlertCreateRequest",
    "AlertRuleSchema",
    "AlertStatsSchema",
    "CheckResultSchema",
    "DepositRequest",
    "DeviceRegisterRequest",
    "DeviceSchema",
    "ErrorDetail",
    "HoldingSchema",
    "LedgerStateSchema",
    "NotificationHistoryItemSchema",
    "NotificationHistoryResponse",
    "PortfolioSchema",
    "PreferencesSchema",
    "PreferencesUpdateRequest",
    "TradeGroupSchema",
    "TradeHistoryResponse",
    "TradeHistorySummarySchema",
    "TradeRequest",
    "TradeResponse",
    "TradeSchema",
    "TradeWithPnLSchema",
]
