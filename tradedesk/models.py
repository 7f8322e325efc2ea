"""Domain models shared by the ledger, the alert store and the evaluator."""
from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, getcontext
from enum import Enum
from typing import Any, Dict, List, Optional

getcontext().prec = 28

CURRENCY_SYMBOL = "€"

# Holdings whose share count drops below this are removed from the ledger.
HOLDING_EPSILON = Decimal("0.0001")
SHARE_QUANTUM = Decimal("0.00000001")


class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class AlertType(str, Enum):
    ABOVE = "above"
    BELOW = "below"
    PERCENT_CHANGE = "percent_change"


class Platform(str, Enum):
    IOS = "ios"
    ANDROID = "android"
    WEB = "web"


class ErrorCode(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INSUFFICIENT_SHARES = "INSUFFICIENT_SHARES"
    DEVICE_NOT_REGISTERED = "DEVICE_NOT_REGISTERED"
    MAX_ALERTS_REACHED = "MAX_ALERTS_REACHED"
    RULE_NOT_FOUND = "RULE_NOT_FOUND"
    QUOTE_UNAVAILABLE = "QUOTE_UNAVAILABLE"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_decimal(value: Any) -> Decimal:
    """Coerce ``value`` to a finite Decimal, raising ``ValueError`` otherwise.

    Floats go through ``str`` so that ``0.1`` becomes ``Decimal("0.1")`` rather
    than its binary expansion.
    """

    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    try:
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, float):
            result = Decimal(str(value))
        else:
            result = Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def _dt_out(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt_in(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Holding:
    """An open position in one instrument."""

    instrument_id: str
    display_name: str
    shares: Decimal
    total_cost: Decimal

    @property
    def avg_cost(self) -> Optional[Decimal]:
        if self.shares == 0:
            return None
        return self.total_cost / self.shares

    def to_record(self) -> dict[str, Any]:
        return {
            "instrument_id": self.instrument_id,
            "display_name": self.display_name,
            "shares": str(self.shares),
            "total_cost": str(self.total_cost),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Holding":
        return cls(
            instrument_id=record["instrument_id"],
            display_name=record.get("display_name") or record["instrument_id"],
            shares=Decimal(record["shares"]),
            total_cost=Decimal(record["total_cost"]),
        )


@dataclass(frozen=True)
class Trade:
    """Immutable record of one executed order."""

    id: str
    instrument_id: str
    display_name: str
    side: TradeSide
    amount: Decimal
    shares: Decimal
    price: Decimal
    timestamp: datetime

    @property
    def is_buy(self) -> bool:
        return self.side == TradeSide.BUY

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "instrument_id": self.instrument_id,
            "display_name": self.display_name,
            "side": self.side.value,
            "amount": str(self.amount),
            "shares": str(self.shares),
            "price": str(self.price),
            "timestamp": _dt_out(self.timestamp),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Trade":
        return cls(
            id=record["id"],
            instrument_id=record["instrument_id"],
            display_name=record.get("display_name") or record["instrument_id"],
            side=TradeSide(record["side"]),
            amount=Decimal(record["amount"]),
            shares=Decimal(record["shares"]),
            price=Decimal(record["price"]),
            timestamp=_dt_in(record["timestamp"]),
        )


@dataclass(frozen=True)
class LedgerState:
    """Balance, holdings and the running totals needed to audit them.

    ``balance + sum(total_cost) == initial_balance + net_deposits + realized_pnl``
    holds after every operation.
    """

    balance: Decimal
    initial_balance: Decimal
    holdings: Dict[str, Holding] = field(default_factory=dict)
    net_deposits: Decimal = Decimal("0")
    realized_pnl: Decimal = Decimal("0")
    last_prices: Dict[str, Decimal] = field(default_factory=dict)

    @classmethod
    def opening(cls, initial_balance: Decimal) -> "LedgerState":
        return cls(balance=initial_balance, initial_balance=initial_balance)

    @property
    def total_cost(self) -> Decimal:
        return sum((h.total_cost for h in self.holdings.values()), Decimal("0"))

    def copy(self) -> "LedgerState":
        return replace(self, holdings=dict(self.holdings), last_prices=dict(self.last_prices))

    def to_record(self) -> dict[str, Any]:
        return {
            "balance": str(self.balance),
            "initial_balance": str(self.initial_balance),
            "net_deposits": str(self.net_deposits),
            "realized_pnl": str(self.realized_pnl),
            "holdings": {key: h.to_record() for key, h in self.holdings.items()},
            "last_prices": {key: str(price) for key, price in self.last_prices.items()},
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "LedgerState":
        return cls(
            balance=Decimal(record["balance"]),
            initial_balance=Decimal(record["initial_balance"]),
            net_deposits=Decimal(record.get("net_deposits", "0")),
            realized_pnl=Decimal(record.get("realized_pnl", "0")),
            holdings={
                key: Holding.from_record(value) for key, value in record.get("holdings", {}).items()
            },
            last_prices={key: Decimal(value) for key, value in record.get("last_prices", {}).items()},
        )


@dataclass(frozen=True)
class OperationError:
    """A recoverable, user-facing failure."""

    code: ErrorCode
    message: str


@dataclass(frozen=True)
class TradeResult:
    success: bool
    trade: Optional[Trade] = None
    state: Optional[LedgerState] = None
    error: Optional[OperationError] = None

    @classmethod
    def failed(cls, code: ErrorCode, message: str) -> "TradeResult":
        return cls(success=False, error=OperationError(code, message))


@dataclass(frozen=True)
class DepositResult:
    success: bool
    state: Optional[LedgerState] = None
    error: Optional[OperationError] = None


@dataclass(frozen=True)
class PortfolioPnL:
    pnl: Decimal
    pnl_percent: Decimal


@dataclass
class AlertRule:
    """A user-defined price or percent condition on one instrument."""

    id: str
    instrument_id: str
    instrument_name: str
    type: AlertType
    threshold: Decimal
    enabled: bool = True
    last_triggered: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "instrument_id": self.instrument_id,
            "instrument_name": self.instrument_name,
            "type": self.type.value,
            "threshold": str(self.threshold),
            "enabled": self.enabled,
            "last_triggered": _dt_out(self.last_triggered),
            "created_at": _dt_out(self.created_at),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "AlertRule":
        return cls(
            id=record["id"],
            instrument_id=record["instrument_id"],
            instrument_name=record.get("instrument_name") or record["instrument_id"],
            type=AlertType(record["type"]),
            threshold=Decimal(record["threshold"]),
            enabled=bool(record.get("enabled", True)),
            last_triggered=_dt_in(record.get("last_triggered")),
            created_at=_dt_in(record.get("created_at")) or utcnow(),
        )


@dataclass
class NotificationPreferences:
    """Per-device notification toggles and quiet-hours window."""

    price_alerts: bool = True
    daily_challenge: bool = True
    social_activity: bool = False
    market_news: bool = True
    percent_threshold: Decimal = Decimal("5")
    quiet_hours_start: Optional[int] = None
    quiet_hours_end: Optional[int] = None

    CATEGORIES = ("price_alerts", "daily_challenge", "social_activity", "market_news")

    def in_quiet_hours(self, hour: int) -> bool:
        """Return whether ``hour`` (local, 0-23) falls inside the quiet window."""

        if self.quiet_hours_start is None or self.quiet_hours_end is None:
            return False
        start, end = self.quiet_hours_start, self.quiet_hours_end
        # Overnight window such as 22 -> 7.
        if start > end:
            return hour >= start or hour < end
        return start <= hour < end

    def to_record(self) -> dict[str, Any]:
        return {
            "price_alerts": self.price_alerts,
            "daily_challenge": self.daily_challenge,
            "social_activity": self.social_activity,
            "market_news": self.market_news,
            "percent_threshold": str(self.percent_threshold),
            "quiet_hours_start": self.quiet_hours_start,
            "quiet_hours_end": self.quiet_hours_end,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "NotificationPreferences":
        defaults = cls()
        return cls(
            price_alerts=bool(record.get("price_alerts", defaults.price_alerts)),
            daily_challenge=bool(record.get("daily_challenge", defaults.daily_challenge)),
            social_activity=bool(record.get("social_activity", defaults.social_activity)),
            market_news=bool(record.get("market_news", defaults.market_news)),
            percent_threshold=Decimal(str(record.get("percent_threshold", defaults.percent_threshold))),
            quiet_hours_start=record.get("quiet_hours_start"),
            quiet_hours_end=record.get("quiet_hours_end"),
        )


@dataclass
class DeviceRegistration:
    """A registered client device with its alert rules and preferences."""

    device_id: str
    push_token: str
    platform: Platform
    alerts: List[AlertRule] = field(default_factory=list)
    preferences: NotificationPreferences = field(default_factory=NotificationPreferences)
    last_seen: datetime = field(default_factory=utcnow)

    def copy(self) -> "DeviceRegistration":
        return copy.deepcopy(self)

    def find_alert(self, alert_id: str) -> Optional[AlertRule]:
        for alert in self.alerts:
            if alert.id == alert_id:
                return alert
        return None

    def to_record(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "push_token": self.push_token,
            "platform": self.platform.value,
            "alerts": [alert.to_record() for alert in self.alerts],
            "preferences": self.preferences.to_record(),
            "last_seen": _dt_out(self.last_seen),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "DeviceRegistration":
        return cls(
            device_id=record["device_id"],
            push_token=record["push_token"],
            platform=Platform(record["platform"]),
            alerts=[AlertRule.from_record(item) for item in record.get("alerts", [])],
            preferences=NotificationPreferences.from_record(record.get("preferences", {})),
            last_seen=_dt_in(record.get("last_seen")) or utcnow(),
        )


@dataclass(frozen=True)
class AlertResult:
    success: bool
    alert: Optional[AlertRule] = None
    error: Optional[OperationError] = None

    @classmethod
    def failed(cls, code: ErrorCode, message: str) -> "AlertResult":
        return cls(success=False, error=OperationError(code, message))


@dataclass(frozen=True)
class FiredAlert:
    """An alert rule that fired on an evaluation tick, ready for the notifier."""

    alert_id: str
    device_id: str
    instrument_id: str
    instrument_name: str
    type: AlertType
    threshold: Decimal
    actual_price: Decimal
    timestamp: datetime
    reference_price: Optional[Decimal] = None

    def to_record(self) -> dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "device_id": self.device_id,
            "instrument_id": self.instrument_id,
            "instrument_name": self.instrument_name,
            "type": self.type.value,
            "threshold": str(self.threshold),
            "actual_price": str(self.actual_price),
            "reference_price": str(self.reference_price) if self.reference_price is not None else None,
            "timestamp": _dt_out(self.timestamp),
        }


__all__ = [
    "AlertResult",
    "AlertRule",
    "AlertType",
    "CURRENCY_SYMBOL",
    "DepositResult",
    "DeviceRegistration",
    "ErrorCode",
    "FiredAlert",
    "HOLDING_EPSILON",
    "Holding",
    "LedgerState",
    "NotificationPreferences",
    "OperationError",
    "Platform",
    "PortfolioPnL",
    "SHARE_QUANTUM",
    "Trade",
    "TradeResult",
    "TradeSide",
    "to_decimal",
    "utcnow",
]
