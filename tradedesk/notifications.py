"""Alert message formatting, notifier contract and per-device history."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Optional, Protocol
from uuid import uuid4

from .models import (
    CURRENCY_SYMBOL,
    AlertType,
    DeviceRegistration,
    FiredAlert,
    _dt_in,
    _dt_out,
    utcnow,
)
from .persistence import HISTORY_NAMESPACE, StateStore

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100


@dataclass(frozen=True)
class NotificationPayload:
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)


def format_alert_message(fired: FiredAlert, currency: str = CURRENCY_SYMBOL) -> NotificationPayload:
    """Build the push title/body for a fired alert."""

    name = fired.instrument_name
    price = f"{currency}{fired.actual_price:.2f}"
    target = f"{currency}{fired.threshold:.2f}"
    data = {"instrument_id": fired.instrument_id, "alert_id": fired.alert_id, "type": "price_alert"}

    if fired.type == AlertType.ABOVE:
        return NotificationPayload(
            title=f"📈 {name} hit {target}",
            body=f"{name} is now trading at {price}, above your target of {target}.",
            data=data,
        )
    if fired.type == AlertType.BELOW:
        return NotificationPayload(
            title=f"📉 {name} dropped to {price}",
            body=f"{name} is now trading at {price}, below your target of {target}.",
            data=data,
        )
    reference = fired.reference_price
    change = Decimal("0")
    if reference:
        change = (fired.actual_price - reference) / reference * Decimal("100")
    direction = "up" if change >= 0 else "down"
    emoji = "🔥" if change >= 0 else "⚠️"
    sign = "+" if change >= 0 else ""
    return NotificationPayload(
        title=f"{emoji} {name} moved {abs(change):.1f}% {direction}",
        body=f"{name} is now at {price} ({sign}{change:.1f}%).",
        data=data,
    )


class Notifier(Protocol):
    """Delivery channel for alert notifications."""

    def deliver(self, device: DeviceRegistration, payload: NotificationPayload) -> bool:
        ...


class LoggingNotifier:
    """Log each notification instead of pushing it anywhere."""

    def deliver(self, device: DeviceRegistration, payload: NotificationPayload) -> bool:
        logger.info("Notify %s (%s): %s | %s", device.device_id, device.platform.value, payload.title, payload.body)
        return True


class RecordingNotifier:
    """Keep delivered payloads in memory; optionally report failure."""

    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.sent: list[tuple[str, NotificationPayload]] = []

    def deliver(self, device: DeviceRegistration, payload: NotificationPayload) -> bool:
        self.sent.append((device.device_id, payload))
        return self.succeed


class NotificationHistoryType(str, Enum):
    PRICE_ABOVE = "price_above"
    PRICE_BELOW = "price_below"
    PERCENT_CHANGE = "percent_change"
    MARKET_NEWS = "market_news"
    DAILY_CHALLENGE = "daily_challenge"
    SOCIAL = "social"
    SYSTEM = "system"


_ALERT_HISTORY_TYPES = {
    AlertType.ABOVE: NotificationHistoryType.PRICE_ABOVE,
    AlertType.BELOW: NotificationHistoryType.PRICE_BELOW,
    AlertType.PERCENT_CHANGE: NotificationHistoryType.PERCENT_CHANGE,
}


@dataclass(frozen=True)
class NotificationHistoryItem:
    id: str
    title: str
    body: str
    type: NotificationHistoryType
    timestamp: datetime
    read: bool = False
    instrument_id: Optional[str] = None
    threshold: Optional[Decimal] = None
    actual_price: Optional[Decimal] = None

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "type": self.type.value,
            "timestamp": _dt_out(self.timestamp),
            "read": self.read,
            "instrument_id": self.instrument_id,
            "threshold": str(self.threshold) if self.threshold is not None else None,
            "actual_price": str(self.actual_price) if self.actual_price is not None else None,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "NotificationHistoryItem":
        threshold = record.get("threshold")
        actual = record.get("actual_price")
        return cls(
            id=record["id"],
            title=record["title"],
            body=record["body"],
            type=NotificationHistoryType(record["type"]),
            timestamp=_dt_in(record["timestamp"]),
            read=bool(record.get("read", False)),
            instrument_id=record.get("instrument_id"),
            threshold=Decimal(threshold) if threshold is not None else None,
            actual_price=Decimal(actual) if actual is not None else None,
        )


class NotificationHistory:
    """Newest-first notification inbox for one device, capped at ``limit`` items."""

    def __init__(
        self,
        limit: int = DEFAULT_HISTORY_LIMIT,
        *,
        clock: Callable[[], datetime] = utcnow,
        store: StateStore | None = None,
        device_id: str | None = None,
    ):
        if limit <= 0:
            raise ValueError("limit must be positive")
        if store is not None and not device_id:
            raise ValueError("device_id is required when a store is given")
        self.limit = limit
        self.device_id = device_id
        self._clock = clock
        self._store = store
        self._lock = threading.Lock()
        self._items: list[NotificationHistoryItem] = []
        if store is not None:
            record = store.load(HISTORY_NAMESPACE, device_id)
            if record is not None:
                self._items = [NotificationHistoryItem.from_record(i) for i in record.get("items", [])][:limit]

    def _replace(self, items: list[NotificationHistoryItem]) -> None:
        if self._store is not None:
            self._store.save(HISTORY_NAMESPACE, self.device_id, {"items": [i.to_record() for i in items]})
        self._items = items

    def items(self) -> list[NotificationHistoryItem]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def unread_count(self) -> int:
        with self._lock:
            return sum(1 for item in self._items if not item.read)

    def add(
        self,
        title: str,
        body: str,
        type: NotificationHistoryType | str = NotificationHistoryType.SYSTEM,
        *,
        instrument_id: str | None = None,
        threshold: Decimal | None = None,
        actual_price: Decimal | None = None,
        timestamp: datetime | None = None,
    ) -> NotificationHistoryItem:
        item = NotificationHistoryItem(
            id=f"notif-{uuid4().hex[:12]}",
            title=title,
            body=body,
            type=NotificationHistoryType(type),
            timestamp=timestamp or self._clock(),
            instrument_id=instrument_id,
            threshold=threshold,
            actual_price=actual_price,
        )
        with self._lock:
            self._replace([item, *self._items][: self.limit])
        return item

    def add_fired(self, fired: FiredAlert, payload: NotificationPayload) -> NotificationHistoryItem:
        return self.add(
            payload.title,
            payload.body,
            _ALERT_HISTORY_TYPES[fired.type],
            instrument_id=fired.instrument_id,
            threshold=fired.threshold,
            actual_price=fired.actual_price,
            timestamp=fired.timestamp,
        )

    def mark_as_read(self, item_id: str) -> bool:
        with self._lock:
            if not any(item.id == item_id for item in self._items):
                return False
            self._replace([replace(item, read=True) if item.id == item_id else item for item in self._items])
            return True

    def mark_all_as_read(self) -> int:
        with self._lock:
            unread = sum(1 for item in self._items if not item.read)
            if unread:
                self._replace([replace(item, read=True) for item in self._items])
            return unread

    def remove(self, item_id: str) -> bool:
        with self._lock:
            remaining = [item for item in self._items if item.id != item_id]
            if len(remaining) == len(self._items):
                return False
            self._replace(remaining)
            return True

    def clear(self) -> None:
        with self._lock:
            if self._store is not None:
                self._store.delete(HISTORY_NAMESPACE, self.device_id)
            self._items = []


__all__ = [
    "DEFAULT_HISTORY_LIMIT",
    "LoggingNotifier",
    "NotificationHistory",
    "NotificationHistoryItem",
    "NotificationHistoryType",
    "NotificationPayload",
    "Notifier",
    "RecordingNotifier",
    "format_alert_message",
]
