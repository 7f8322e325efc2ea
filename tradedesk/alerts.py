"""Device registrations, alert rules and notification preferences."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional
from uuid import uuid4

from .models import (
    AlertResult,
    AlertRule,
    AlertType,
    DeviceRegistration,
    ErrorCode,
    NotificationPreferences,
    Platform,
    to_decimal,
    utcnow,
)
from .persistence import DEVICE_NAMESPACE, StateStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_ALERTS_PER_DEVICE = 50

PERCENT_THRESHOLD_MIN = Decimal("0.1")
PERCENT_THRESHOLD_MAX = Decimal("100")


@dataclass(frozen=True)
class AlertStoreStats:
    registered_devices: int
    total_alerts: int
    active_alerts: int
    instruments_monitored: int


def _validate_hour(name: str, value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 23:
        raise ValueError(f"{name} must be an hour between 0 and 23")
    return value


class AlertStore:
    """Registry of devices and their alert rules.

    All reads hand out copies; the only way to change a rule is through the
    store's methods, which run under one lock and write the affected device
    through to the state store before the in-memory registry is updated.
    """

    def __init__(
        self,
        *,
        store: StateStore | None = None,
        max_alerts_per_device: int = DEFAULT_MAX_ALERTS_PER_DEVICE,
        clock: Callable[[], datetime] = utcnow,
        devices: Iterable[DeviceRegistration] = (),
    ):
        if max_alerts_per_device <= 0:
            raise ValueError("max_alerts_per_device must be positive")
        self._store = store
        self._clock = clock
        self.max_alerts_per_device = max_alerts_per_device
        self._lock = threading.RLock()
        self._devices: dict[str, DeviceRegistration] = {d.device_id: d for d in devices}

    @classmethod
    def restore(cls, store: StateStore, **kwargs: Any) -> "AlertStore":
        devices = []
        for key in store.keys(DEVICE_NAMESPACE):
            record = store.load(DEVICE_NAMESPACE, key)
            if record is not None:
                devices.append(DeviceRegistration.from_record(record))
        logger.info("Restored %d registered devices", len(devices))
        return cls(store=store, devices=devices, **kwargs)

    def _persist(self, device: DeviceRegistration) -> None:
        if self._store is not None:
            self._store.save(DEVICE_NAMESPACE, device.device_id, device.to_record())

    def _swap(self, device: DeviceRegistration) -> None:
        self._persist(device)
        self._devices[device.device_id] = device

    # ---------------------------------------------------------------- devices

    def register_device(
        self, device_id: str, push_token: str, platform: Platform | str
    ) -> DeviceRegistration:
        if not device_id:
            raise ValueError("device_id is required")
        if not push_token:
            raise ValueError("push_token is required")
        platform_value = Platform(platform)
        with self._lock:
            existing = self._devices.get(device_id)
            if existing is not None:
                device = existing.copy()
                device.push_token = push_token
                device.platform = platform_value
                device.last_seen = self._clock()
            else:
                device = DeviceRegistration(
                    device_id=device_id,
                    push_token=push_token,
                    platform=platform_value,
                    last_seen=self._clock(),
                )
            self._swap(device)
            logger.info("Registered device %s (%s)", device_id, platform_value.value)
            return device.copy()

    def unregister_device(self, device_id: str) -> bool:
        with self._lock:
            if device_id not in self._devices:
                return False
            if self._store is not None:
                self._store.delete(DEVICE_NAMESPACE, device_id)
            del self._devices[device_id]
            logger.info("Unregistered device %s", device_id)
            return True

    def get_device(self, device_id: str) -> Optional[DeviceRegistration]:
        with self._lock:
            device = self._devices.get(device_id)
            return device.copy() if device is not None else None

    def devices(self) -> list[DeviceRegistration]:
        with self._lock:
            return [device.copy() for device in self._devices.values()]

    def device_count(self) -> int:
        with self._lock:
            return len(self._devices)

    # ----------------------------------------------------------------- alerts

    def add_alert(
        self,
        device_id: str,
        instrument_id: str,
        instrument_name: str | None,
        alert_type: AlertType | str,
        threshold: Decimal | str | float,
    ) -> AlertResult:
        try:
            kind = AlertType(alert_type)
        except ValueError:
            return AlertResult.failed(ErrorCode.INVALID_INPUT, f"Unknown alert type: {alert_type!r}")
        try:
            value = to_decimal(threshold)
        except ValueError as exc:
            return AlertResult.failed(ErrorCode.INVALID_INPUT, str(exc))
        if value <= 0:
            return AlertResult.failed(ErrorCode.INVALID_INPUT, "Threshold must be greater than zero")
        if not instrument_id:
            return AlertResult.failed(ErrorCode.INVALID_INPUT, "Instrument is required")

        with self._lock:
            existing = self._devices.get(device_id)
            if existing is None:
                return AlertResult.failed(
                    ErrorCode.DEVICE_NOT_REGISTERED, f"Device {device_id} is not registered"
                )
            if len(existing.alerts) >= self.max_alerts_per_device:
                return AlertResult.failed(
                    ErrorCode.MAX_ALERTS_REACHED,
                    f"Device {device_id} already has {self.max_alerts_per_device} alerts",
                )
            rule = AlertRule(
                id=f"{device_id}-{instrument_id}-{uuid4().hex[:8]}",
                instrument_id=instrument_id,
                instrument_name=instrument_name or instrument_id,
                type=kind,
                threshold=value,
                created_at=self._clock(),
            )
            device = existing.copy()
            device.alerts.append(rule)
            self._swap(device)
            logger.info("Added %s alert %s on %s at %s", kind.value, rule.id, instrument_id, value)
            return AlertResult(success=True, alert=AlertRule(**vars(rule)))

    def remove_alert(self, device_id: str, alert_id: str) -> bool:
        with self._lock:
            existing = self._devices.get(device_id)
            if existing is None or existing.find_alert(alert_id) is None:
                return False
            device = existing.copy()
            device.alerts = [alert for alert in device.alerts if alert.id != alert_id]
            self._swap(device)
            logger.info("Removed alert %s from %s", alert_id, device_id)
            return True

    def toggle_alert(self, device_id: str, alert_id: str) -> bool:
        with self._lock:
            existing = self._devices.get(device_id)
            if existing is None or existing.find_alert(alert_id) is None:
                return False
            device = existing.copy()
            rule = device.find_alert(alert_id)
            rule.enabled = not rule.enabled
            self._swap(device)
            logger.info("Alert %s %s", alert_id, "enabled" if rule.enabled else "disabled")
            return True

    def get_alerts(self, device_id: str) -> list[AlertRule]:
        device = self.get_device(device_id)
        return device.alerts if device is not None else []

    def get_alert(self, device_id: str, alert_id: str) -> Optional[AlertRule]:
        device = self.get_device(device_id)
        return device.find_alert(alert_id) if device is not None else None

    def get_alerts_for_instrument(self, device_id: str, instrument_id: str) -> list[AlertRule]:
        return [alert for alert in self.get_alerts(device_id) if alert.instrument_id == instrument_id]

    def mark_triggered(
        self,
        device_id: str,
        alert_id: str,
        when: datetime,
        cooldown: Optional[timedelta] = None,
    ) -> Optional[AlertRule]:
        """Stamp ``last_triggered`` on a rule that is still present and enabled.

        Returns the updated rule, or ``None`` when the rule was removed or
        disabled since the caller read it, or when ``cooldown`` has not yet
        elapsed since the rule last fired. The check runs on the stored rule
        under the store lock, so overlapping ticks stamp a rule at most once
        per cooldown window.
        """

        with self._lock:
            existing = self._devices.get(device_id)
            current = existing.find_alert(alert_id) if existing is not None else None
            if current is None or not current.enabled:
                return None
            if cooldown is not None and current.last_triggered is not None:
                if when - current.last_triggered < cooldown:
                    return None
            device = existing.copy()
            rule = device.find_alert(alert_id)
            rule.last_triggered = when
            self._swap(device)
            return AlertRule(**vars(rule))

    # ------------------------------------------------------------ preferences

    def get_preferences(self, device_id: str) -> Optional[NotificationPreferences]:
        device = self.get_device(device_id)
        return device.preferences if device is not None else None

    def update_preferences(self, device_id: str, **changes: Any) -> Optional[NotificationPreferences]:
        """Apply a partial preferences update; ``None`` for an unknown device.

        Unknown fields and out-of-range values raise ``ValueError`` without
        touching the stored preferences.
        """

        allowed = set(NotificationPreferences.CATEGORIES) | {
            "percent_threshold",
            "quiet_hours_start",
            "quiet_hours_end",
        }
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Unknown preference fields: {', '.join(sorted(unknown))}")

        cleaned: dict[str, Any] = {}
        for name in NotificationPreferences.CATEGORIES:
            if name in changes:
                if not isinstance(changes[name], bool):
                    raise ValueError(f"{name} must be a boolean")
                cleaned[name] = changes[name]
        if "percent_threshold" in changes:
            threshold = to_decimal(changes["percent_threshold"])
            if not PERCENT_THRESHOLD_MIN <= threshold <= PERCENT_THRESHOLD_MAX:
                raise ValueError("percent_threshold must be between 0.1 and 100")
            cleaned["percent_threshold"] = threshold
        for name in ("quiet_hours_start", "quiet_hours_end"):
            if name in changes:
                cleaned[name] = _validate_hour(name, changes[name])

        with self._lock:
            existing = self._devices.get(device_id)
            if existing is None:
                return None
            device = existing.copy()
            for name, value in cleaned.items():
                setattr(device.preferences, name, value)
            self._swap(device)
            logger.info("Updated preferences for %s: %s", device_id, sorted(cleaned))
            return NotificationPreferences(**vars(device.preferences))

    # ---------------------------------------------------------------- queries

    def monitored_instruments(self) -> list[str]:
        """Instruments with an enabled rule on a device that wants price alerts."""

        with self._lock:
            instruments = {
                alert.instrument_id
                for device in self._devices.values()
                if device.preferences.price_alerts
                for alert in device.alerts
                if alert.enabled
            }
        return sorted(instruments)

    def stats(self) -> AlertStoreStats:
        with self._lock:
            alerts = [alert for device in self._devices.values() for alert in device.alerts]
            return AlertStoreStats(
                registered_devices=len(self._devices),
                total_alerts=len(alerts),
                active_alerts=sum(1 for alert in alerts if alert.enabled),
                instruments_monitored=len({alert.instrument_id for alert in alerts if alert.enabled}),
            )


__all__ = [
    "AlertStore",
    "AlertStoreStats",
    "DEFAULT_MAX_ALERTS_PER_DEVICE",
    "PERCENT_THRESHOLD_MAX",
    "PERCENT_THRESHOLD_MIN",
]
