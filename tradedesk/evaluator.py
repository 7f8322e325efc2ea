"""Decide which alert rules fire on a tick of live quotes."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Mapping, Optional
from zoneinfo import ZoneInfo

from .alerts import AlertStore
from .models import AlertRule, AlertType, FiredAlert, NotificationPreferences, to_decimal, utcnow

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN = timedelta(minutes=30)


def condition_met(rule: AlertRule, price: Decimal, reference: Optional[Decimal] = None) -> bool:
    """Return whether ``rule`` holds at ``price``.

    ``percent_change`` compares against ``reference`` and never holds without
    one.
    """

    if rule.type == AlertType.ABOVE:
        return price >= rule.threshold
    if rule.type == AlertType.BELOW:
        return price <= rule.threshold
    if reference is None or reference <= 0:
        return False
    change = abs((price - reference) / reference) * Decimal("100")
    return change >= rule.threshold


def cooldown_elapsed(rule: AlertRule, now: datetime, cooldown: timedelta = DEFAULT_COOLDOWN) -> bool:
    if rule.last_triggered is None:
        return True
    return now - rule.last_triggered >= cooldown


@dataclass
class EvaluationOutcome:
    checked: int = 0
    fired: list[FiredAlert] = field(default_factory=list)


class AlertEvaluator:
    """Evaluate every registered device's rules against a set of quotes.

    The percent-change baseline is the price seen on the previous tick, kept
    per instrument and refreshed after each evaluation.
    """

    def __init__(
        self,
        store: AlertStore,
        *,
        cooldown: timedelta = DEFAULT_COOLDOWN,
        clock: Callable[[], datetime] = utcnow,
        timezone: str = "UTC",
    ):
        self.store = store
        self.cooldown = cooldown
        self._clock = clock
        self._zone = ZoneInfo(timezone)
        self._references: dict[str, Decimal] = {}
        self._lock = threading.Lock()

    def reference_price(self, instrument_id: str) -> Optional[Decimal]:
        with self._lock:
            return self._references.get(instrument_id)

    def reference_prices(self) -> dict[str, Decimal]:
        with self._lock:
            return dict(self._references)

    def local_hour(self, now: datetime) -> int:
        return now.astimezone(self._zone).hour

    def _suppressed(self, preferences: NotificationPreferences, category: str, now: datetime) -> bool:
        if not getattr(preferences, category):
            return True
        return preferences.in_quiet_hours(self.local_hour(now))

    def should_notify(self, device_id: str, category: str, now: datetime | None = None) -> bool:
        """Whether ``device_id`` currently accepts notifications of ``category``."""

        if category not in NotificationPreferences.CATEGORIES:
            raise ValueError(f"Unknown notification category: {category}")
        preferences = self.store.get_preferences(device_id)
        if preferences is None:
            return False
        return not self._suppressed(preferences, category, now or self._clock())

    def evaluate(self, quotes: Mapping[str, object]) -> EvaluationOutcome:
        now = self._clock()
        prices: dict[str, Decimal] = {}
        for instrument_id, raw in quotes.items():
            try:
                price = to_decimal(raw)
            except ValueError:
                logger.warning("Ignoring unusable quote for %s: %r", instrument_id, raw)
                continue
            if price > 0:
                prices[instrument_id] = price

        with self._lock:
            references = dict(self._references)

        outcome = EvaluationOutcome()
        for device in self.store.devices():
            if self._suppressed(device.preferences, "price_alerts", now):
                continue
            for rule in device.alerts:
                if not rule.enabled or rule.instrument_id not in prices:
                    continue
                outcome.checked += 1
                price = prices[rule.instrument_id]
                reference = references.get(rule.instrument_id)
                if not condition_met(rule, price, reference):
                    continue
                if not cooldown_elapsed(rule, now, self.cooldown):
                    continue
                if self.store.mark_triggered(device.device_id, rule.id, now, self.cooldown) is None:
                    continue
                outcome.fired.append(
                    FiredAlert(
                        alert_id=rule.id,
                        device_id=device.device_id,
                        instrument_id=rule.instrument_id,
                        instrument_name=rule.instrument_name,
                        type=rule.type,
                        threshold=rule.threshold,
                        actual_price=price,
                        timestamp=now,
                        reference_price=reference if rule.type == AlertType.PERCENT_CHANGE else None,
                    )
                )

        with self._lock:
            self._references.update(prices)
        if outcome.fired:
            logger.info("Alert tick checked %d rules, fired %d", outcome.checked, len(outcome.fired))
        return outcome

    def evaluate_all(self, quotes: Mapping[str, object]) -> list[FiredAlert]:
        return self.evaluate(quotes).fired


__all__ = [
    "AlertEvaluator",
    "DEFAULT_COOLDOWN",
    "EvaluationOutcome",
    "condition_met",
    "cooldown_elapsed",
]
