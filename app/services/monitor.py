"""Periodic alert checking on the application's event loop."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from app.core.telemetry import get_meter, get_tracer
from app.services.sessions import TradingServices
from tradedesk.notifications import format_alert_message

logger = logging.getLogger(__name__)

MIN_INTERVAL_SECONDS = 1.0
MAX_INTERVAL_SECONDS = 3600.0


@dataclass(frozen=True)
class TickStats:
    checked: int = 0
    triggered: int = 0
    sent: int = 0


class AlertMonitor:
    """Run ``run_once`` every ``interval`` seconds until stopped."""

    def __init__(self, services: TradingServices, *, interval: float = 300.0, initial_delay: float = 10.0):
        self.services = services
        self.interval = min(max(interval, MIN_INTERVAL_SECONDS), MAX_INTERVAL_SECONDS)
        self.initial_delay = max(initial_delay, 0.0)
        self._task: Optional[asyncio.Task] = None
        meter = get_meter()
        self._fired_counter = meter.create_counter("alerts.fired", description="Alert rules that fired")
        self._sent_counter = meter.create_counter("alerts.sent", description="Alert notifications delivered")

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> TickStats:
        services = self.services
        with get_tracer().start_as_current_span("alerts.tick") as span:
            instruments = services.alerts.monitored_instruments()
            if not instruments:
                return TickStats()
            try:
                quotes = services.quotes.get_prices(instruments)
            except Exception:
                logger.warning("Quote source failed during alert tick", exc_info=True)
                return TickStats()

            outcome = services.evaluator.evaluate(quotes)
            sent = 0
            for fired in outcome.fired:
                device = services.alerts.get_device(fired.device_id)
                if device is None:
                    continue
                payload = format_alert_message(fired, services.currency_symbol)
                if services.notifier.deliver(device, payload):
                    sent += 1
                else:
                    logger.warning("Delivery failed for alert %s to %s", fired.alert_id, fired.device_id)
                services.history(fired.device_id).add_fired(fired, payload)

            stats = TickStats(checked=outcome.checked, triggered=len(outcome.fired), sent=sent)
            span.set_attribute("alerts.checked", stats.checked)
            span.set_attribute("alerts.triggered", stats.triggered)
            span.set_attribute("alerts.sent", stats.sent)
            self._fired_counter.add(stats.triggered)
            self._sent_counter.add(stats.sent)
            if stats.triggered:
                logger.info("Alert check: %d checked, %d triggered, %d sent", stats.checked, stats.triggered, stats.sent)
            return stats

    async def _run(self) -> None:
        await asyncio.sleep(self.initial_delay)
        while True:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("Alert tick failed")
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="alert-monitor")
        logger.info("Alert monitor started (every %.0fs)", self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Alert monitor stopped")


__all__ = ["AlertMonitor", "TickStats"]
