from __future__ import annotations

import asyncio
from decimal import Decimal

from app.config import AppSettings
from app.services.monitor import AlertMonitor, TickStats
from app.services.sessions import TradingServices
from tradedesk.notifications import NotificationHistoryType, RecordingNotifier
from tradedesk.persistence import InMemoryStateStore
from tradedesk.quotes import InMemoryQuoteSource


class BrokenQuotes:
    def get_price(self, instrument_id):
        raise ConnectionError("feed down")

    def get_prices(self, instrument_ids):
        raise ConnectionError("feed down")


def build_services(quotes=None, notifier=None) -> TradingServices:
    settings = AppSettings(timezone="UTC", state_database_url=None)
    return TradingServices.from_settings(
        settings,
        store=InMemoryStateStore(),
        quotes=quotes or InMemoryQuoteSource({"ppc": "19.85", "ete": "15.25"}),
        notifier=notifier or RecordingNotifier(),
    )


def test_run_once_without_rules_is_empty():
    assert AlertMonitor(build_services()).run_once() == TickStats()


def test_run_once_delivers_and_records_history():
    notifier = RecordingNotifier()
    services = build_services(notifier=notifier)
    services.alerts.register_device("dev-1", "token-1", "ios")
    services.alerts.add_alert("dev-1", "ppc", "PPC", "above", "19")
    services.alerts.add_alert("dev-1", "ete", "ETE", "above", "20")

    stats = AlertMonitor(services).run_once()

    assert stats == TickStats(checked=2, triggered=1, sent=1)
    device_id, payload = notifier.sent[0]
    assert device_id == "dev-1"
    assert payload.title == "📈 PPC hit €19.00"
    (item,) = services.history("dev-1").items()
    assert item.type == NotificationHistoryType.PRICE_ABOVE
    assert item.actual_price == Decimal("19.85")

    # Inside the cooldown nothing fires again.
    assert AlertMonitor(services).run_once() == TickStats(checked=2, triggered=0, sent=0)


def test_failed_delivery_still_marks_rule_triggered():
    services = build_services(notifier=RecordingNotifier(succeed=False))
    services.alerts.register_device("dev-1", "token-1", "ios")
    rule = services.alerts.add_alert("dev-1", "ppc", "PPC", "below", "20").alert

    stats = AlertMonitor(services).run_once()

    assert stats == TickStats(checked=1, triggered=1, sent=0)
    assert services.alerts.get_alert("dev-1", rule.id).last_triggered is not None


def test_quote_failure_yields_empty_tick():
    services = build_services(quotes=BrokenQuotes())
    services.alerts.register_device("dev-1", "token-1", "ios")
    services.alerts.add_alert("dev-1", "ppc", "PPC", "below", "20")

    assert AlertMonitor(services).run_once() == TickStats()


def test_interval_is_bounded():
    services = build_services()
    assert AlertMonitor(services, interval=0.01).interval == 1.0
    assert AlertMonitor(services, interval=10**6).interval == 3600.0


async def test_start_and_stop_background_task():
    notifier = RecordingNotifier()
    services = build_services(notifier=notifier)
    services.alerts.register_device("dev-1", "token-1", "android")
    services.alerts.add_alert("dev-1", "ete", "ETE", "below", "16")
    monitor = AlertMonitor(services, interval=60, initial_delay=0)

    monitor.start()
    assert monitor.is_running
    for _ in range(50):
        if notifier.sent:
            break
        await asyncio.sleep(0.02)
    await monitor.stop()

    assert not monitor.is_running
    assert len(notifier.sent) == 1
