"""Notification and alert API tests against the full application."""

from __future__ import annotations

import threading
from decimal import Decimal

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.config import AppSettings
from app.main import create_app
from app.services.sessions import TradingServices
from tradedesk.notifications import RecordingNotifier
from tradedesk.persistence import InMemoryStateStore
from tradedesk.quotes import InMemoryQuoteSource


def _app(notifier: RecordingNotifier | None = None, **overrides) -> FastAPI:
    settings = AppSettings(timezone="UTC", alert_monitor_enabled=False, **overrides)
    services = TradingServices.from_settings(
        settings,
        store=InMemoryStateStore(),
        quotes=InMemoryQuoteSource({"ppc": "19.85", "ete": "15.25"}),
        notifier=notifier or RecordingNotifier(),
    )
    return create_app(settings, services=services)


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _register(client: AsyncClient, device_id: str = "dev-1") -> None:
    response = await client.post(
        "/notifications/devices",
        json={"device_id": device_id, "push_token": "ExponentPushToken[abc]", "platform": "ios"},
    )
    assert response.status_code == 200


async def test_health():
    async with _client(_app()) as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["alert_monitor_running"] is False


async def test_alert_lifecycle():
    async with _client(_app()) as client:
        await _register(client)
        created = await client.post(
            "/notifications/devices/dev-1/alerts",
            json={"instrument_id": "ppc", "instrument_name": "PPC", "type": "above", "threshold": "21"},
        )
        alert_id = created.json()["id"]
        listed = await client.get("/notifications/devices/dev-1/alerts", params={"instrument_id": "ppc"})
        toggled = await client.post(f"/notifications/devices/dev-1/alerts/{alert_id}/toggle")
        missing_toggle = await client.post("/notifications/devices/dev-1/alerts/nope/toggle")
        deleted = await client.delete(f"/notifications/devices/dev-1/alerts/{alert_id}")
        after = await client.get("/notifications/devices/dev-1/alerts")

    assert created.status_code == 201
    assert created.json()["enabled"] is True
    assert Decimal(created.json()["threshold"]) == Decimal("21")
    assert [a["id"] for a in listed.json()] == [alert_id]
    assert toggled.json()["enabled"] is False
    assert missing_toggle.status_code == 404
    assert missing_toggle.json()["detail"]["code"] == "RULE_NOT_FOUND"
    assert deleted.status_code == 204
    assert after.json() == []


async def test_alert_errors():
    async with _client(_app(max_alerts_per_device=1)) as client:
        unknown = await client.post(
            "/notifications/devices/ghost/alerts",
            json={"instrument_id": "ppc", "type": "above", "threshold": 21},
        )
        await _register(client)
        first = await client.post(
            "/notifications/devices/dev-1/alerts",
            json={"instrument_id": "ppc", "type": "above", "threshold": 21},
        )
        second = await client.post(
            "/notifications/devices/dev-1/alerts",
            json={"instrument_id": "ppc", "type": "below", "threshold": 18},
        )
        invalid = await client.post(
            "/notifications/devices/dev-1/alerts",
            json={"instrument_id": "ppc", "type": "above", "threshold": 0},
        )

    assert unknown.status_code == 404
    assert unknown.json()["detail"]["code"] == "DEVICE_NOT_REGISTERED"
    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()["detail"]["code"] == "MAX_ALERTS_REACHED"
    assert invalid.status_code == 422


async def test_preferences_round_trip():
    async with _client(_app()) as client:
        await _register(client)
        defaults = await client.get("/notifications/devices/dev-1/preferences")
        updated = await client.patch(
            "/notifications/devices/dev-1/preferences",
            json={"market_news": False, "quiet_hours_start": 22, "quiet_hours_end": 7},
        )
        out_of_range = await client.patch(
            "/notifications/devices/dev-1/preferences",
            json={"quiet_hours_start": 24},
        )
        missing = await client.get("/notifications/devices/ghost/preferences")

    assert defaults.json()["price_alerts"] is True
    assert defaults.json()["social_activity"] is False
    assert Decimal(defaults.json()["percent_threshold"]) == Decimal("5")
    assert updated.json()["market_news"] is False
    assert updated.json()["quiet_hours_start"] == 22
    assert updated.json()["quiet_hours_end"] == 7
    assert out_of_range.status_code == 422
    assert missing.status_code == 404


async def test_check_fires_alerts_and_fills_history():
    notifier = RecordingNotifier()
    async with _client(_app(notifier)) as client:
        await _register(client)
        await client.post(
            "/notifications/devices/dev-1/alerts",
            json={"instrument_id": "ppc", "instrument_name": "PPC", "type": "below", "threshold": 20},
        )
        check = await client.post("/notifications/check")
        again = await client.post("/notifications/check")
        history = await client.get("/notifications/devices/dev-1/history")
        read = await client.post("/notifications/devices/dev-1/history/read")
        stats = await client.get("/notifications/stats")
        cleared = await client.delete("/notifications/devices/dev-1/history")
        empty = await client.get("/notifications/devices/dev-1/history")

    assert check.json() == {"checked": 1, "triggered": 1, "sent": 1}
    assert again.json() == {"checked": 1, "triggered": 0, "sent": 0}
    assert len(notifier.sent) == 1
    body = history.json()
    assert body["unread_count"] == 1
    assert body["items"][0]["type"] == "price_below"
    assert body["items"][0]["title"] == "📉 PPC dropped to €19.85"
    assert read.json()["unread_count"] == 0
    assert stats.json() == {
        "registered_devices": 1,
        "total_alerts": 1,
        "active_alerts": 1,
        "instruments_monitored": 1,
    }
    assert cleared.status_code == 204
    assert empty.json() == {"unread_count": 0, "items": []}


async def test_unregister_device():
    async with _client(_app()) as client:
        await _register(client)
        first = await client.delete("/notifications/devices/dev-1")
        second = await client.delete("/notifications/devices/dev-1")
        alerts = await client.get("/notifications/devices/dev-1/alerts")

    assert first.status_code == 204
    assert second.status_code == 404
    assert alerts.status_code == 404


class ThreadRecordingNotifier(RecordingNotifier):
    def __init__(self):
        super().__init__()
        self.threads: list[int] = []

    def deliver(self, device, payload):
        self.threads.append(threading.get_ident())
        return super().deliver(device, payload)


async def test_check_delivers_off_the_event_loop_thread():
    notifier = ThreadRecordingNotifier()
    async with _client(_app(notifier)) as client:
        await _register(client)
        await client.post(
            "/notifications/devices/dev-1/alerts",
            json={"instrument_id": "ppc", "type": "below", "threshold": "20"},
        )
        check = await client.post("/notifications/check")

    assert check.json()["sent"] == 1
    assert notifier.threads
    assert threading.get_ident() not in notifier.threads


async def test_check_without_monitor_is_unavailable():
    app = _app()
    app.state.monitor = None
    async with _client(app) as client:
        response = await client.post("/notifications/check")

    assert response.status_code == 503
