"""Pydantic schemas for device registration, alert rules and notifications."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from tradedesk.models import AlertType, Platform
from tradedesk.notifications import NotificationHistoryType


class DeviceRegisterRequest(BaseModel):
    device_id: str = Field(..., min_length=1)
    push_token: str = Field(..., min_length=1)
    platform: Platform


class DeviceSchema(BaseModel):
    device_id: str
    platform: Platform
    last_seen: datetime
    alert_count: int


class AlertCreateRequest(BaseModel):
    instrument_id: str = Field(..., min_length=1, examples=["ppc"])
    instrument_name: str | None = Field(default=None, examples=["Public Power Corporation"])
    type: AlertType
    threshold: Decimal = Field(..., gt=0)


class AlertRuleSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    instrument_id: str
    instrument_name: str
    type: AlertType
    threshold: Decimal
    enabled: bool
    last_triggered: datetime | None = None
    created_at: datetime


class PreferencesSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    price_alerts: bool
    daily_challenge: bool
    social_activity: bool
    market_news: bool
    percent_threshold: Decimal
    quiet_hours_start: int | None = None
    quiet_hours_end: int | None = None


class PreferencesUpdateRequest(BaseModel):
    price_alerts: bool | None = None
    daily_challenge: bool | None = None
    social_activity: bool | None = None
    market_news: bool | None = None
    percent_threshold: Decimal | None = Field(default=None, ge=Decimal("0.1"), le=Decimal("100"))
    quiet_hours_start: int | None = Field(default=None, ge=0, le=23)
    quiet_hours_end: int | None = Field(default=None, ge=0, le=23)


class NotificationHistoryItemSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    body: str
    type: NotificationHistoryType
    timestamp: datetime
    read: bool
    instrument_id: str | None = None
    threshold: Decimal | None = None
    actual_price: Decimal | None = None


class NotificationHistoryResponse(BaseModel):
    unread_count: int
    items: list[NotificationHistoryItemSchema]


class AlertStatsSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    registered_devices: int
    total_alerts: int
    active_alerts: int
    instruments_monitored: int


class CheckResultSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    checked: int
    triggered: int
    sent: int


__all__ = [
    "AlertCreateRequest",
    "AlertRuleSchema",
    "AlertStatsSchema",
    "CheckResultSchema",
    "DeviceRegisterRequest",
    "DeviceSchema",
    "NotificationHistoryItemSchema",
    "NotificationHistoryResponse",
    "PreferencesSchema",
    "PreferencesUpdateRequest",
]
