"""Device registration, price alert and notification history endpoints."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from app.api.dependencies.services import get_services, http_error, raise_for_error
from app.schemas import (
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
from app.services.monitor import AlertMonitor
from app.services.sessions import TradingServices
from tradedesk.models import DeviceRegistration, ErrorCode

router = APIRouter()


def _device_schema(device: DeviceRegistration) -> DeviceSchema:
    return DeviceSchema(
        device_id=device.device_id,
        platform=device.platform,
        last_seen=device.last_seen,
        alert_count=len(device.alerts),
    )


def _require_device(services: TradingServices, device_id: str) -> DeviceRegistration:
    device = services.alerts.get_device(device_id)
    if device is None:
        raise http_error(ErrorCode.DEVICE_NOT_REGISTERED, f"Device {device_id} is not registered")
    return device


@router.post("/devices", response_model=DeviceSchema)
def register_device(
    payload: DeviceRegisterRequest,
    services: TradingServices = Depends(get_services),
) -> DeviceSchema:
    device = services.alerts.register_device(payload.device_id, payload.push_token, payload.platform)
    return _device_schema(device)


@router.delete("/devices/{device_id}", status_code=status.HTTP_204_NO_CONTENT)
def unregister_device(device_id: str, services: TradingServices = Depends(get_services)) -> Response:
    if not services.alerts.unregister_device(device_id):
        raise http_error(ErrorCode.DEVICE_NOT_REGISTERED, f"Device {device_id} is not registered")
    services.drop_history(device_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/devices/{device_id}/alerts", response_model=list[AlertRuleSchema])
def list_alerts(
    device_id: str,
    instrument_id: str | None = None,
    services: TradingServices = Depends(get_services),
) -> list[AlertRuleSchema]:
    _require_device(services, device_id)
    if instrument_id:
        alerts = services.alerts.get_alerts_for_instrument(device_id, instrument_id)
    else:
        alerts = services.alerts.get_alerts(device_id)
    return [AlertRuleSchema.model_validate(alert) for alert in alerts]


@router.post("/devices/{device_id}/alerts", response_model=AlertRuleSchema, status_code=status.HTTP_201_CREATED)
def create_alert(
    device_id: str,
    payload: AlertCreateRequest,
    services: TradingServices = Depends(get_services),
) -> AlertRuleSchema:
    result = services.alerts.add_alert(
        device_id,
        payload.instrument_id,
        payload.instrument_name,
        payload.type,
        payload.threshold,
    )
    if not result.success:
        raise_for_error(result.error)
    return AlertRuleSchema.model_validate(result.alert)


@router.delete("/devices/{device_id}/alerts/{alert_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_alert(device_id: str, alert_id: str, services: TradingServices = Depends(get_services)) -> Response:
    services.alerts.remove_alert(device_id, alert_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/devices/{device_id}/alerts/{alert_id}/toggle", response_model=AlertRuleSchema)
def toggle_alert(
    device_id: str,
    alert_id: str,
    services: TradingServices = Depends(get_services),
) -> AlertRuleSchema:
    if not services.alerts.toggle_alert(device_id, alert_id):
        raise http_error(ErrorCode.RULE_NOT_FOUND, f"Alert {alert_id} not found")
    return AlertRuleSchema.model_validate(services.alerts.get_alert(device_id, alert_id))


@router.get("/devices/{device_id}/preferences", response_model=PreferencesSchema)
def get_preferences(device_id: str, services: TradingServices = Depends(get_services)) -> PreferencesSchema:
    device = _require_device(services, device_id)
    return PreferencesSchema.model_validate(device.preferences)


@router.patch("/devices/{device_id}/preferences", response_model=PreferencesSchema)
def update_preferences(
    device_id: str,
    payload: PreferencesUpdateRequest,
    services: TradingServices = Depends(get_services),
) -> PreferencesSchema:
    try:
        preferences = services.alerts.update_preferences(device_id, **payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": ErrorCode.INVALID_INPUT.value, "message": str(exc)},
        ) from exc
    if preferences is None:
        raise http_error(ErrorCode.DEVICE_NOT_REGISTERED, f"Device {device_id} is not registered")
    return PreferencesSchema.model_validate(preferences)


@router.get("/devices/{device_id}/history", response_model=NotificationHistoryResponse)
def get_history(device_id: str, services: TradingServices = Depends(get_services)) -> NotificationHistoryResponse:
    _require_device(services, device_id)
    history = services.history(device_id)
    return NotificationHistoryResponse(
        unread_count=history.unread_count(),
        items=[NotificationHistoryItemSchema.model_validate(item) for item in history.items()],
    )


@router.post("/devices/{device_id}/history/read", response_model=NotificationHistoryResponse)
def mark_history_read(
    device_id: str,
    item_id: str | None = None,
    services: TradingServices = Depends(get_services),
) -> NotificationHistoryResponse:
    _require_device(services, device_id)
    history = services.history(device_id)
    if item_id is None:
        history.mark_all_as_read()
    elif not history.mark_as_read(item_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Notification {item_id} not found")
    return NotificationHistoryResponse(
        unread_count=history.unread_count(),
        items=[NotificationHistoryItemSchema.model_validate(item) for item in history.items()],
    )


@router.delete("/devices/{device_id}/history", status_code=status.HTTP_204_NO_CONTENT)
def clear_history(device_id: str, services: TradingServices = Depends(get_services)) -> Response:
    _require_device(services, device_id)
    services.history(device_id).clear()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/stats", response_model=AlertStatsSchema)
def get_stats(services: TradingServices = Depends(get_services)) -> AlertStatsSchema:
    return AlertStatsSchema.model_validate(services.alerts.stats())


@router.post("/check", response_model=CheckResultSchema)
async def run_check(request: Request) -> CheckResultSchema:
    monitor: AlertMonitor | None = getattr(request.app.state, "monitor", None)
    if monitor is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Alert monitor not initialised")
    return CheckResultSchema.model_validate(await asyncio.to_thread(monitor.run_once))
