"""Request-scoped access to the application's service container."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from app.services.sessions import TradingServices
from tradedesk.models import ErrorCode, OperationError

_ERROR_STATUS = {
    ErrorCode.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INSUFFICIENT_BALANCE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INSUFFICIENT_SHARES: status.HTTP_400_BAD_REQUEST,
    ErrorCode.DEVICE_NOT_REGISTERED: status.HTTP_404_NOT_FOUND,
    ErrorCode.RULE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.MAX_ALERTS_REACHED: status.HTTP_409_CONFLICT,
    ErrorCode.QUOTE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def get_services(request: Request) -> TradingServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Services not initialised")
    return services


def raise_for_error(error: OperationError | None) -> None:
    """Translate a core failure into an ``HTTPException`` with ``{code, message}`` detail."""

    if error is None:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Operation failed")
    raise HTTPException(
        status_code=_ERROR_STATUS.get(error.code, status.HTTP_400_BAD_REQUEST),
        detail={"code": error.code.value, "message": error.message},
    )


def http_error(code: ErrorCode, message: str) -> HTTPException:
    return HTTPException(status_code=_ERROR_STATUS[code], detail={"code": code.value, "message": message})
