"""Route registration helpers."""

from __future__ import annotations

from fastapi import APIRouter

from .ledger import router as ledger_router
from .notifications import router as notifications_router

api_router = APIRouter()
api_router.include_router(ledger_router, prefix="/ledger", tags=["ledger"])
api_router.include_router(notifications_router, prefix="/notifications", tags=["notifications"])

__all__ = ["api_router"]
