from __future__ import annotations

from datetime import timedelta

import structlog
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from revealcards.api.providers import get_payment_reconciler
from revealcards.core.config import get_settings
from revealcards.payments.constants import RECONCILIATION_TRIGGER_MANUAL
from revealcards.services.internal_auth import (
    extract_client_ip,
    is_client_ip_allowed,
    is_internal_request_authenticated,
)

router = APIRouter(tags=["internal", "payments"])
logger = structlog.get_logger(__name__)


class ReconcileRequest(BaseModel):
    window_hours: int | None = Field(default=None, ge=1, le=720)


class ReconcileResponse(BaseModel):
    examined: int
    payments_updated: int
    cards_updated: int
    errors: int
    conflicts: int


def _assert_internal_access(request: Request) -> None:
    settings = get_settings()
    client_ip = extract_client_ip(
        request,
        trusted_proxies=getattr(settings, "internal_api_trusted_proxies", ""),
    )

    if not is_client_ip_allowed(client_ip=client_ip, allowlist=settings.internal_api_allowlist):
        logger.warning("internal_payments_auth_failed", reason="ip_not_allowed", client_ip=client_ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})

    if not is_internal_request_authenticated(request, expected_token=settings.internal_api_token):
        logger.warning(
            "internal_payments_auth_failed",
            reason="invalid_credentials",
            client_ip=client_ip,
        )
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})


@router.post("/internal/payments/reconcile", response_model=ReconcileResponse)
async def reconcile_payments(request: Request, payload: ReconcileRequest | None = None) -> ReconcileResponse:
    _assert_internal_access(request)

    window = None
    if payload is not None and payload.window_hours is not None:
        window = timedelta(hours=payload.window_hours)
    summary = await get_payment_reconciler().reconcile_pending(
        window=window,
        trigger=RECONCILIATION_TRIGGER_MANUAL,
    )
    return ReconcileResponse(
        examined=summary.examined,
        payments_updated=summary.payments_updated,
        cards_updated=summary.cards_updated,
        errors=summary.errors,
        conflicts=summary.conflicts,
    )
