from __future__ import annotations

from fastapi import APIRouter

from revealcards.api.errors import as_http_exception
from revealcards.api.providers import get_checkout_initiator, get_payment_reconciler
from revealcards.core.errors import DomainError

from .checkout_models import CheckoutConfirmResponse, CheckoutRequest, CheckoutResponse

router = APIRouter(tags=["checkout"])


@router.post("/checkout", response_model=CheckoutResponse)
async def start_checkout(payload: CheckoutRequest) -> CheckoutResponse:
    try:
        result = await get_checkout_initiator().start_checkout(
            card_id=payload.card_id,
            event_id=payload.event_id,
            guest_name=payload.guest_name,
            guest_email=payload.guest_email,
        )
    except DomainError as exc:
        raise as_http_exception(exc) from exc

    return CheckoutResponse(
        session_id=result.session_id,
        url=result.session_url,
        card_value=result.card_value,
        platform_fee=result.platform_fee,
        total_amount=result.total_amount,
    )


@router.post(
    "/checkout/sessions/{session_id}/confirm",
    response_model=CheckoutConfirmResponse,
)
async def confirm_checkout_session(session_id: str) -> CheckoutConfirmResponse:
    try:
        result = await get_payment_reconciler().reconcile_session(session_id)
    except DomainError as exc:
        raise as_http_exception(exc) from exc

    return CheckoutConfirmResponse(
        session_id=result.session_id,
        paid=result.paid,
        card_number=result.card_number,
        card_value=result.card_value,
    )
