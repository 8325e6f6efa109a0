from __future__ import annotations

from fastapi import APIRouter

from revealcards.api.errors import as_http_exception
from revealcards.api.providers import (
    get_public_card_listing,
    get_unlock_code_issuer,
    get_unlock_verifier,
)
from revealcards.core.errors import DomainError

from .cards_models import (
    PublicCardListResponse,
    PublicCardResponse,
    UnlockCodeRequest,
    UnlockCodeResponse,
    UnlockRequest,
    UnlockResponse,
)

router = APIRouter(tags=["cards"])


@router.get("/events/{event_id}/cards", response_model=PublicCardListResponse)
async def list_event_cards(event_id: int) -> PublicCardListResponse:
    try:
        cards = await get_public_card_listing().list_for_event(event_id)
    except DomainError as exc:
        raise as_http_exception(exc) from exc

    return PublicCardListResponse(
        event_id=event_id,
        cards=[
            PublicCardResponse(
                id=card.id,
                card_number=card.card_number,
                status=card.status,
                guest_name=card.guest_name,
                revealed_at=card.revealed_at,
            )
            for card in cards
        ],
    )


@router.post(
    "/events/{event_id}/cards/{card_number}/unlock-code",
    response_model=UnlockCodeResponse,
)
async def request_unlock_code(
    event_id: int,
    card_number: int,
    payload: UnlockCodeRequest,
) -> UnlockCodeResponse:
    try:
        result = await get_unlock_code_issuer().issue(
            event_id=event_id,
            card_number=card_number,
            email=payload.email,
            guest_name=payload.guest_name,
        )
    except DomainError as exc:
        raise as_http_exception(exc) from exc

    message = "Unlock code sent, check your email"
    if result.already_reserved:
        message = "This card is already reserved for you, use the code you received"
    return UnlockCodeResponse(
        card_number=result.card_number,
        already_reserved=result.already_reserved,
        reserved_until=result.reserved_until,
        message=message,
    )


@router.post(
    "/events/{event_id}/cards/{card_number}/unlock",
    response_model=UnlockResponse,
)
async def unlock_card(
    event_id: int,
    card_number: int,
    payload: UnlockRequest,
) -> UnlockResponse:
    try:
        result = await get_unlock_verifier().verify(
            event_id=event_id,
            card_number=card_number,
            email=payload.email,
            code=payload.code,
        )
    except DomainError as exc:
        raise as_http_exception(exc) from exc

    return UnlockResponse(
        card_number=result.card_number,
        value=result.value,
        message="Card revealed",
    )
