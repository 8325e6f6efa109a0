from __future__ import annotations

from pydantic import BaseModel, Field


class CheckoutRequest(BaseModel):
    card_id: int = Field(gt=0)
    event_id: int = Field(gt=0)
    guest_name: str = Field(min_length=1, max_length=255)
    guest_email: str = Field(min_length=3, max_length=320)


class CheckoutResponse(BaseModel):
    session_id: str
    url: str
    card_value: int
    platform_fee: int
    total_amount: int


class CheckoutConfirmResponse(BaseModel):
    session_id: str
    paid: bool
    card_number: int | None = None
    card_value: int | None = None
