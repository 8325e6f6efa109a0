from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class PublicCardResponse(BaseModel):
    id: int
    card_number: int
    status: str
    guest_name: str | None = None
    revealed_at: datetime | None = None


class PublicCardListResponse(BaseModel):
    event_id: int
    cards: list[PublicCardResponse]


class UnlockCodeRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    guest_name: str | None = Field(default=None, max_length=255)


class UnlockCodeResponse(BaseModel):
    card_number: int
    already_reserved: bool
    reserved_until: datetime | None = None
    message: str


class UnlockRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    code: str = Field(min_length=1, max_length=32)


class UnlockResponse(BaseModel):
    card_number: int
    value: int
    message: str
