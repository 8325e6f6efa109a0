from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class RateLimitDecision:
    allowed: bool
    attempts_remaining: int
    locked_until: datetime | None = None
    storage_failed: bool = False


@dataclass(slots=True)
class IssueResult:
    event_id: int
    card_number: int
    reserved_until: datetime | None
    already_reserved: bool
    message_id: str | None = None


@dataclass(slots=True)
class VerifyResult:
    event_id: int
    card_number: int
    value: int
    revealed_at: datetime


@dataclass(slots=True)
class PublicCard:
    id: int
    card_number: int
    status: str
    guest_name: str | None
    revealed_at: datetime | None
