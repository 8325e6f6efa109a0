from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status

from revealcards.cards.errors import UnlockRateLimitedError, WrongUnlockCodeError
from revealcards.core.errors import (
    ConflictError,
    DomainError,
    DomainValidationError,
    NotFoundError,
    RateLimitedError,
    UpstreamError,
)
from revealcards.core.timeutils import seconds_until, utcnow

_STATUS_BY_FAMILY: tuple[tuple[type[DomainError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (DomainValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY),
)


def status_code_for(exc: DomainError) -> int:
    for family, status_code in _STATUS_BY_FAMILY:
        if isinstance(exc, family):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def as_http_exception(exc: DomainError) -> HTTPException:
    detail: dict[str, Any] = {"code": exc.code, "message": exc.message}
    headers: dict[str, str] | None = None

    if isinstance(exc, UnlockRateLimitedError):
        retry_after = seconds_until(exc.locked_until, now_utc=utcnow())
        detail["retry_after_seconds"] = retry_after
        if exc.locked_until is not None:
            detail["locked_until"] = exc.locked_until.isoformat()
        if retry_after > 0:
            headers = {"Retry-After": str(retry_after)}
    elif isinstance(exc, WrongUnlockCodeError):
        detail["attempts_remaining"] = exc.attempts_remaining

    return HTTPException(status_code=status_code_for(exc), detail=detail, headers=headers)
