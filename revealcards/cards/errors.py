from datetime import datetime

from revealcards.core.errors import (
    ConflictError,
    DomainValidationError,
    InternalError,
    NotFoundError,
    RateLimitedError,
    UpstreamError,
)


class EventNotFoundError(NotFoundError):
    code = "E_EVENT_NOT_FOUND"
    message = "Event not found"


class CardNotFoundError(NotFoundError):
    code = "E_CARD_NOT_FOUND"
    message = "Card not found"


class CardAlreadyRevealedError(ConflictError):
    code = "E_CARD_ALREADY_REVEALED"
    message = "This card has already been revealed"


class CardReservedByAnotherError(ConflictError):
    code = "E_CARD_RESERVED_BY_ANOTHER"
    message = "This card is reserved by another participant"


class CardNoLongerAvailableError(ConflictError):
    code = "E_CARD_NO_LONGER_AVAILABLE"
    message = "This card is no longer available"


class CardNotReservedError(ConflictError):
    code = "E_CARD_NOT_RESERVED"
    message = "This card has no active reservation"


class ReservationExpiredError(ConflictError):
    code = "E_RESERVATION_EXPIRED"
    message = "The reservation for this card has expired"


class CardTransitionNotAllowedError(ConflictError):
    code = "E_CARD_TRANSITION_NOT_ALLOWED"
    message = "Card status does not allow this operation"


class CardsAlreadyGeneratedError(ConflictError):
    code = "E_CARDS_ALREADY_GENERATED"
    message = "Cards were already generated for this event"


class UnlockRateLimitedError(RateLimitedError):
    code = "E_UNLOCK_RATE_LIMITED"
    message = "Too many unlock attempts, try again later"

    def __init__(
        self,
        *,
        locked_until: datetime | None = None,
        attempts_remaining: int = 0,
    ) -> None:
        super().__init__()
        self.locked_until = locked_until
        self.attempts_remaining = attempts_remaining


class UnlockAttemptsUnavailableError(InternalError):
    message = "Unlock attempts could not be checked, please try again"


class WrongUnlockCodeError(DomainValidationError):
    code = "E_WRONG_UNLOCK_CODE"
    message = "The unlock code is incorrect"

    def __init__(self, *, attempts_remaining: int) -> None:
        super().__init__()
        self.attempts_remaining = attempts_remaining


class InvalidEmailError(DomainValidationError):
    code = "E_INVALID_EMAIL"
    message = "Email address is invalid"


class InvalidUnlockCodeFormatError(DomainValidationError):
    code = "E_INVALID_UNLOCK_CODE_FORMAT"
    message = "Unlock code must be numeric"


class InvalidCardGenerationError(DomainValidationError):
    code = "E_INVALID_CARD_GENERATION"
    message = "Card count or value range is invalid"


class UnlockCodeDeliveryError(UpstreamError):
    code = "E_UNLOCK_CODE_DELIVERY_FAILED"
    message = "Could not send the unlock code, please try again"
