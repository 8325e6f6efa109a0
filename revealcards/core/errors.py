"""Error families shared by the card and payment domains.

Every domain error carries a stable ``code`` that HTTP routes expose
verbatim. Messages are user-safe: they never include another guest's
identity.
"""


class DomainError(Exception):
    code = "E_DOMAIN"
    message = "Operation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message


class NotFoundError(DomainError):
    code = "E_NOT_FOUND"
    message = "Resource not found"


class ConflictError(DomainError):
    code = "E_CONFLICT"
    message = "Resource state does not allow this operation"


class RateLimitedError(DomainError):
    code = "E_RATE_LIMITED"
    message = "Too many attempts"


class DomainValidationError(DomainError):
    code = "E_VALIDATION"
    message = "Invalid input"


class UpstreamError(DomainError):
    code = "E_UPSTREAM"
    message = "External service failed"


class InternalError(DomainError):
    code = "E_INTERNAL"
    message = "Internal error"
