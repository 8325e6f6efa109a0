from revealcards.core.errors import DomainValidationError, NotFoundError, UpstreamError


class PaymentNotFoundError(NotFoundError):
    code = "E_PAYMENT_NOT_FOUND"
    message = "Payment not found"


class InvalidCheckoutAmountError(DomainValidationError):
    code = "E_INVALID_AMOUNT"
    message = "Checkout amount must be positive"


class InvalidGuestNameError(DomainValidationError):
    code = "E_INVALID_GUEST_NAME"
    message = "Guest name is required"


class CheckoutGatewayError(UpstreamError):
    code = "E_CHECKOUT_GATEWAY_FAILED"
    message = "Could not open a payment session, please try again"
