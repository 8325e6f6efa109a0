from revealcards.payments.errors import InvalidCheckoutAmountError
from revealcards.payments.types import CheckoutAmounts


def compute_checkout_amounts(*, card_value: int, platform_fee: int) -> CheckoutAmounts:
    if card_value <= 0 or platform_fee < 0:
        raise InvalidCheckoutAmountError
    total_amount = card_value + platform_fee
    if total_amount <= 0:
        raise InvalidCheckoutAmountError
    return CheckoutAmounts(
        card_value=card_value,
        platform_fee=platform_fee,
        total_amount=total_amount,
    )
