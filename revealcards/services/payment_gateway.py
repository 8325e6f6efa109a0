from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol

import stripe
import structlog

from revealcards.core.config import Settings
from revealcards.core.errors import UpstreamError
from revealcards.core.timeutils import ensure_utc, utcnow

logger = structlog.get_logger(__name__)

# Stripe accepts Checkout Session expiry between 30 minutes and 24 hours after creation.
SESSION_MIN_LIFETIME = timedelta(minutes=30)
SESSION_MAX_LIFETIME = timedelta(hours=24)


class PaymentGatewayError(UpstreamError):
    code = "E_PAYMENT_GATEWAY_FAILED"
    message = "Payment provider request failed"


@dataclass(slots=True)
class PayoutSplit:
    destination_account: str
    application_fee_amount: int


@dataclass(slots=True)
class GatewaySession:
    session_id: str
    url: str


@dataclass(slots=True)
class GatewaySessionStatus:
    session_id: str
    paid: bool
    payment_status: str | None = None
    customer_email: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


class PaymentGateway(Protocol):
    async def create_session(
        self,
        *,
        amount: int,
        currency: str,
        description: str,
        customer_email: str,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        payout: PayoutSplit | None = None,
        expires_at: datetime | None = None,
    ) -> GatewaySession:
        ...

    async def get_session_status(self, session_id: str) -> GatewaySessionStatus:
        ...


class StripeGateway:
    """Stripe Checkout adapter.

    The SDK is synchronous, so every call runs in a worker thread. With a
    payout split the session becomes a destination charge: the host's
    connected account receives the payment and the platform keeps
    ``application_fee_amount``. The session expires with the card hold,
    clamped to the lifetime Stripe accepts.
    """

    def __init__(self, *, api_key: str, api_version: str | None = None) -> None:
        self._api_key = api_key
        self._api_version = api_version

    def _request_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"api_key": self._api_key}
        if self._api_version:
            options["stripe_version"] = self._api_version
        return options

    async def create_session(
        self,
        *,
        amount: int,
        currency: str,
        description: str,
        customer_email: str,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        payout: PayoutSplit | None = None,
        expires_at: datetime | None = None,
    ) -> GatewaySession:
        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": currency,
                        "product_data": {"name": description},
                        "unit_amount": amount,
                    },
                    "quantity": 1,
                }
            ],
            "customer_email": customer_email,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        }
        if payout is not None:
            params["payment_intent_data"] = {
                "application_fee_amount": payout.application_fee_amount,
                "transfer_data": {"destination": payout.destination_account},
                "metadata": metadata,
            }
        if expires_at is not None:
            params["expires_at"] = _session_expiry_timestamp(expires_at)

        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                **params,
                **self._request_options(),
            )
        except stripe.StripeError as exc:
            logger.warning(
                "stripe_checkout_session_create_failed",
                error_type=type(exc).__name__,
                card_id=metadata.get("card_id"),
            )
            raise PaymentGatewayError from exc

        if not getattr(session, "url", None):
            raise PaymentGatewayError("Payment provider returned a session without a URL")
        return GatewaySession(session_id=str(session.id), url=str(session.url))

    async def get_session_status(self, session_id: str) -> GatewaySessionStatus:
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.retrieve,
                session_id,
                **self._request_options(),
            )
        except stripe.StripeError as exc:
            logger.warning(
                "stripe_checkout_session_retrieve_failed",
                error_type=type(exc).__name__,
                session_id=session_id,
            )
            raise PaymentGatewayError from exc

        payment_status = getattr(session, "payment_status", None)
        raw_metadata = getattr(session, "metadata", None) or {}
        customer_details = getattr(session, "customer_details", None)
        customer_email = getattr(session, "customer_email", None) or getattr(
            customer_details, "email", None
        )
        return GatewaySessionStatus(
            session_id=session_id,
            paid=payment_status == "paid",
            payment_status=payment_status,
            customer_email=customer_email,
            metadata={str(key): str(value) for key, value in dict(raw_metadata).items()},
        )


def _session_expiry_timestamp(expires_at: datetime) -> int:
    now_utc = utcnow()
    deadline = ensure_utc(expires_at)
    deadline = max(deadline, now_utc + SESSION_MIN_LIFETIME)
    deadline = min(deadline, now_utc + SESSION_MAX_LIFETIME)
    return int(deadline.timestamp())


def build_payment_gateway(settings: Settings) -> PaymentGateway:
    return StripeGateway(
        api_key=settings.stripe_secret_key,
        api_version=settings.stripe_api_version,
    )
