"""Stripe integration for booking payments."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol

import stripe

from libs.observability.metrics import EXTERNAL_CALL_FAILURES

from .config import Settings
from .errors import ExternalServiceError


class PaymentGatewayError(ExternalServiceError):
    def __init__(self, message: str, *, operation: str, **context) -> None:
        super().__init__(message, service="stripe", operation=operation, **context)
        self.operation = operation


@dataclass(slots=True)
class PaymentIntentRequest:
    amount_cents: int
    currency: str
    customer_id: str
    description: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class PaymentIntentResult:
    intent_id: str
    client_secret: str
    status: str


@dataclass(slots=True)
class RefundResult:
    refund_id: str
    amount_cents: int
    status: str


class PaymentGateway(Protocol):
    def ensure_customer(
        self, *, email: str, name: str, user_id: str, customer_id: Optional[str] = None
    ) -> str:
        """Return ``customer_id`` when given, otherwise create a customer and return its id."""

    def create_payment_intent(self, request: PaymentIntentRequest) -> PaymentIntentResult:
        """Create a payment intent and return its identifiers."""

    def refund(
        self, *, payment_intent_id: str, amount_cents: Optional[int], reason: str
    ) -> RefundResult:
        """Refund ``amount_cents`` (everything when ``None``) of the intent."""


class StripePaymentGateway:
    """:class:`PaymentGateway` implemented with the official ``stripe`` SDK."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.stripe_secret_key)

    def _api_key(self, operation: str) -> str:
        if not self.is_configured:
            raise PaymentGatewayError("Stripe integration is not configured", operation=operation)
        return self.settings.stripe_secret_key  # type: ignore[return-value]

    def _fail(self, operation: str, exc: Exception) -> PaymentGatewayError:
        EXTERNAL_CALL_FAILURES.labels("stripe", operation).inc()
        message = getattr(exc, "user_message", None) or str(exc)
        return PaymentGatewayError(f"Stripe {operation} failed: {message}", operation=operation)

    def ensure_customer(
        self, *, email: str, name: str, user_id: str, customer_id: Optional[str] = None
    ) -> str:
        if customer_id:
            return customer_id
        api_key = self._api_key("create_customer")
        try:
            customer = stripe.Customer.create(
                api_key=api_key,
                email=email,
                name=name or None,
                metadata={"user_id": user_id},
            )
        except stripe.StripeError as exc:
            raise self._fail("create_customer", exc) from exc
        return customer["id"]

    def create_payment_intent(self, request: PaymentIntentRequest) -> PaymentIntentResult:
        api_key = self._api_key("create_payment_intent")
        try:
            intent = stripe.PaymentIntent.create(
                api_key=api_key,
                amount=request.amount_cents,
                currency=request.currency,
                customer=request.customer_id,
                description=request.description,
                metadata=request.metadata,
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as exc:
            raise self._fail("create_payment_intent", exc) from exc
        return PaymentIntentResult(
            intent_id=intent["id"],
            client_secret=intent["client_secret"],
            status=intent["status"],
        )

    def refund(
        self, *, payment_intent_id: str, amount_cents: Optional[int], reason: str
    ) -> RefundResult:
        api_key = self._api_key("refund")
        params: dict[str, object] = {"payment_intent": payment_intent_id, "reason": reason}
        if amount_cents is not None:
            params["amount"] = amount_cents
        try:
            refund = stripe.Refund.create(api_key=api_key, **params)
        except stripe.StripeError as exc:
            raise self._fail("refund", exc) from exc
        return RefundResult(
            refund_id=refund["id"],
            amount_cents=int(refund["amount"]),
            status=refund["status"],
        )


__all__ = [
    "PaymentGateway",
    "PaymentGatewayError",
    "PaymentIntentRequest",
    "PaymentIntentResult",
    "RefundResult",
    "StripePaymentGateway",
]
