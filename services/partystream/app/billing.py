"""Payment lifecycle: intents, webhook reconciliation and refunds."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from infra import Payment
from libs.audit import record_audit
from libs.observability.metrics import WEBHOOK_EVENTS

from . import repository
from .bookings import transition_booking
from .config import Settings
from .errors import AuthorizationError, ConflictError, PartyStreamError, ValidationError
from .identity import Caller, can_pay_for_booking, is_participant
from .payments import PaymentGateway, PaymentIntentRequest
from .statuses import (
    PAYABLE_BOOKING_STATUSES,
    BookingPaymentStatus,
    BookingStatus,
    PaymentStatus,
)

logger = logging.getLogger(__name__)

SUCCEEDED_EVENT = "payment_intent.succeeded"
FAILED_EVENT = "payment_intent.payment_failed"


@dataclass(slots=True)
class IntentCreated:
    payment: Payment
    client_secret: str


def service_fee_for(total: float, percentage: float) -> float:
    return round(total * percentage, 2)


def to_cents(amount: float) -> int:
    return int(round(amount * 100))


def create_payment_intent(
    db: Session,
    gateway: PaymentGateway,
    settings: Settings,
    caller: Caller,
    booking_id: str,
) -> IntentCreated:
    booking = repository.require_booking(db, booking_id)
    if not can_pay_for_booking(caller, booking):
        raise AuthorizationError(
            "Only the booking's host can pay for it", booking_id=booking_id, caller_id=caller.id
        )
    if BookingStatus(booking.status) not in PAYABLE_BOOKING_STATUSES:
        raise ValidationError(
            f"Cannot pay for a {booking.status} booking", booking_id=booking_id, caller_id=caller.id
        )
    if repository.get_succeeded_payment(db, booking_id) is not None:
        raise ConflictError(
            "Booking has already been paid", booking_id=booking_id, caller_id=caller.id
        )

    service_fee = service_fee_for(booking.total_amount, settings.service_fee_percentage)
    charged = booking.total_amount + service_fee

    host = repository.require_user(db, booking.host_id)
    customer_id = gateway.ensure_customer(
        email=host.email,
        name=f"{host.first_name} {host.last_name}".strip(),
        user_id=host.id,
        customer_id=host.stripe_customer_id,
    )
    if host.stripe_customer_id != customer_id:
        host.stripe_customer_id = customer_id
        db.commit()

    intent = gateway.create_payment_intent(
        PaymentIntentRequest(
            amount_cents=to_cents(charged),
            currency=settings.currency,
            customer_id=customer_id,
            description=f"PartyStream booking {booking.id}",
            metadata={
                "booking_id": booking.id,
                "dj_profile_id": booking.dj_profile_id,
                "host_id": booking.host_id,
                "service_fee": f"{service_fee:.2f}",
            },
        )
    )

    payment = Payment(
        booking_id=booking.id,
        host_id=booking.host_id,
        amount=booking.total_amount,
        service_fee=service_fee,
        total_amount=charged,
        currency=settings.currency,
        payment_intent_id=intent.intent_id,
        status=PaymentStatus.PENDING.value,
    )
    db.add(payment)
    db.flush()
    record_audit(
        db,
        entity="payment",
        entity_id=payment.id,
        action="payment.intent_created",
        actor_id=caller.id,
        to_status=payment.status,
        details={"booking_id": booking.id, "payment_intent_id": intent.intent_id},
    )
    db.commit()
    logger.info(
        "payment intent created",
        extra={"payment_id": payment.id, "booking_id": booking.id, "caller_id": caller.id},
    )
    return IntentCreated(payment=payment, client_secret=intent.client_secret)


def _mark_succeeded(db: Session, payment: Payment) -> str:
    if payment.status == PaymentStatus.SUCCEEDED.value:
        return "duplicate"
    if payment.status == PaymentStatus.REFUNDED.value:
        return "ignored"
    previous = payment.status
    payment.status = PaymentStatus.SUCCEEDED.value
    record_audit(
        db,
        entity="payment",
        entity_id=payment.id,
        action="payment.succeeded",
        from_status=previous,
        to_status=payment.status,
        details={"payment_intent_id": payment.payment_intent_id},
    )
    booking = repository.require_booking(db, payment.booking_id)
    booking.payment_status = BookingPaymentStatus.PAID.value
    if booking.status == BookingStatus.PENDING.value:
        transition_booking(
            db, booking, BookingStatus.CONFIRMED, actor_id=None, reason="payment_succeeded"
        )
    return "applied"


def _mark_failed(db: Session, payment: Payment) -> str:
    if payment.status not in (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value):
        return "ignored"
    previous = payment.status
    payment.status = PaymentStatus.FAILED.value
    record_audit(
        db,
        entity="payment",
        entity_id=payment.id,
        action="payment.failed",
        from_status=previous,
        to_status=payment.status,
        details={"payment_intent_id": payment.payment_intent_id},
    )
    return "applied"


def _intent_id(event: Dict[str, Any]) -> Optional[str]:
    data = event.get("data")
    if not isinstance(data, dict):
        return None
    data_object = data.get("object")
    if not isinstance(data_object, dict):
        return None
    intent_id = data_object.get("id")
    return intent_id if isinstance(intent_id, str) and intent_id else None


def handle_webhook_event(db: Session, event: Dict[str, Any]) -> Dict[str, Any]:
    """Reconcile a verified Stripe event with local state.

    Never raises: processing failures are logged and the event is still
    acknowledged so Stripe does not retry indefinitely.
    """

    event_type = str(event.get("type", ""))
    if event_type not in (SUCCEEDED_EVENT, FAILED_EVENT):
        WEBHOOK_EVENTS.labels(event_type or "unknown", "ignored").inc()
        return {"received": True}

    context: Dict[str, Any] = {"event_type": event_type, "event_id": event.get("id")}
    try:
        intent_id = _intent_id(event)
        context["payment_intent_id"] = intent_id
        payment: Optional[Payment] = (
            repository.get_payment_by_intent(db, intent_id) if intent_id else None
        )
        if payment is None:
            logger.warning("webhook for unknown payment intent", extra=context)
            WEBHOOK_EVENTS.labels(event_type, "unknown_intent").inc()
            return {"received": True}
        context["payment_id"] = payment.id
        context["booking_id"] = payment.booking_id
        if event_type == SUCCEEDED_EVENT:
            outcome = _mark_succeeded(db, payment)
        else:
            outcome = _mark_failed(db, payment)
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.error(
            "second succeeded payment for booking; manual refund required", extra=context
        )
        outcome = "duplicate_success"
    except (SQLAlchemyError, PartyStreamError):
        db.rollback()
        logger.exception("webhook processing failed", extra=context)
        outcome = "error"

    WEBHOOK_EVENTS.labels(event_type, outcome).inc()
    logger.info("webhook processed", extra={**context, "outcome": outcome})
    return {"received": True}


def refund_payment(
    db: Session,
    gateway: PaymentGateway,
    caller: Caller,
    payment_id: str,
    *,
    amount: Optional[float] = None,
    reason: str = "requested_by_customer",
) -> Payment:
    if not caller.is_admin:
        raise AuthorizationError(
            "Only admins can issue refunds", payment_id=payment_id, caller_id=caller.id
        )
    payment = repository.require_payment(db, payment_id)
    if not payment.payment_intent_id:
        raise ValidationError("Payment has no payment intent to refund", payment_id=payment_id)
    if payment.status != PaymentStatus.SUCCEEDED.value:
        raise ValidationError(
            f"Cannot refund a {payment.status} payment", payment_id=payment_id, caller_id=caller.id
        )
    refund_amount = payment.total_amount if amount is None else amount
    if refund_amount > payment.total_amount:
        raise ValidationError(
            "Refund amount exceeds the amount charged", payment_id=payment_id, caller_id=caller.id
        )

    result = gateway.refund(
        payment_intent_id=payment.payment_intent_id,
        amount_cents=to_cents(refund_amount),
        reason=reason,
    )

    payment.status = PaymentStatus.REFUNDED.value
    payment.refund_id = result.refund_id
    payment.refunded_amount = result.amount_cents / 100
    record_audit(
        db,
        entity="payment",
        entity_id=payment.id,
        action="payment.refunded",
        actor_id=caller.id,
        from_status=PaymentStatus.SUCCEEDED.value,
        to_status=payment.status,
        details={"refund_id": result.refund_id, "amount": payment.refunded_amount, "reason": reason},
    )
    booking = repository.require_booking(db, payment.booking_id)
    booking.payment_status = BookingPaymentStatus.REFUNDED.value
    if booking.status != BookingStatus.COMPLETED.value:
        transition_booking(db, booking, BookingStatus.CANCELLED, actor_id=caller.id, reason="refunded")
    db.commit()
    logger.info(
        "payment refunded",
        extra={"payment_id": payment.id, "booking_id": booking.id, "caller_id": caller.id},
    )
    return payment


def get_payment(db: Session, caller: Caller, payment_id: str) -> Payment:
    payment = repository.require_payment(db, payment_id)
    booking = repository.require_booking(db, payment.booking_id)
    if not is_participant(caller, booking):
        raise AuthorizationError(
            "Not authorized to view this payment", payment_id=payment_id, caller_id=caller.id
        )
    return payment


def list_payments_for_booking(db: Session, caller: Caller, booking_id: str) -> list[Payment]:
    booking = repository.require_booking(db, booking_id)
    if not is_participant(caller, booking):
        raise AuthorizationError(
            "Not authorized to view payments for this booking",
            booking_id=booking_id,
            caller_id=caller.id,
        )
    return list(repository.list_payments_for_booking(db, booking_id))


__all__ = [
    "FAILED_EVENT",
    "SUCCEEDED_EVENT",
    "IntentCreated",
    "create_payment_intent",
    "get_payment",
    "handle_webhook_event",
    "list_payments_for_booking",
    "refund_payment",
    "service_fee_for",
    "to_cents",
]
