from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from libs.db.db import get_db

from ..billing import (
    create_payment_intent,
    get_payment,
    handle_webhook_event,
    list_payments_for_booking,
    refund_payment,
)
from ..config import Settings
from ..dependencies import (
    get_app_settings,
    get_current_caller,
    get_payment_gateway,
    require_roles,
)
from ..identity import Caller, Role
from ..payments import PaymentGateway
from ..schemas import PaymentIntentCreate, PaymentIntentResponse, PaymentOut, RefundRequest
from ..stripe_utils import parse_stripe_payload, verify_webhook_signature

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "/create-intent", response_model=PaymentIntentResponse, status_code=status.HTTP_201_CREATED
)
def create_intent(
    payload: PaymentIntentCreate,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_app_settings),
    caller: Caller = Depends(require_roles(Role.HOST, Role.ADMIN)),
):
    created = create_payment_intent(db, gateway, settings, caller, payload.booking_id)
    return PaymentIntentResponse(
        payment=PaymentOut.model_validate(created.payment),
        client_secret=created.client_secret,
    )


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    raw_body = await request.body()
    verify_webhook_signature(
        raw_body,
        request.headers.get("stripe-signature"),
        settings.stripe_webhook_secret,
        tolerance_seconds=settings.webhook_tolerance_seconds,
    )
    event = parse_stripe_payload(raw_body)
    return await run_in_threadpool(handle_webhook_event, db, event)


@router.get("/booking/{booking_id}", response_model=list[PaymentOut])
def payments_for_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return [PaymentOut.model_validate(p) for p in list_payments_for_booking(db, caller, booking_id)]


@router.get("/{payment_id}", response_model=PaymentOut)
def read(payment_id: str, db: Session = Depends(get_db), caller: Caller = Depends(get_current_caller)):
    return PaymentOut.model_validate(get_payment(db, caller, payment_id))


@router.post("/{payment_id}/refund", response_model=PaymentOut)
def refund(
    payment_id: str,
    payload: RefundRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    caller: Caller = Depends(get_current_caller),
):
    payment = refund_payment(
        db, gateway, caller, payment_id, amount=payload.amount, reason=payload.reason
    )
    return PaymentOut.model_validate(payment)
