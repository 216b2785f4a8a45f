from __future__ import annotations

import json
import time

from infra import AuditLog, Payment, User
from libs.db.db import SessionLocal

from support import send_webhook, set_status, sign

SUCCEEDED = "payment_intent.succeeded"
FAILED = "payment_intent.payment_failed"


def _intent(client, actor, booking_id):
    return client.post("/payments/create-intent", headers=actor.headers, json={"booking_id": booking_id})


def _payment(payment_id: str) -> Payment:
    with SessionLocal() as session:
        return session.get(Payment, payment_id)


def test_intent_adds_service_fee_and_records_pending_payment(client, host, gateway, booking):
    response = _intent(client, host, booking["id"])

    assert response.status_code == 201
    body = response.json()
    assert body["client_secret"] == "pi_1_secret_abc"
    payment = body["payment"]
    assert payment["amount"] == 100
    assert payment["service_fee"] == 10
    assert payment["total_amount"] == 110
    assert payment["currency"] == "usd"
    assert payment["status"] == "pending"
    assert payment["payment_intent_id"] == "pi_1"

    request = gateway.intents[0]
    assert request.amount_cents == 11000
    assert request.metadata["booking_id"] == booking["id"]
    assert request.customer_id == "cus_1"


def test_stripe_customer_is_created_once(client, host, gateway, booking):
    _intent(client, host, booking["id"])
    _intent(client, host, booking["id"])

    assert len(gateway.customers) == 1
    assert [request.customer_id for request in gateway.intents] == ["cus_1", "cus_1"]
    with SessionLocal() as session:
        assert session.get(User, host.id).stripe_customer_id == "cus_1"


def test_intent_authorization_and_preconditions(client, make_user, host, dj, booking):
    assert _intent(client, dj, booking["id"]).status_code == 403
    assert _intent(client, make_user("host"), booking["id"]).status_code == 403
    assert _intent(client, host, "missing").status_code == 404

    set_status(client, host, booking["id"], "cancelled")
    cancelled = _intent(client, host, booking["id"])
    assert cancelled.status_code == 400


def test_gateway_failure_leaves_no_payment(client, host, gateway, booking):
    gateway.fail_intents = True

    response = _intent(client, host, booking["id"])

    assert response.status_code == 502
    assert response.json()["error"] == "external_service_error"
    with SessionLocal() as session:
        assert session.query(Payment).count() == 0


def test_succeeded_webhook_marks_paid_and_confirms_booking(client, host, booking):
    payment = _intent(client, host, booking["id"]).json()["payment"]

    response = send_webhook(client, SUCCEEDED, payment["payment_intent_id"])

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert _payment(payment["id"]).status == "succeeded"
    refreshed = client.get(f"/bookings/{booking['id']}", headers=host.headers).json()
    assert refreshed["status"] == "confirmed"
    assert refreshed["payment_status"] == "paid"


def test_webhook_replay_is_idempotent(client, host, booking):
    payment = _intent(client, host, booking["id"]).json()["payment"]

    send_webhook(client, SUCCEEDED, payment["payment_intent_id"], event_id="evt_1")
    replay = send_webhook(client, SUCCEEDED, payment["payment_intent_id"], event_id="evt_1")

    assert replay.status_code == 200
    with SessionLocal() as session:
        actions = [
            entry.action
            for entry in session.query(AuditLog).filter_by(entity="payment", entity_id=payment["id"])
        ]
        booking_actions = [
            entry.action
            for entry in session.query(AuditLog).filter_by(entity="booking", entity_id=booking["id"])
        ]
    assert actions.count("payment.succeeded") == 1
    assert booking_actions.count("booking.confirmed") == 1


def test_cannot_create_intent_after_successful_payment(client, host, booking):
    payment = _intent(client, host, booking["id"]).json()["payment"]
    send_webhook(client, SUCCEEDED, payment["payment_intent_id"])

    response = _intent(client, host, booking["id"])
    assert response.status_code == 409
    assert response.json()["message"] == "Booking has already been paid"


def test_second_success_for_same_booking_is_acknowledged_but_not_applied(client, host, booking):
    first = _intent(client, host, booking["id"]).json()["payment"]
    second = _intent(client, host, booking["id"]).json()["payment"]

    send_webhook(client, SUCCEEDED, first["payment_intent_id"], event_id="evt_1")
    response = send_webhook(client, SUCCEEDED, second["payment_intent_id"], event_id="evt_2")

    assert response.status_code == 200
    assert _payment(first["id"]).status == "succeeded"
    assert _payment(second["id"]).status == "pending"


def test_failed_webhook_only_moves_open_payments(client, host, booking):
    payment = _intent(client, host, booking["id"]).json()["payment"]

    send_webhook(client, FAILED, payment["payment_intent_id"])
    assert _payment(payment["id"]).status == "failed"

    other = _intent(client, host, booking["id"]).json()["payment"]
    send_webhook(client, SUCCEEDED, other["payment_intent_id"], event_id="evt_2")
    send_webhook(client, FAILED, other["payment_intent_id"], event_id="evt_3")
    assert _payment(other["id"]).status == "succeeded"


def test_webhook_rejects_bad_signatures(client, host, booking):
    payment = _intent(client, host, booking["id"]).json()["payment"]
    payload = json.dumps(
        {"type": SUCCEEDED, "data": {"object": {"id": payment["payment_intent_id"]}}}
    ).encode()

    forged = client.post(
        "/payments/webhook", content=payload, headers={"stripe-signature": sign(payload, "whsec_wrong")}
    )
    assert forged.status_code == 400
    assert forged.json()["message"] == "Signature mismatch"

    stale = client.post(
        "/payments/webhook",
        content=payload,
        headers={"stripe-signature": sign(payload, timestamp=int(time.time()) - 3600)},
    )
    assert stale.status_code == 400

    unsigned = client.post("/payments/webhook", content=payload)
    assert unsigned.status_code == 400

    assert _payment(payment["id"]).status == "pending"


def test_webhook_acknowledges_unknown_intents_and_events(client):
    assert send_webhook(client, SUCCEEDED, "pi_unknown").json() == {"received": True}
    assert send_webhook(client, "charge.refunded", "pi_unknown").status_code == 200


def test_webhook_acknowledges_malformed_event_objects(client, host, booking):
    payment = _intent(client, host, booking["id"]).json()["payment"]
    shapes = [
        {"type": SUCCEEDED, "data": {"object": "pi_123"}},
        {"type": SUCCEEDED, "data": ["pi_123"]},
        {"type": SUCCEEDED, "data": None},
        {"type": SUCCEEDED, "data": {"object": {"id": 42}}},
        {"type": FAILED, "data": {"object": {"id": [payment["payment_intent_id"]]}}},
    ]
    for event in shapes:
        payload = json.dumps(event).encode()
        response = client.post(
            "/payments/webhook",
            content=payload,
            headers={"stripe-signature": sign(payload), "content-type": "application/json"},
        )
        assert response.status_code == 200, event
        assert response.json() == {"received": True}

    assert _payment(payment["id"]).status == "pending"


def test_refund_is_admin_only_and_requires_success(client, host, admin, booking):
    payment = _intent(client, host, booking["id"]).json()["payment"]

    forbidden = client.post(f"/payments/{payment['id']}/refund", headers=host.headers, json={})
    assert forbidden.status_code == 403

    too_early = client.post(f"/payments/{payment['id']}/refund", headers=admin.headers, json={})
    assert too_early.status_code == 400


def test_full_refund_cancels_booking(client, host, admin, gateway, booking):
    payment = _intent(client, host, booking["id"]).json()["payment"]
    send_webhook(client, SUCCEEDED, payment["payment_intent_id"])

    response = client.post(f"/payments/{payment['id']}/refund", headers=admin.headers, json={})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "refunded"
    assert body["refund_id"] == "re_1"
    assert body["refunded_amount"] == 110
    assert gateway.refunds == [
        {"payment_intent_id": "pi_1", "amount_cents": 11000, "reason": "requested_by_customer"}
    ]

    refreshed = client.get(f"/bookings/{booking['id']}", headers=host.headers).json()
    assert refreshed["status"] == "cancelled"
    assert refreshed["payment_status"] == "refunded"


def test_partial_refund_and_over_refund(client, host, admin, booking):
    payment = _intent(client, host, booking["id"]).json()["payment"]
    send_webhook(client, SUCCEEDED, payment["payment_intent_id"])

    too_much = client.post(
        f"/payments/{payment['id']}/refund", headers=admin.headers, json={"amount": 500}
    )
    assert too_much.status_code == 400

    partial = client.post(
        f"/payments/{payment['id']}/refund",
        headers=admin.headers,
        json={"amount": 50, "reason": "duplicate"},
    )
    assert partial.status_code == 200
    assert partial.json()["refunded_amount"] == 50


def test_payment_reads_are_limited_to_participants(client, make_user, host, dj, booking):
    payment = _intent(client, host, booking["id"]).json()["payment"]

    listed = client.get(f"/payments/booking/{booking['id']}", headers=dj.headers)
    assert [item["id"] for item in listed.json()] == [payment["id"]]
    assert client.get(f"/payments/{payment['id']}", headers=host.headers).status_code == 200

    stranger = make_user("host")
    assert client.get(f"/payments/{payment['id']}", headers=stranger.headers).status_code == 403
    assert client.get(f"/payments/booking/{booking['id']}", headers=stranger.headers).status_code == 403
