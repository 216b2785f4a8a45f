from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from prometheus_client import REGISTRY

from infra import AuditLog, Booking, DJProfile
from libs.db.db import SessionLocal
from services.partystream.app.bookings import quote_booking
from services.partystream.app.errors import ValidationError

from support import book, set_status, slot


def test_create_booking_prices_duration_at_hourly_rate(client, host, dj_profile):
    response = book(client, host, dj_profile["id"], start_hour=9, hours=2, notes="Rooftop party")

    assert response.status_code == 201
    body = response.json()
    assert body["duration_hours"] == 2
    assert body["total_amount"] == 100
    assert body["status"] == "pending"
    assert body["payment_status"] == "pending"
    assert body["host_id"] == host.id
    assert body["notes"] == "Rooftop party"


def test_quote_handles_fractional_hours():
    profile = DJProfile(id="dj-1", hourly_rate=60)
    start = datetime(2030, 1, 1, 20, 0, tzinfo=timezone.utc)
    quote = quote_booking(profile, start, start + timedelta(minutes=90))

    assert quote.duration_hours == 1.5
    assert quote.total_amount == 90


def test_quote_reads_naive_datetimes_as_utc():
    profile = DJProfile(id="dj-1", hourly_rate=10)
    quote = quote_booking(profile, datetime(2030, 1, 1, 10), datetime(2030, 1, 1, 12))

    assert quote.start.tzinfo is not None
    assert quote.total_amount == 20


def test_quote_rejects_inverted_and_past_windows():
    profile = DJProfile(id="dj-1", hourly_rate=10)
    start = datetime(2030, 1, 1, 10, tzinfo=timezone.utc)
    with pytest.raises(ValidationError):
        quote_booking(profile, start, start)
    with pytest.raises(ValidationError):
        quote_booking(profile, start, start - timedelta(hours=1))
    with pytest.raises(ValidationError):
        quote_booking(profile, start, start + timedelta(hours=1), now=start + timedelta(minutes=1))


def test_create_booking_validation(client, host, dj_profile):
    past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    later = (datetime.now(timezone.utc) - timedelta(hours=20)).isoformat()
    response = client.post(
        "/bookings",
        headers=host.headers,
        json={"dj_profile_id": dj_profile["id"], "start_time": past, "end_time": later},
    )
    assert response.status_code == 400

    missing = book(client, host, "no-such-profile")
    assert missing.status_code == 404


def test_only_hosts_create_bookings(client, dj, admin, dj_profile):
    assert book(client, dj, dj_profile["id"]).status_code == 403
    assert book(client, admin, dj_profile["id"]).status_code == 403


def test_confirmed_booking_blocks_overlapping_and_touching_windows(client, host, dj, dj_profile):
    first = book(client, host, dj_profile["id"], start_hour=10, hours=2).json()
    assert set_status(client, dj, first["id"], "confirmed").status_code == 200

    overlapping = book(client, host, dj_profile["id"], start_hour=11, hours=2)
    assert overlapping.status_code == 409
    assert overlapping.json()["message"] == "DJ is not available during the selected time"

    touching = book(client, host, dj_profile["id"], start_hour=12, hours=1)
    assert touching.status_code == 409

    clear = book(client, host, dj_profile["id"], start_hour=13, hours=1)
    assert clear.status_code == 201


def test_pending_bookings_do_not_block_each_other(client, host, make_user, dj_profile):
    other_host = make_user("host")
    assert book(client, host, dj_profile["id"], start_hour=10, hours=2).status_code == 201
    assert book(client, other_host, dj_profile["id"], start_hour=10, hours=2).status_code == 201


def test_listing_is_scoped_by_role(client, host, make_user, dj, admin, dj_profile):
    other_host = make_user("host")
    mine = book(client, host, dj_profile["id"], start_hour=9).json()
    theirs = book(client, other_host, dj_profile["id"], start_hour=15).json()

    host_view = client.get("/bookings", headers=host.headers).json()
    assert [b["id"] for b in host_view] == [mine["id"]]

    dj_view = client.get("/bookings", headers=dj.headers).json()
    assert {b["id"] for b in dj_view} == {mine["id"], theirs["id"]}

    admin_view = client.get("/bookings", headers=admin.headers).json()
    assert len(admin_view) == 2

    dj_without_profile = make_user("dj")
    assert client.get("/bookings", headers=dj_without_profile.headers).json() == []


def test_read_booking_requires_participation(client, make_user, host, dj, admin, booking):
    for actor in (host, dj, admin):
        assert client.get(f"/bookings/{booking['id']}", headers=actor.headers).status_code == 200

    stranger = make_user("host")
    response = client.get(f"/bookings/{booking['id']}", headers=stranger.headers)
    assert response.status_code == 403
    assert client.get("/bookings/missing", headers=host.headers).status_code == 404


def test_update_recomputes_price_and_checks_conflicts(client, host, dj, dj_profile, booking):
    moved = client.put(f"/bookings/{booking['id']}", headers=host.headers, json=slot(9, 3))
    assert moved.status_code == 200
    assert moved.json()["duration_hours"] == 3
    assert moved.json()["total_amount"] == 150

    blocker = book(client, host, dj_profile["id"], start_hour=20, hours=2).json()
    set_status(client, dj, blocker["id"], "confirmed")
    clash = client.put(f"/bookings/{booking['id']}", headers=host.headers, json=slot(21, 1))
    assert clash.status_code == 409

    set_status(client, dj, booking["id"], "confirmed")
    notes_only = client.put(
        f"/bookings/{booking['id']}", headers=host.headers, json={"notes": "Bring lights"}
    )
    assert notes_only.status_code == 200
    assert notes_only.json()["notes"] == "Bring lights"


def test_dj_cannot_edit_booking_and_terminal_bookings_are_frozen(client, host, dj, booking):
    assert client.put(
        f"/bookings/{booking['id']}", headers=dj.headers, json={"notes": "x"}
    ).status_code == 403

    set_status(client, host, booking["id"], "cancelled")
    frozen = client.put(f"/bookings/{booking['id']}", headers=host.headers, json={"notes": "x"})
    assert frozen.status_code == 409


def test_status_transitions_follow_roles(client, host, dj, admin, booking):
    assert set_status(client, host, booking["id"], "confirmed").status_code == 403

    confirmed = set_status(client, dj, booking["id"], "confirmed")
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"

    assert set_status(client, dj, booking["id"], "completed").status_code == 403
    assert set_status(client, host, booking["id"], "pending").status_code == 403

    completed = set_status(client, admin, booking["id"], "completed")
    assert completed.status_code == 200

    again = set_status(client, admin, booking["id"], "cancelled")
    assert again.status_code == 409
    assert again.json()["error"] == "conflict"


def test_invalid_status_is_rejected_before_lookup(client, make_user):
    stranger = make_user("host")
    response = set_status(client, stranger, "missing", "partying")

    assert response.status_code == 400
    assert "partying" in response.json()["message"]


def test_pending_booking_cannot_be_completed(client, admin, booking):
    assert set_status(client, admin, booking["id"], "completed").status_code == 409


def test_either_party_can_cancel(client, host, dj, dj_profile, booking):
    assert set_status(client, dj, booking["id"], "cancelled").status_code == 200

    second = book(client, host, dj_profile["id"], start_hour=15).json()
    assert set_status(client, host, second["id"], "cancelled").json()["status"] == "cancelled"


def test_delete_rules(client, host, dj, dj_profile, booking):
    assert client.delete(f"/bookings/{booking['id']}", headers=dj.headers).status_code == 403

    confirmed = book(client, host, dj_profile["id"], start_hour=15).json()
    set_status(client, dj, confirmed["id"], "confirmed")
    assert client.delete(f"/bookings/{confirmed['id']}", headers=host.headers).status_code == 409

    assert client.delete(f"/bookings/{booking['id']}", headers=host.headers).status_code == 204
    assert client.get(f"/bookings/{booking['id']}", headers=host.headers).status_code == 404


def test_transitions_are_audited(client, host, dj, booking):
    set_status(client, dj, booking["id"], "confirmed")
    set_status(client, host, booking["id"], "cancelled")

    with SessionLocal() as session:
        entries = (
            session.query(AuditLog)
            .filter_by(entity="booking", entity_id=booking["id"])
            .order_by(AuditLog.id)
            .all()
        )
        stored = session.get(Booking, booking["id"])

    assert [entry.action for entry in entries] == [
        "booking.created",
        "booking.confirmed",
        "booking.cancelled",
    ]
    assert entries[1].actor_id == dj.id
    assert (entries[2].from_status, entries[2].to_status) == ("confirmed", "cancelled")
    assert stored.status == "cancelled"


def _transition_count(status: str) -> float:
    value = REGISTRY.get_sample_value(
        "partystream_booking_transitions_total", {"to_status": status}
    )
    return value or 0.0


def test_create_and_transition_increment_the_metrics_counter(client, host, dj, dj_profile):
    pending_before = _transition_count("pending")
    confirmed_before = _transition_count("confirmed")

    created = book(client, host, dj_profile["id"])
    assert created.status_code == 201, created.text
    confirmed = set_status(client, dj, created.json()["id"], "confirmed")
    assert confirmed.status_code == 200, confirmed.text

    assert _transition_count("pending") == pending_before + 1
    assert _transition_count("confirmed") == confirmed_before + 1
