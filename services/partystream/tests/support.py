"""Request helpers shared by the PartyStream API tests."""
from __future__ import annotations

import hmac
import json
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from hashlib import sha256

from fastapi.testclient import TestClient

WEBHOOK_SECRET = "whsec_test"
PASSWORD = "correct-horse-battery"


@dataclass
class Actor:
    id: str
    email: str
    role: str
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


def slot(start_hour: int, hours: float, *, days_ahead: int = 2) -> dict[str, str]:
    base = (datetime.now(timezone.utc) + timedelta(days=days_ahead)).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    start = base + timedelta(hours=start_hour)
    end = start + timedelta(hours=hours)
    return {"start_time": start.isoformat(), "end_time": end.isoformat()}


def book(client: TestClient, host: Actor, profile_id: str, start_hour: int = 9, hours: float = 2, **extra):
    return client.post(
        "/bookings",
        headers=host.headers,
        json={"dj_profile_id": profile_id, **slot(start_hour, hours), **extra},
    )


def set_status(client: TestClient, actor: Actor, booking_id: str, status: str):
    return client.patch(f"/bookings/{booking_id}/status", headers=actor.headers, json={"status": status})


def sign(payload: bytes, secret: str = WEBHOOK_SECRET, *, timestamp: int | None = None) -> str:
    ts = str(int(time.time()) if timestamp is None else timestamp)
    signed_payload = f"{ts}.{payload.decode()}".encode()
    signature = hmac.new(secret.encode(), msg=signed_payload, digestmod=sha256).hexdigest()
    return f"t={ts},v1={signature}"


def send_webhook(client: TestClient, event_type: str, intent_id: str, *, event_id: str = "evt_1"):
    payload = json.dumps(
        {"id": event_id, "type": event_type, "data": {"object": {"id": intent_id}}}
    ).encode()
    return client.post(
        "/payments/webhook",
        content=payload,
        headers={"stripe-signature": sign(payload), "content-type": "application/json"},
    )
