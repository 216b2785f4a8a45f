from __future__ import annotations

import itertools
from functools import lru_cache

import pytest
from fastapi.testclient import TestClient

from infra import AuditBase, PartyStreamBase, User
from libs.db.db import SessionLocal
from services.partystream.app.config import Settings
from services.partystream.app.main import create_app
from services.partystream.app.security import create_access_token, hash_password

from fakes import FakePaymentGateway, FakeStreamingProvider
from support import PASSWORD, WEBHOOK_SECRET, Actor, book, set_status


@lru_cache(maxsize=1)
def _password_hash() -> str:
    return hash_password(PASSWORD)


@pytest.fixture(autouse=True)
def clean_tables():
    with SessionLocal() as session:
        for table in reversed(PartyStreamBase.metadata.sorted_tables):
            session.execute(table.delete())
        for table in AuditBase.metadata.sorted_tables:
            session.execute(table.delete())
        session.commit()
    yield


@pytest.fixture
def settings() -> Settings:
    return Settings(
        jwt_secret="test-jwt-secret",
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        service_fee_percentage=0.10,
    )


@pytest.fixture
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def provider() -> FakeStreamingProvider:
    return FakeStreamingProvider()


@pytest.fixture
def client(settings, gateway, provider):
    app = create_app(settings, payment_gateway=gateway, streaming_provider=provider)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user(settings):
    counter = itertools.count(1)

    def _make(role: str = "host", *, first_name: str = "Sam", last_name: str = "Jones") -> Actor:
        email = f"{role}{next(counter)}@example.com"
        with SessionLocal() as session:
            user = User(
                email=email,
                password_hash=_password_hash(),
                role=role,
                first_name=first_name,
                last_name=last_name,
            )
            session.add(user)
            session.commit()
            user_id = user.id
        token = create_access_token(settings, user_id=user_id, email=email, role=role)
        return Actor(id=user_id, email=email, role=role, token=token)

    return _make


@pytest.fixture
def host(make_user) -> Actor:
    return make_user("host", first_name="Hana", last_name="Host")


@pytest.fixture
def dj(make_user) -> Actor:
    return make_user("dj", first_name="Dee", last_name="Jay")


@pytest.fixture
def admin(make_user) -> Actor:
    return make_user("admin", first_name="Ada", last_name="Admin")


@pytest.fixture
def dj_profile(client: TestClient, dj: Actor) -> dict:
    response = client.post(
        "/djs/profile",
        headers=dj.headers,
        json={
            "stage_name": "DJ Nova",
            "hourly_rate": 50,
            "genres": ["House", "Techno"],
            "languages": ["English", "French"],
            "bio": "Warehouse sets since 2012",
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def booking(client: TestClient, host: Actor, dj_profile: dict) -> dict:
    response = book(client, host, dj_profile["id"])
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def confirmed_booking(client: TestClient, dj: Actor, booking: dict) -> dict:
    response = set_status(client, dj, booking["id"], "confirmed")
    assert response.status_code == 200, response.text
    return response.json()
