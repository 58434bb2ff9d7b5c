import pytest
import stripe
from fastapi.testclient import TestClient
from jose import jwt

import parcel_api.database as database
from parcel_api.config import settings
from parcel_api.main import app as fastapi_app
from parcel_api.models import new_id
from parcel_api.store import RecordStore

JWT_SECRET = "test-jwt-secret"


@pytest.fixture(autouse=True)
def setup_db(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "jwt_secret", JWT_SECRET)
    monkeypatch.setattr(settings, "stripe_webhook_secret", "whsec_test")

    database.close_db()
    engine = database.init_db(f"sqlite:///{tmp_path / 'test_parcels.db'}")
    yield engine
    database.Base.metadata.drop_all(bind=engine)
    engine.dispose()
    database.close_db()


@pytest.fixture
def db():
    session = database.SessionLocal()
    yield session
    session.close()


@pytest.fixture
def store(db):
    return RecordStore(db)


@pytest.fixture
def client():
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def make(email):
        token = jwt.encode({"email": email}, JWT_SECRET, algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}
    return make


@pytest.fixture
def parcel(store):
    parcel_id = new_id()
    store.insert_one("parcels", {
        "id": parcel_id,
        "sender_email": "a@x.com",
        "parcel_name": "Box",
        "charge": 2200,
    })
    return store.find_one("parcels", {"id": parcel_id})


@pytest.fixture
def checkout_session():
    def make(parcel_id, payment_status="paid", session_id="sess_1", **overrides):
        data = {
            "id": session_id,
            "object": "checkout.session",
            "status": "complete" if payment_status == "paid" else "open",
            "payment_status": payment_status,
            "amount_total": 2000,
            "currency": "usd",
            "customer_email": "a@x.com",
            "payment_intent": "pi_123" if payment_status == "paid" else None,
            "metadata": {"parcelId": parcel_id, "parcelName": "Box"},
        }
        data.update(overrides)
        return stripe.checkout.Session.construct_from(data, "sk_test")
    return make


@pytest.fixture
def created_session():
    def make(session_id="cs_test_1"):
        return stripe.checkout.Session.construct_from(
            {"id": session_id, "object": "checkout.session", "url": f"https://checkout.stripe.com/c/pay/{session_id}"},
            "sk_test",
        )
    return make


@pytest.fixture
def stripe_event():
    def make(event_type, object_id):
        return stripe.Event.construct_from(
            {"id": "evt_test", "object": "event", "type": event_type, "data": {"object": {"id": object_id}}},
            "sk_test",
        )
    return make
