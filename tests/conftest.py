"""Shared fixtures: an in-memory Mongo, seeded users/offers and a captured OTP outbox."""
import os

# config is read at import time
os.environ["APP_ENV"] = "test"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ALLOW_STATIC_OTP"] = "false"
os.environ.pop("STATIC_OTP", None)

import mongomock
import pytest
from fastapi.testclient import TestClient

from campaignwala import config, db
from campaignwala.main import app
from campaignwala.services import auth as auth_service
from campaignwala.utils.helpers import generate_offers_id, utcnow
from campaignwala.utils.security import create_access_token

PASSWORD = "secret123"


class Outbox:
    """Records every OTP the services try to deliver."""

    def __init__(self):
        self.sms = []
        self.emails = []
        self.sms_ok = True
        self.email_ok = True

    def send_sms(self, phone_number, otp):
        self.sms.append((phone_number, otp))
        return self.sms_ok

    def send_email(self, to_email, otp, user_name="", purpose="verification"):
        self.emails.append((to_email, otp, purpose))
        return self.email_ok

    @property
    def last_sms_code(self):
        return self.sms[-1][1]

    @property
    def last_email_code(self):
        return self.emails[-1][1]


@pytest.fixture(autouse=True)
def mongo():
    """Fresh in-memory database for every test."""
    database = db.init_db(mongomock.MongoClient(), "campaignwala_test")
    yield database
    db.client = None


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    box = Outbox()
    monkeypatch.setattr(auth_service, "send_sms_otp", box.send_sms)
    monkeypatch.setattr(auth_service, "send_otp_email", box.send_email)
    return box


@pytest.fixture
def static_otp(monkeypatch):
    monkeypatch.setattr(config, "ALLOW_STATIC_OTP", True)
    monkeypatch.setattr(config, "STATIC_OTP", "1234")
    monkeypatch.setattr(config, "APP_ENV", "development")
    return "1234"


@pytest.fixture
def make_user():
    def _make_user(phone_number="9876543210", role="user", email="user@example.com",
                   name="Test User", is_verified=True, **fields):
        user = auth_service.new_user_document(
            phone_number, name, email, PASSWORD, role=role, is_verified=is_verified
        )
        user.update(fields)
        user["_id"] = db.users_collection.insert_one(user).inserted_id
        return user
    return _make_user


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user("9000000001", role="admin", email="admin@example.com", name="Admin")


@pytest.fixture
def make_offer():
    def _make_offer(name="Savings Account", commission1=100.0, commission2=50.0, category="Banking"):
        now = utcnow()
        offer = {
            "offersId": generate_offers_id(),
            "name": name,
            "nameLower": name.lower(),
            "category": category,
            "description": "",
            "commission1": commission1,
            "commission2": commission2,
            "isApproved": True,
            "createdAt": now,
            "updatedAt": now,
        }
        offer["_id"] = db.offers_collection.insert_one(offer).inserted_id
        return offer
    return _make_offer


@pytest.fixture
def offer(make_offer):
    return make_offer()


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def user_headers(user):
    return auth_headers(user)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def client():
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def headers_for():
    return auth_headers
