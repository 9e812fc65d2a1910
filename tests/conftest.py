import os

# Settings are read at import time, so the environment goes first
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["STORE_BACKEND"] = "sql"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["MAIL_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ALLOW_FOLLOW_BACK"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.core.security import create_access_token, hash_password
from app.database import Base, build_engine
from app.models.account import STATUS_ACTIVE
from app.schemas.account import AccountRecord
from app.services.account_service import AccountService
from app.services.otp_service import InMemoryOTPStore, OTPIssuer
from app.services.record_store import SqlRecordStore
from app.services.relationship_service import RelationshipService

DEFAULT_PASSWORD = "Password123"


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    """Stands in for EmailNotifier; `fail` makes send() report failure, `crash` makes it raise."""

    def __init__(self, fail=False, crash=False):
        self.sent = []
        self.fail = fail
        self.crash = crash

    async def send(self, destination, purpose, template_data):
        if self.crash:
            raise RuntimeError("smtp exploded")
        self.sent.append((destination, purpose, template_data))
        return not self.fail


class RecordingDispatcher:
    """Synchronous stand-in for NotificationDispatcher in service tests."""

    def __init__(self, accept=True):
        self.enqueued = []
        self.accept = accept

    def enqueue(self, destination, purpose, data=None):
        if self.accept:
            self.enqueued.append((destination, purpose, data or {}))
        return self.accept

    def last(self, purpose):
        for destination, p, data in reversed(self.enqueued):
            if p == purpose:
                return destination, data
        return None


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    store = SqlRecordStore(engine)
    store.insert("role", {"role": "User", "status": 1})
    store.insert("role", {"role": "Admin", "status": 1})
    return store


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def otp_issuer(clock):
    return OTPIssuer(InMemoryOTPStore(), ttl=timedelta(minutes=5), clock=clock)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def account_service(store, otp_issuer, dispatcher):
    return AccountService(store, otp_issuer, dispatcher, settings)


@pytest.fixture
def relationship_service(store):
    return RelationshipService(store, settings)


@pytest.fixture
def make_account(store):
    """Insert an account row directly and return it as an AccountRecord."""
    counter = {"n": 0}

    def _make(email=None, password=DEFAULT_PASSWORD, status=STATUS_ACTIVE, role="User", **extra):
        counter["n"] += 1
        n = counter["n"]
        email = email or f"user{n}@example.com"
        role_row = store.fetch_one("role", {"role": role})
        handle = extra.pop("username_login", f"user{n}")
        row = store.insert("account", {
            "email": email,
            "gmail": email,
            "username": extra.pop("username", handle),
            "username_login": handle,
            "password_login": hash_password(password),
            "status": status,
            "provider": "email",
            "email_verified": True,
            "role_id": role_row["id"],
            **extra,
        })
        account = AccountRecord.model_validate(row)
        account.role = role
        return account

    return _make


@pytest.fixture
def auth_header():
    def _header(account):
        return {"Authorization": f"Bearer {create_access_token(account)}"}
    return _header


@pytest.fixture
def client(store, otp_issuer):
    from app.core.dependencies import get_otp_issuer, get_record_store
    from app.main import app

    app.dependency_overrides[get_record_store] = lambda: store
    app.dependency_overrides[get_otp_issuer] = lambda: otp_issuer
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
