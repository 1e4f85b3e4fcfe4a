"""
Shared test fixtures for pytest.

- clock: frozen, manually advanced clock injected into the services
- fetcher: stand-in content fetcher for indirect items
- app / client: Flask app on a temp-file SQLite database
- db: a session bound to the same database
- provider, other_provider, seeker, admin: seeded principals
- inline_item, indirect_item: items owned by provider
- auth_headers: helper building Bearer headers for a principal
"""

from datetime import datetime, timedelta

import pytest
from flask_jwt_extended import create_access_token

from consent_broker.app import create_app
from consent_broker.database.config import SessionLocal
from consent_broker.errors import UnavailableError
from consent_broker.lifecycle.fetcher import FetchedContent
from consent_broker.models import DataItem, DeliveryMode, Principal, PrincipalRole


class FrozenClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeFetcher:
    def __init__(self):
        self.calls = []
        self.fail = False
        self.content = b"ciphertext-bytes"

    def fetch(self, url):
        self.calls.append(url)
        if self.fail:
            raise UnavailableError("Failed to fetch file: 502 Bad Gateway")
        return FetchedContent(content=self.content, content_type="application/octet-stream")


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 1, 1, 12, 0, 0))


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def app(tmp_path, clock, fetcher):
    app = create_app(
        {
            "TESTING": True,
            "DATABASE_URL": f"sqlite:///{tmp_path / 'consent_broker_test.db'}",
            "JWT_SECRET_KEY": "test-secret-key-that-is-long-enough-for-hs256",
            "LOG_LEVEL": "WARNING",
        },
        clock=clock,
        fetcher=fetcher,
    )
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    session = SessionLocal()
    yield session
    session.close()


def _principal(db, name, email, role, public_key="-----BEGIN PUBLIC KEY-----test"):
    principal = Principal(name=name, email=email, role=role, public_key=public_key, is_active=True)
    db.add(principal)
    db.commit()
    return principal


@pytest.fixture
def provider(db):
    return _principal(db, "Alice Provider", "alice@provider.test", PrincipalRole.PROVIDER)


@pytest.fixture
def other_provider(db):
    return _principal(db, "Bob Provider", "bob@provider.test", PrincipalRole.PROVIDER)


@pytest.fixture
def seeker(db):
    return _principal(db, "Acme Bank", "kyc@acme.test", PrincipalRole.SEEKER)


@pytest.fixture
def admin(db):
    return _principal(db, "Admin", "admin@broker.test", PrincipalRole.ADMIN)


@pytest.fixture
def inline_item(db, provider):
    item = DataItem(
        owner_id=provider.id,
        name="Passport number",
        item_type="text",
        delivery_mode=DeliveryMode.INLINE,
        encrypted_data="ZW5jcnlwdGVk",
        encrypted_key="owner-wrapped-key",
        iv="iv-1",
        is_active=True,
    )
    db.add(item)
    db.commit()
    return item


@pytest.fixture
def indirect_item(db, provider):
    item = DataItem(
        owner_id=provider.id,
        name="Bank statement",
        item_type="pdf",
        delivery_mode=DeliveryMode.INDIRECT,
        encrypted_url="https://storage.test/statements/1.bin",
        encrypted_key="owner-wrapped-key-2",
        iv="iv-2",
        is_active=True,
    )
    db.add(item)
    db.commit()
    return item


@pytest.fixture
def auth_headers(app):
    def make(principal):
        with app.app_context():
            token = create_access_token(identity=str(principal.id))
        return {"Authorization": f"Bearer {token}"}
    return make
