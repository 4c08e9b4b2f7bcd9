import os
import random
import tempfile
from pathlib import Path

import pytest

# Point the app at a throwaway database before anything imports socialboost.
_TMP_DIR = Path(tempfile.mkdtemp(prefix='socialboost-tests-'))
os.environ['DATABASE_URL'] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ['BILLING_PROVIDER'] = 'memory'
os.environ['SOCIAL_PUBLISHER'] = 'mock'

from fastapi.testclient import TestClient  # noqa: E402

from socialboost.core.security import create_access_token  # noqa: E402
from socialboost.db import Base, SessionLocal, engine  # noqa: E402
from socialboost.deps import billing_provider, social_publisher  # noqa: E402
from socialboost.main import app  # noqa: E402
from socialboost.models import User  # noqa: E402
from socialboost.services.billing import InMemoryBillingProvider  # noqa: E402
from socialboost.services.social import MockSocialPublisher  # noqa: E402


@pytest.fixture(autouse=True)
def reset_schema():
    """Fresh tables for every test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def billing():
    return InMemoryBillingProvider()


@pytest.fixture
def publisher():
    return MockSocialPublisher(random.Random(7))


@pytest.fixture
def make_user(db):
    """Factory for users with a given subscription state."""
    counter = {'n': 0}

    def _make(
        email=None,
        tier='free',
        status='inactive',
        used=0,
        role='user',
        customer_id=None,
        subscription_id=None,
        first_name='Ada',
        last_name='Lovelace',
    ) -> User:
        counter['n'] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            first_name=first_name,
            last_name=last_name,
            role=role,
            subscription_tier=tier,
            subscription_status=status,
            monthly_posts_used=used,
            stripe_customer_id=customer_id,
            stripe_subscription_id=subscription_id,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def fetch_user():
    """Read a user through a separate session so no cached state leaks in."""

    def _fetch(user_id: int) -> User:
        with SessionLocal() as session:
            user = session.get(User, user_id)
            session.expunge(user)
            return user

    return _fetch


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        return {'Authorization': f'Bearer {create_access_token(user.id)}'}

    return _headers


@pytest.fixture
def client(billing, publisher):
    app.dependency_overrides[billing_provider] = lambda: billing
    app.dependency_overrides[social_publisher] = lambda: publisher
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
