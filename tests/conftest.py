import json
import os

os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from budgy.database import Base, get_db, get_session_factory
from budgy.deps import create_user, get_store_policy, issue_token
from budgy.main import app
from budgy.ratelimit import limiter
from budgy.repository import StorePolicy


async def no_sleep(seconds: float) -> None:
    return None


class RecordingSleep:
    """Fake clock for the retry wrapper: records waits instead of sleeping."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeParser:
    def __init__(self, content: str | None = None, error: Exception | None = None):
        self.content = content
        self.error = error
        self.calls: list[str] = []

    async def generate(self, extracted_text: str) -> str:
        self.calls.append(extracted_text)
        if self.error:
            raise self.error
        return self.content


STORE_A_TEXT = "Store A\nMilk 3.50\nBread 2.00\nTotal 5.50"

STORE_A_OUTPUT = json.dumps({
    "storeName": "Store A",
    "date": "2024-03-15",
    "items": [
        {"name": "Milk", "price": 3.50, "quantity": 1.0, "category": "Food & Dining"},
        {"name": "Bread", "price": 2.00, "quantity": 1.0, "category": "Food & Dining"},
    ],
})


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def store_policy():
    return StorePolicy(max_retries=1, retry_delay=0, timeout=5, sleep=no_sleep)


@pytest.fixture
def client(session_factory, store_policy):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_store_policy] = lambda: store_policy
    limiter.reset()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    limiter.reset()


@pytest.fixture
def free_user(db):
    user = create_user(db, email="free@example.com")
    token = issue_token(db, user)
    return user.id, token


@pytest.fixture
def premium_user(db):
    user = create_user(db, email="premium@example.com", premium=True)
    token = issue_token(db, user)
    return user.id, token


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def fake_parser(monkeypatch):
    parser = FakeParser(STORE_A_OUTPUT)
    monkeypatch.setattr("budgy.routes.receipts.get_receipt_parser", lambda: parser)
    return parser
