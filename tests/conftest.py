import os

# before anything imports db/main
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models
from ai_service import AIService, get_ai_service
from config import Settings, get_settings
from db import Base, get_db
from main import app


class FakeAIService(AIService):
    """AIService whose provider call is canned; the prompt helpers stay real."""

    def __init__(self, settings):
        super().__init__(settings)
        self.calls = []
        self.replies = []
        self.error = None

    def send_message(self, provider, messages, model=None):
        self.calls.append({"provider": provider, "messages": messages, "model": model})
        if self.error is not None:
            raise self.error
        content = self.replies.pop(0) if self.replies else "Hello from the model"
        return {
            "content": content,
            "metadata": {"model": model or "fake-model", "tokens": 7, "provider": provider},
        }


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        jwt_secret="test-secret",
        openai_api_key="sk-test",
        anthropic_api_key="sk-ant-test",
        google_api_key="g-test",
        lm_studio_url="http://lmstudio.local/v1",
    )


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
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_ai(settings):
    return FakeAIService(settings)


@pytest.fixture
def client(session_factory, settings, fake_ai):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_ai_service] = lambda: fake_ai
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def register(client, username="alice", email="alice@example.com", password="secret123"):
    r = client.post("/api/auth/register", json={
        "username": username, "email": email, "password": password,
    })
    assert r.status_code == 201, r.text
    token = r.json()["data"]["token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(client):
    return register(client)


@pytest.fixture
def make_user(db_session):
    def _make(username="bob", email="bob@example.com", password="secret123"):
        user = models.User(username=username, email=email)
        user.set_password(password)
        db_session.add(user)
        db_session.commit()
        return user
    return _make
