"""Shared fixtures: in-memory database, scripted model backend, HTTP client."""

import json
import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "vibecheck-test-logs"))
os.environ.setdefault("GENERATION_PROVIDER", "gemini")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import get_db, init_db
from generation_client import GenerationClient, get_generation_client
from main import app, get_admin_reader
from quiz_repository import AdminReader


class FakeBackend:
    """Returns scripted completions in order; exceptions in the script are raised."""

    def __init__(self):
        self.responses = []
        self.prompts = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def complete(self, prompt, model):
        self.prompts.append((prompt, model))
        if not self.responses:
            raise AssertionError("FakeBackend has no scripted response left")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def build_quiz_json(quiz_type="scored", num_questions=1, options_per_question=4, title="Capitals of Europe Quiz"):
    questions = []
    for q in range(num_questions):
        options = []
        for o in range(options_per_question):
            if quiz_type == "scored":
                options.append({"text": f"Q{q + 1} option {o + 1}", "isCorrect": o == 2})
            else:
                options.append({
                    "text": f"Q{q + 1} option {o + 1}",
                    "vibeCategory": f"category{o + 1}",
                    "vibeValue": f"value{o + 1}",
                })
        questions.append({"question": f"Question number {q + 1}?", "options": options})
    return json.dumps({"title": title, "questions": questions, "quizType": quiz_type})


@pytest.fixture
def quiz_json():
    return build_quiz_json


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def generation_client(fake_backend):
    return GenerationClient(lambda: fake_backend, "test-model", provider="fake")


@pytest.fixture
async def client(session_factory, generation_client):
    def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_generation_client] = lambda: generation_client
    app.dependency_overrides[get_admin_reader] = lambda: AdminReader(session_factory)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth(user_id="user-1"):
    return {"X-User-Id": user_id}


@pytest.fixture
def headers():
    return auth
