import json
import os
import tempfile
import uuid
from pathlib import Path

import pytest

# Point the app at a throwaway SQLite file before `studybot` is imported.
_DB_PATH = Path(tempfile.mkdtemp(prefix="studybot-tests-")) / "test.db"
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["OPENAI_API_KEY"] = "test-key"

from fastapi.testclient import TestClient
from sqlmodel import Session

from studybot import models
from studybot.completion import get_completion_gateway
from studybot.database import engine
from studybot.main import app


class FakeGateway:
    """Stands in for `CompletionGateway`; returns queued replies in order."""

    def __init__(self):
        self.replies = []
        self.calls = []

    def queue(self, *replies):
        self.replies.extend(replies)

    def complete(self, prompt, *, system, max_tokens, temperature, model=None):
        self.calls.append({"prompt": prompt, "system": system, "max_tokens": max_tokens, "temperature": temperature})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def _quiz_reply(correct_answers):
    return json.dumps({
        "questions": [
            {
                "question": f"Question {i + 1}?",
                "options": ["A) one", "B) two", "C) three", "D) four"],
                "correct_answer": label,
                "explanation": f"Because {label}.",
            }
            for i, label in enumerate(correct_answers)
        ]
    })


@pytest.fixture
def quiz_reply():
    """Builds completion text for a quiz whose keys are the given labels."""
    return _quiz_reply


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def gateway():
    fake = FakeGateway()
    app.dependency_overrides[get_completion_gateway] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_completion_gateway, None)


@pytest.fixture
def db():
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_student(client):
    """Sign up a fresh account, onboard it and return its auth headers."""
    def _make(full_name="Test Student"):
        email = f"{uuid.uuid4().hex[:12]}@example.com"
        r = client.post('/auth/signup', json={'email': email, 'password': 'pw123456'})
        assert r.status_code == 200
        headers = {'Authorization': f"Bearer {r.json()['access_token']}"}
        p = client.post('/students/me', json={'full_name': full_name, 'stream': 'Sciences Maths', 'year_of_study': 2}, headers=headers)
        assert p.status_code == 200
        return headers
    return _make


@pytest.fixture
def subject(db):
    s = models.Subject(name="Mathematics", stream="Sciences Maths", chapters=["Functions", "Limits", "Sequences"])
    db.add(s)
    db.commit()
    db.refresh(s)
    return s
