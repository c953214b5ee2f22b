import json
import os

os.environ.setdefault("HCI_GRADER_DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from hci_grader.config import get_settings
from hci_grader.db import Base
from hci_grader.dependencies import get_db, get_llm_client
from hci_grader.main import app
from hci_grader.models import Assignment, Question, Rubric
from hci_grader.services.ai import OpenRouterJSONClient
from hci_grader.services.batch import BatchProcessor
from hci_grader.services.settings import SettingsStore

# Use in-memory SQLite for testing to ensure isolation
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeLLM(OpenRouterJSONClient):
    """按顺序返回预设回复的 LLM 替身，并记录每次调用。"""

    def __init__(self, replies=None):
        super().__init__(get_settings(), api_key="test-key")
        self.replies = list(replies or [])
        self.calls = []

    def queue(self, *replies):
        self.replies.extend(replies)

    def complete(self, messages, model, *, temperature=None, max_tokens=None, json_mode=False):
        self.calls.append({"messages": list(messages), "model": model, "json_mode": json_mode})
        if not self.replies:
            raise AssertionError("Unexpected LLM call")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, (dict, list)):
            return json.dumps(reply)
        return reply


@pytest.fixture(scope="function")
def session():
    """
    Create a fresh database session for each test.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture(scope="function")
def client(session, fake_llm):
    """
    Create a TestClient wired to the test database and the fake LLM.
    """
    settings = get_settings()

    def override_get_db():
        try:
            yield session
        finally:
            pass

    app.state.session_factory = TestingSessionLocal
    app.state.settings_store = SettingsStore(settings)
    app.state.batch_processor = BatchProcessor(
        TestingSessionLocal,
        settings,
        app.state.settings_store,
        llm_factory=lambda config: fake_llm,
        max_workers=1,
        sleep=lambda seconds: None,
    )
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_llm_client] = lambda: fake_llm
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


CLARITY_LEVELS = [
    {"name": "Poor", "description": "", "percentage": 0},
    {"name": "Fair", "description": "", "percentage": 50},
    {"name": "Good", "description": "", "percentage": 100},
]
ACCURACY_LEVELS = [
    {"name": "Poor", "description": "", "percentage": 0},
    {"name": "Good", "description": "", "percentage": 100},
]


@pytest.fixture
def graded_assignment(session):
    """两道题的作业；第一题带 Clarity / Accuracy 两个评分维度。"""

    assignment = Assignment(title="HCI Midterm", description="", total_points=100)
    q1 = Question(question_text="Define usability.", question_number=1, points_percentage=60)
    q2 = Question(question_text="Explain Fitts's law.", question_number=2, points_percentage=40)
    assignment.questions.extend([q1, q2])
    q1.rubrics.extend(
        [
            Rubric(criteria_name="Clarity", description="", levels_json=CLARITY_LEVELS),
            Rubric(criteria_name="Accuracy", description="", levels_json=ACCURACY_LEVELS),
        ]
    )
    session.add(assignment)
    session.commit()
    session.refresh(assignment)
    return assignment
