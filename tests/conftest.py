import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RUN_MIGRATIONS"] = "false"
os.environ["MAIN_ADMIN_TELEGRAM_ID"] = "1000"
os.environ["BROADCAST_DELAY_SECONDS"] = "0"
for name in ("TELEGRAM_BOT_TOKEN", "TELEGRAM_ADMIN_ID", "GEMINI_API_KEY"):
    os.environ.pop(name, None)

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session

from tgquiz.database import engine, init_db
from tgquiz.main import app
from tgquiz.models import Quiz, Question, Answer
from tgquiz.telegram_client import TelegramError, get_telegram_client

MAIN_ADMIN_ID = 1000


def as_user(telegram_id: int) -> dict:
    return {"x-telegram-user-id": str(telegram_id)}


class FakeTelegramClient:
    """Records every send; ids in ``failing`` are rejected like the Bot API would."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent = []

    async def send_message(self, chat_id, text, parse_mode="HTML"):
        if chat_id in self.failing:
            raise TelegramError("Forbidden: bot was blocked by the user")
        self.sent.append((chat_id, text))
        return {"message_id": len(self.sent)}


@pytest.fixture(autouse=True)
def database():
    init_db()
    yield
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session():
    with Session(engine) as session:
        yield session


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def telegram():
    fake = FakeTelegramClient()
    app.dependency_overrides[get_telegram_client] = lambda: fake
    return fake


@pytest.fixture
def make_quiz(session):
    """Create a quiz from ``[(question_text, sort_order, [(answer_text, is_correct, sort_order)])]``."""

    def _make(title="Sample Test", questions=()):
        quiz = Quiz(title=title, description="Desc")
        session.add(quiz)
        session.commit()
        session.refresh(quiz)
        for text, sort_order, answers in questions:
            question = Question(test_id=quiz.id, text=text, sort_order=sort_order)
            session.add(question)
            session.commit()
            session.refresh(question)
            for answer_text, is_correct, answer_order in answers:
                session.add(Answer(
                    question_id=question.id,
                    text=answer_text,
                    is_correct=is_correct,
                    sort_order=answer_order,
                ))
            session.commit()
        return quiz.id

    return _make


@pytest.fixture
def sample_quiz(make_quiz):
    return make_quiz(questions=[
        ("Q1", 0, [("A1", True, 0), ("A2", False, 1)]),
        ("Q2", 1, [("B1", False, 0), ("B2", True, 1)]),
    ])
