from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import BigInteger, DateTime
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_INACTIVE = "inactive"


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    telegram_id: int = Field(sa_type=BigInteger, unique=True, index=True)
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    language_code: Optional[str] = None
    photo_url: Optional[str] = None
    subscription_status: str = Field(default=SUBSCRIPTION_INACTIVE)
    subscription_expires_at: Optional[datetime] = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Quiz(SQLModel, table=True):
    __tablename__ = "tests"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None


class Question(SQLModel, table=True):
    __tablename__ = "questions"

    id: Optional[int] = Field(default=None, primary_key=True)
    test_id: int = Field(foreign_key="tests.id", index=True)
    text: str
    image_url: Optional[str] = None
    sort_order: int = 0


class Answer(SQLModel, table=True):
    __tablename__ = "answers"

    id: Optional[int] = Field(default=None, primary_key=True)
    question_id: int = Field(foreign_key="questions.id", index=True)
    text: str
    is_correct: bool = False
    sort_order: int = 0


class Result(SQLModel, table=True):
    __tablename__ = "results"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    # Quiz existence is not checked when a result is written
    test_id: int = Field(index=True)
    correct: int = 0
    total: int = 0
    answered: int = 0
    percentage: int = 0
    time_seconds: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class AdminEntry(SQLModel, table=True):
    __tablename__ = "admins"

    id: Optional[int] = Field(default=None, primary_key=True)
    telegram_id: int = Field(sa_type=BigInteger, unique=True, index=True)
    created_by: Optional[int] = Field(default=None, sa_type=BigInteger)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
