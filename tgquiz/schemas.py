from datetime import datetime
from typing import Any, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Schema whose wire names are camelCase while attributes stay snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- identity / users ---

class TelegramUser(BaseModel):
    id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    language_code: Optional[str] = None
    photo_url: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class UserOut(BaseModel):
    id: int
    telegram_id: int
    username: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    language_code: Optional[str]
    photo_url: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    user: UserOut


# --- quiz catalog ---

class QuizSummary(BaseModel):
    id: int
    title: str
    description: Optional[str]
    question_count: int


class QuizListResponse(BaseModel):
    tests: list[QuizSummary]


class QuizOut(BaseModel):
    id: int
    title: str
    description: Optional[str]

    model_config = {"from_attributes": True}


class AnswerOut(CamelModel):
    id: int
    text: str
    is_correct: bool


class QuestionOut(CamelModel):
    id: int
    text: str
    image_url: Optional[str] = None
    answers: list[AnswerOut] = []


class QuizDetailResponse(BaseModel):
    test: QuizOut
    questions: list[QuestionOut]


# --- results ---

class ResultCreate(CamelModel):
    test_id: int
    correct: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    answered: Optional[int] = Field(default=None, ge=0)
    time_seconds: Optional[int] = None

    @field_validator("test_id")
    @classmethod
    def test_id_not_zero(cls, value: int) -> int:
        if value == 0:
            raise ValueError("testId must be non-zero")
        return value


class ResultOut(BaseModel):
    id: int
    user_id: int
    test_id: int
    correct: int
    total: int
    answered: int
    percentage: int
    time_seconds: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class ResultResponse(BaseModel):
    result: ResultOut


# --- subscription ---

class SubscriptionStatus(CamelModel):
    telegram_id: int
    subscription_status: str
    subscription_expires_at: Optional[datetime]
    active: bool


# --- admin ---

class AdminOut(CamelModel):
    telegram_id: int
    created_at: datetime
    created_by: Optional[int]

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class AdminsResponse(BaseModel):
    admins: list[AdminOut]


class AdminCreate(CamelModel):
    telegram_id: int = Field(gt=0)


class AdminCreated(BaseModel):
    ok: bool = True
    admin: AdminOut


class AdminCheck(CamelModel):
    is_admin: bool


class ActiveSubscriber(CamelModel):
    telegram_id: int
    name: str
    subscription_status: str
    subscription_expires_at: datetime


class ActiveSubscribersResponse(BaseModel):
    users: list[ActiveSubscriber]


class SubscriptionGrant(CamelModel):
    telegram_id: int = Field(gt=0)
    # Anything unusable falls back to DEFAULT_GRANT_DAYS, booleans included
    days: Optional[Any] = None


class GrantedSubscription(CamelModel):
    telegram_id: int
    subscription_status: str
    subscription_expires_at: datetime


class GrantResponse(BaseModel):
    ok: bool = True
    user: GrantedSubscription


class BroadcastRequest(CamelModel):
    message: str = ""
    user_ids: Optional[list[Union[int, str]]] = None


# --- notifications ---

class PaymentNotification(CamelModel):
    # Relayed verbatim, so nothing here is allowed to fail validation
    amount: Optional[Any] = None
    tariff_name: Optional[Any] = None
    user_info: Optional[Any] = None
    user_id: Optional[Any] = None


# --- coaching advice ---

class AnswerError(BaseModel):
    question: str = ""
    wrong: str = ""
    correct: str = ""


class TopicError(BaseModel):
    topic_id: Optional[Union[int, str]] = None
    topic_name: Optional[str] = None
    error_count: int = 0
    percentage: float = 0


class AdviceRequest(CamelModel):
    user_id: Union[int, str]
    errors: Optional[list[AnswerError]] = None
    correct_count: int = 0
    total_count: int = 0
    user_errors: Optional[list[TopicError]] = None
    total_score: Optional[float] = None

    @property
    def is_analytics(self) -> bool:
        return self.user_errors is not None and self.total_score is not None


class AdviceResponse(BaseModel):
    advice: str
    warning: Optional[str] = None


class ExplainRequest(CamelModel):
    question: str = ""
    wrong_answer: str = ""
    correct_answer: str = ""


class ExplainResponse(BaseModel):
    explanation: str
