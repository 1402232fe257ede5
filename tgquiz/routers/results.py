from fastapi import APIRouter, Depends, status
from sqlmodel import Session
from tgquiz.database import get_session
from tgquiz.identity import require_telegram_user
from tgquiz.models import Result
from tgquiz.schemas import ResultCreate, ResultResponse, TelegramUser
from tgquiz.scoring import calculate_percentage
from tgquiz.users import upsert_user

router = APIRouter(prefix="/api/results", tags=["results"])


@router.post("", response_model=ResultResponse, status_code=status.HTTP_201_CREATED)
def submit_result(
    data: ResultCreate,
    telegram_user: TelegramUser = Depends(require_telegram_user),
    session: Session = Depends(get_session),
):
    """Record a finished quiz attempt. Results are append-only."""
    user = upsert_user(session, telegram_user)

    answered = data.answered if data.answered is not None else data.correct
    result = Result(
        user_id=user.id,
        test_id=data.test_id,
        correct=data.correct,
        total=data.total,
        answered=answered,
        percentage=calculate_percentage(data.correct, data.total),
        time_seconds=data.time_seconds,
    )
    session.add(result)
    session.commit()
    session.refresh(result)

    return ResultResponse(result=result)
