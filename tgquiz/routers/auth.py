from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session
from tgquiz.database import get_session
from tgquiz.identity import optional_telegram_user
from tgquiz.schemas import AuthResponse, TelegramUser
from tgquiz.users import upsert_user

router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/auth", response_model=AuthResponse)
def auth(
    user: Optional[TelegramUser] = Depends(optional_telegram_user),
    session: Session = Depends(get_session),
):
    """Register the Mini App user or refresh their profile."""
    if user is None:
        raise HTTPException(
            status_code=400,
            detail="Telegram user not provided (expected initDataUnsafe.user)",
        )
    return AuthResponse(user=upsert_user(session, user))
