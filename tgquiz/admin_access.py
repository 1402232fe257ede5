from typing import Optional
from fastapi import Depends, HTTPException, status
from sqlmodel import Session, select
from tgquiz.config import Settings, get_settings
from tgquiz.database import get_session
from tgquiz.identity import require_telegram_user
from tgquiz.models import AdminEntry
from tgquiz.schemas import TelegramUser


def is_admin(session: Session, telegram_id: Optional[int], main_admin_id: int) -> bool:
    """True for the main admin and for anyone on the admin allow-list."""
    if not telegram_id:
        return False
    if telegram_id == main_admin_id:
        return True
    entry = session.exec(
        select(AdminEntry.id).where(AdminEntry.telegram_id == telegram_id).limit(1)
    ).first()
    return entry is not None


def require_admin(
    user: TelegramUser = Depends(require_telegram_user),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> TelegramUser:
    if not is_admin(session, user.id, settings.main_admin_telegram_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return user


def require_main_admin(
    user: TelegramUser = Depends(require_telegram_user),
    settings: Settings = Depends(get_settings),
) -> TelegramUser:
    """Only the configured main admin passes; the allow-list is not enough."""
    if user.id != settings.main_admin_telegram_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return user
