from fastapi import APIRouter, Depends
from sqlmodel import Session, select
from tgquiz.database import get_session
from tgquiz.identity import require_telegram_user
from tgquiz.models import User, SUBSCRIPTION_INACTIVE
from tgquiz.schemas import SubscriptionStatus, TelegramUser
from tgquiz.scoring import as_utc, is_subscription_active

router = APIRouter(prefix="/api/subscription", tags=["subscription"])


@router.get("/me", response_model=SubscriptionStatus)
def my_subscription(
    telegram_user: TelegramUser = Depends(require_telegram_user),
    session: Session = Depends(get_session),
):
    """Subscription state of the caller. Unknown users are simply inactive."""
    user = session.exec(select(User).where(User.telegram_id == telegram_user.id)).first()
    if not user:
        return SubscriptionStatus(
            telegram_id=telegram_user.id,
            subscription_status=SUBSCRIPTION_INACTIVE,
            subscription_expires_at=None,
            active=False,
        )

    return SubscriptionStatus(
        telegram_id=telegram_user.id,
        subscription_status=user.subscription_status or SUBSCRIPTION_INACTIVE,
        subscription_expires_at=as_utc(user.subscription_expires_at),
        active=is_subscription_active(user.subscription_status, user.subscription_expires_at),
    )
