from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
from tgquiz.admin_access import is_admin, require_admin, require_main_admin
from tgquiz.broadcast import broadcast
from tgquiz.config import Settings, get_settings
from tgquiz.database import get_session
from tgquiz.identity import require_telegram_user
from tgquiz.log import get_logger
from tgquiz.models import AdminEntry, User, SUBSCRIPTION_ACTIVE
from tgquiz.schemas import (
    AdminOut, AdminsResponse, AdminCreate, AdminCreated, AdminCheck,
    ActiveSubscriber, ActiveSubscribersResponse,
    SubscriptionGrant, GrantedSubscription, GrantResponse,
    BroadcastRequest, TelegramUser,
)
from tgquiz.scoring import as_utc, display_name, grant_days, subscription_expiry
from tgquiz.telegram_client import TelegramClient, get_telegram_client
from tgquiz.users import grant_subscription

log = get_logger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])

ALREADY_ADMIN = "User is already an admin"


@router.get("/admins", response_model=AdminsResponse)
def list_admins(
    admin: TelegramUser = Depends(require_admin),
    session: Session = Depends(get_session),
):
    entries = session.exec(select(AdminEntry).order_by(AdminEntry.created_at, AdminEntry.id)).all()
    return AdminsResponse(admins=[AdminOut.model_validate(entry) for entry in entries])


@router.post("/admins", response_model=AdminCreated)
def add_admin(
    data: AdminCreate,
    admin: TelegramUser = Depends(require_admin),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    """Put a Telegram id on the admin allow-list."""
    if data.telegram_id == admin.id:
        raise HTTPException(status_code=400, detail="Cannot add yourself")
    if data.telegram_id == settings.main_admin_telegram_id:
        raise HTTPException(status_code=400, detail=ALREADY_ADMIN)

    existing = session.exec(
        select(AdminEntry).where(AdminEntry.telegram_id == data.telegram_id)
    ).first()
    if existing:
        raise HTTPException(status_code=400, detail=ALREADY_ADMIN)

    entry = AdminEntry(
        telegram_id=data.telegram_id,
        created_by=admin.id or settings.main_admin_telegram_id,
    )
    session.add(entry)
    try:
        session.commit()
    except IntegrityError:
        # Lost a race with a concurrent grant for the same id
        session.rollback()
        raise HTTPException(status_code=400, detail=ALREADY_ADMIN)
    session.refresh(entry)

    log.info("Admin %s granted admin rights to %s", admin.id, entry.telegram_id)
    return AdminCreated(admin=AdminOut.model_validate(entry))


@router.delete("/admins/{telegramId}")
def remove_admin(
    telegram_id: int = Path(alias="telegramId", gt=0),
    admin: TelegramUser = Depends(require_admin),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    if telegram_id == settings.main_admin_telegram_id:
        raise HTTPException(status_code=400, detail="Cannot remove main admin")
    if telegram_id == admin.id:
        raise HTTPException(status_code=400, detail="Cannot remove yourself")

    entry = session.exec(select(AdminEntry).where(AdminEntry.telegram_id == telegram_id)).first()
    if not entry:
        raise HTTPException(status_code=404, detail="Admin not found")

    session.delete(entry)
    session.commit()
    log.info("Admin %s revoked admin rights from %s", admin.id, telegram_id)
    return {"ok": True}


@router.get("/check", response_model=AdminCheck)
def check_admin(
    user: TelegramUser = Depends(require_telegram_user),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    """Whether the caller is an admin. Open to every authenticated user."""
    return AdminCheck(is_admin=is_admin(session, user.id, settings.main_admin_telegram_id))


@router.get("/subscriptions/active", response_model=ActiveSubscribersResponse)
def active_subscriptions(
    admin: TelegramUser = Depends(require_admin),
    session: Session = Depends(get_session),
):
    now = datetime.now(timezone.utc)
    users = session.exec(
        select(User)
        .where(
            User.subscription_status == SUBSCRIPTION_ACTIVE,
            User.subscription_expires_at.is_not(None),
            User.subscription_expires_at > now,
        )
        .order_by(User.subscription_expires_at)
    ).all()
    return ActiveSubscribersResponse(
        users=[
            ActiveSubscriber(
                telegram_id=user.telegram_id,
                name=display_name(user.first_name, user.last_name),
                subscription_status=user.subscription_status,
                subscription_expires_at=as_utc(user.subscription_expires_at),
            )
            for user in users
        ]
    )


@router.post("/subscriptions/grant", response_model=GrantResponse)
def grant(
    data: SubscriptionGrant,
    admin: TelegramUser = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Activate a subscription for ``days`` days from now."""
    expires_at = subscription_expiry(grant_days(data.days))
    user = grant_subscription(session, data.telegram_id, expires_at)
    log.info("Admin %s granted a subscription to %s until %s", admin.id, user.telegram_id, expires_at)
    return GrantResponse(
        user=GrantedSubscription(
            telegram_id=user.telegram_id,
            subscription_status=user.subscription_status,
            subscription_expires_at=as_utc(user.subscription_expires_at),
        )
    )


def _requested_recipients(user_ids: Optional[list]) -> list[int]:
    recipients = []
    for raw in user_ids or []:
        try:
            telegram_id = int(raw)
        except (TypeError, ValueError):
            continue
        if telegram_id > 0:
            recipients.append(telegram_id)
    return recipients


@router.post("/broadcast")
async def send_broadcast(
    data: BroadcastRequest,
    admin: TelegramUser = Depends(require_main_admin),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    client: Optional[TelegramClient] = Depends(get_telegram_client),
):
    """Send a message to every known user, one at a time."""
    message = data.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Bot token not configured"
        )

    recipients = _requested_recipients(data.user_ids)
    if not recipients:
        recipients = list(
            session.exec(select(User.telegram_id).order_by(User.telegram_id)).all()
        )
    # Return the connection to the pool before the slow sends
    session.close()

    log.info("Admin %s started a broadcast to %d users", admin.id, len(recipients))
    report = await broadcast(client, recipients, message, delay=settings.broadcast_delay_seconds)
    return report.as_response()
