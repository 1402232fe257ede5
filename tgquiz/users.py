from datetime import datetime
from sqlmodel import Session
from tgquiz.database import dialect_insert
from tgquiz.models import User, SUBSCRIPTION_ACTIVE, utcnow
from tgquiz.schemas import TelegramUser

PROFILE_FIELDS = ("username", "first_name", "last_name", "language_code", "photo_url")


def _upsert(session: Session, values: dict, update_fields: tuple) -> User:
    insert = dialect_insert(session)
    stmt = insert(User).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[User.telegram_id],
        set_={name: stmt.excluded[name] for name in update_fields + ("updated_at",)},
    ).returning(User)
    user = session.scalars(stmt, execution_options={"populate_existing": True}).one()
    session.commit()
    return user


def upsert_user(session: Session, identity: TelegramUser) -> User:
    """Insert the user or overwrite its profile, keyed by Telegram id.

    Profile fields are replaced wholesale; a field missing from ``identity``
    becomes NULL rather than keeping the previous value.
    """
    now = utcnow()
    values = {
        "telegram_id": identity.id,
        "created_at": now,
        "updated_at": now,
    }
    for name in PROFILE_FIELDS:
        values[name] = getattr(identity, name) or None
    return _upsert(session, values, PROFILE_FIELDS)


def grant_subscription(session: Session, telegram_id: int, expires_at: datetime) -> User:
    """Activate a subscription, creating a bare user row if needed."""
    now = utcnow()
    values = {
        "telegram_id": telegram_id,
        "subscription_status": SUBSCRIPTION_ACTIVE,
        "subscription_expires_at": expires_at,
        "created_at": now,
        "updated_at": now,
    }
    return _upsert(session, values, ("subscription_status", "subscription_expires_at"))
