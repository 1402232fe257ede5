import math
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from tgquiz.models import SUBSCRIPTION_ACTIVE

DEFAULT_GRANT_DAYS = 30


def calculate_percentage(correct: int, total: int) -> int:
    """Share of correct answers as a whole percent, halves rounded up. 0 for an empty quiz."""
    if total <= 0:
        return 0
    return math.floor(correct * 100 / total + 0.5)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Backends without timezone support hand back naive UTC values
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_subscription_active(
    status: Optional[str], expires_at: Optional[datetime], now: Optional[datetime] = None
) -> bool:
    if status != SUBSCRIPTION_ACTIVE or expires_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    return as_utc(expires_at) > now


def grant_days(raw: Any) -> int:
    """Coerce a requested grant length to a positive whole number of days."""
    if raw is None or isinstance(raw, bool):
        return DEFAULT_GRANT_DAYS
    try:
        days = float(raw)
    except (TypeError, ValueError):
        return DEFAULT_GRANT_DAYS
    if not math.isfinite(days) or days < 1:
        return DEFAULT_GRANT_DAYS
    return math.floor(days)


def subscription_expiry(days: int, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now + timedelta(days=days)


def display_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    name = first_name or ""
    if last_name is not None:
        name += " " + last_name
    return name
