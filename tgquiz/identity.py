"""Resolution of the calling Telegram user from request body and headers.

Mini App clients do not all send identity the same way, so each transport
is a separate strategy. Strategies are tried in order and the first one
that yields a user wins. A strategy that cannot parse its input returns
``None``; it never raises.
"""
import base64
import json
import math
from typing import Any, Callable, Mapping, Optional

from fastapi import HTTPException, Request, status
from pydantic import ValidationError

from tgquiz.schemas import TelegramUser

USER_ID_HEADER = "x-telegram-user-id"
USER_HEADER = "x-telegram-user"
USER_ENCODING_HEADER = "x-telegram-user-encoded"

Strategy = Callable[[Mapping[str, Any], Mapping[str, str]], Optional[TelegramUser]]


def _to_user(candidate: Any) -> Optional[TelegramUser]:
    if not isinstance(candidate, dict) or not candidate.get("id"):
        return None
    try:
        return TelegramUser.model_validate(candidate)
    except ValidationError:
        return None


def from_body_user(body: Mapping[str, Any], headers: Mapping[str, str]) -> Optional[TelegramUser]:
    return _to_user(body.get("user"))


def from_id_header(body: Mapping[str, Any], headers: Mapping[str, str]) -> Optional[TelegramUser]:
    raw = headers.get(USER_ID_HEADER)
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    if not math.isfinite(value) or value <= 0 or not value.is_integer():
        return None
    return TelegramUser(id=int(value))


def from_json_header(body: Mapping[str, Any], headers: Mapping[str, str]) -> Optional[TelegramUser]:
    raw = headers.get(USER_HEADER)
    if not raw or not raw.strip():
        return None
    decoded = raw
    if headers.get(USER_ENCODING_HEADER) == "base64":
        try:
            decoded = base64.b64decode(raw, validate=False).decode("utf-8")
        except ValueError:
            # Not base64 after all, parse it as plain JSON
            decoded = raw
    try:
        return _to_user(json.loads(decoded))
    except ValueError:
        return None


def from_init_data_unsafe(body: Mapping[str, Any], headers: Mapping[str, str]) -> Optional[TelegramUser]:
    init_data = body.get("initDataUnsafe")
    if not isinstance(init_data, dict):
        return None
    return _to_user(init_data.get("user"))


STRATEGIES: list[Strategy] = [
    from_body_user,
    from_id_header,
    from_json_header,
    from_init_data_unsafe,
]


def resolve_telegram_user(
    body: Mapping[str, Any], headers: Mapping[str, str]
) -> Optional[TelegramUser]:
    for strategy in STRATEGIES:
        user = strategy(body, headers)
        if user is not None:
            return user
    return None


async def _json_body(request: Request) -> dict:
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


async def optional_telegram_user(request: Request) -> Optional[TelegramUser]:
    body = await _json_body(request)
    return resolve_telegram_user(body, request.headers)


async def require_telegram_user(request: Request) -> TelegramUser:
    user = await optional_telegram_user(request)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Telegram user not provided (expected initDataUnsafe.user)",
        )
    return user
