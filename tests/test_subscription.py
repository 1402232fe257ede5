from datetime import datetime, timedelta, timezone

from tgquiz.models import User


def _add_user(session, telegram_id, status, expires_at):
    session.add(User(
        telegram_id=telegram_id,
        subscription_status=status,
        subscription_expires_at=expires_at,
    ))
    session.commit()


def test_subscription_requires_user(client):
    assert client.get("/api/subscription/me").status_code == 401


def test_non_ascii_encoded_header_is_unauthorized(client):
    headers = {"x-telegram-user": b"\xe9\xe9", "x-telegram-user-encoded": b"base64"}
    assert client.get("/api/subscription/me", headers=headers).status_code == 401


def test_unknown_user_is_inactive(client):
    res = client.get("/api/subscription/me", headers={"x-telegram-user-id": "31"})
    assert res.status_code == 200
    assert res.json() == {
        "telegramId": 31,
        "subscriptionStatus": "inactive",
        "subscriptionExpiresAt": None,
        "active": False,
    }


def test_active_subscription(client, session):
    _add_user(session, 31, "active", datetime.now(timezone.utc) + timedelta(days=3))
    body = client.get("/api/subscription/me", headers={"x-telegram-user-id": "31"}).json()
    assert body["subscriptionStatus"] == "active"
    assert body["subscriptionExpiresAt"] is not None
    assert body["active"] is True


def test_expired_subscription(client, session):
    _add_user(session, 31, "active", datetime.now(timezone.utc) - timedelta(minutes=1))
    body = client.get("/api/subscription/me", headers={"x-telegram-user-id": "31"}).json()
    assert body["subscriptionStatus"] == "active"
    assert body["active"] is False


def test_inactive_status_with_future_expiry(client, session):
    _add_user(session, 31, "inactive", datetime.now(timezone.utc) + timedelta(days=3))
    body = client.get("/api/subscription/me", headers={"x-telegram-user-id": "31"}).json()
    assert body["active"] is False


def test_active_status_without_expiry(client, session):
    _add_user(session, 31, "active", None)
    body = client.get("/api/subscription/me", headers={"x-telegram-user-id": "31"}).json()
    assert body["active"] is False
