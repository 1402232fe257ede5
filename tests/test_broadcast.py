import asyncio
import json

import httpx
import pytest
from sqlmodel import Session

from tgquiz import broadcast as broadcast_module
from tgquiz.broadcast import broadcast
from tgquiz.database import engine, get_session
from tgquiz.main import app
from tgquiz.models import User
from tgquiz.telegram_client import TelegramClient, TelegramError, get_telegram_client
from conftest import MAIN_ADMIN_ID, FakeTelegramClient, as_user


def _seed_users(session, ids):
    session.add_all([User(telegram_id=telegram_id) for telegram_id in ids])
    session.commit()


def test_broadcast_sends_to_everyone_in_order():
    client = FakeTelegramClient()
    report = asyncio.run(broadcast(client, [3, 1, 2], "hello", delay=0))
    assert (report.sent, report.failed, report.total) == (3, 0, 3)
    assert [chat_id for chat_id, _ in client.sent] == [3, 1, 2]
    assert report.as_response() == {"ok": True, "sent": 3, "failed": 0, "total": 3}


def test_broadcast_continues_after_failures():
    client = FakeTelegramClient(failing={2, 4})
    report = asyncio.run(broadcast(client, [1, 2, 3, 4, 5], "hello", delay=0))
    assert report.sent == 3
    assert report.failed == 2
    assert report.sent + report.failed == report.total == 5
    assert [f["telegramId"] for f in report.failures] == [2, 4]
    assert report.as_response()["failedUsers"][0]["error"] == "Forbidden: bot was blocked by the user"


def test_broadcast_counts_unexpected_exceptions():
    class ExplodingClient:
        async def send_message(self, chat_id, text):
            raise ConnectionError("boom")

    report = asyncio.run(broadcast(ExplodingClient(), [1, 2], "hello", delay=0))
    assert report.failed == 2
    assert report.failures == [
        {"telegramId": 1, "error": "boom"},
        {"telegramId": 2, "error": "boom"},
    ]


def test_broadcast_pauses_only_between_sends(monkeypatch):
    pauses = []

    async def fake_sleep(seconds):
        pauses.append(seconds)

    monkeypatch.setattr(broadcast_module.asyncio, "sleep", fake_sleep)
    asyncio.run(broadcast(FakeTelegramClient(), [1, 2, 3], "hello", delay=0.1))
    assert pauses == [0.1, 0.1]


def test_broadcast_with_no_recipients():
    report = asyncio.run(broadcast(FakeTelegramClient(), [], "hello"))
    assert report.as_response() == {"ok": True, "sent": 0, "failed": 0, "total": 0}


def test_broadcast_route_is_main_admin_only(client, session, telegram):
    from tgquiz.models import AdminEntry

    session.add(AdminEntry(telegram_id=2000, created_by=MAIN_ADMIN_ID))
    session.commit()
    res = client.post("/api/admin/broadcast", headers=as_user(2000), json={"message": "hi"})
    assert res.status_code == 403
    assert telegram.sent == []


def test_broadcast_route_sends_to_all_users(client, session, telegram):
    _seed_users(session, [30, 10, 20])
    res = client.post("/api/admin/broadcast", headers=as_user(MAIN_ADMIN_ID), json={"message": "  news  "})
    assert res.status_code == 200
    assert res.json() == {"ok": True, "sent": 3, "failed": 0, "total": 3}
    assert telegram.sent == [(10, "news"), (20, "news"), (30, "news")]


def test_broadcast_route_reports_failures(client, session, telegram):
    _seed_users(session, [10, 20, 30])
    telegram.failing = {20}
    body = client.post(
        "/api/admin/broadcast", headers=as_user(MAIN_ADMIN_ID), json={"message": "news"}
    ).json()
    assert body["sent"] == 2
    assert body["failed"] == 1
    assert body["total"] == 3
    assert [f["telegramId"] for f in body["failedUsers"]] == [20]


def test_broadcast_route_to_selected_users(client, session, telegram):
    _seed_users(session, [10, 20, 30])
    body = client.post(
        "/api/admin/broadcast",
        headers=as_user(MAIN_ADMIN_ID),
        json={"message": "news", "userIds": [20, "x", -1, "30"]},
    ).json()
    assert body["total"] == 2
    assert [chat_id for chat_id, _ in telegram.sent] == [20, 30]


def test_broadcast_route_releases_session_before_sending(client, session):
    _seed_users(session, [10, 20])
    route_sessions = []
    in_transaction = []

    def tracked_session():
        with Session(engine) as route_session:
            route_sessions.append(route_session)
            yield route_session

    class TransactionCheckingClient(FakeTelegramClient):
        async def send_message(self, chat_id, text, parse_mode="HTML"):
            in_transaction.append(route_sessions[0].in_transaction())
            return await super().send_message(chat_id, text, parse_mode)

    app.dependency_overrides[get_session] = tracked_session
    fake = TransactionCheckingClient()
    app.dependency_overrides[get_telegram_client] = lambda: fake
    res = client.post("/api/admin/broadcast", headers=as_user(MAIN_ADMIN_ID), json={"message": "hi"})
    assert res.json()["sent"] == 2
    assert in_transaction == [False, False]


@pytest.mark.parametrize("message", ["", "   "])
def test_broadcast_route_requires_message(client, telegram, message):
    res = client.post("/api/admin/broadcast", headers=as_user(MAIN_ADMIN_ID), json={"message": message})
    assert res.status_code == 400


def test_broadcast_route_without_bot_token(client, session):
    _seed_users(session, [10])
    res = client.post("/api/admin/broadcast", headers=as_user(MAIN_ADMIN_ID), json={"message": "hi"})
    assert res.status_code == 500
    assert res.json() == {"detail": "Bot token not configured"}


def test_telegram_client_posts_to_bot_api():
    seen = []

    def handler(request):
        seen.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

    client = TelegramClient("TOKEN", transport=httpx.MockTransport(handler))
    result = asyncio.run(client.send_message(42, "hi"))
    assert result == {"message_id": 1}
    assert seen == [("/botTOKEN/sendMessage", {"chat_id": 42, "text": "hi", "parse_mode": "HTML"})]


def test_telegram_client_raises_on_rejection():
    def handler(request):
        return httpx.Response(403, json={"ok": False, "description": "Forbidden: user is deactivated"})

    client = TelegramClient("TOKEN", transport=httpx.MockTransport(handler))
    with pytest.raises(TelegramError, match="deactivated"):
        asyncio.run(client.send_message(42, "hi"))
