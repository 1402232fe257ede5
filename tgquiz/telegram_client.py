from typing import Optional, Union
import httpx
from fastapi import Depends
from tgquiz.config import Settings, get_settings


class TelegramError(Exception):
    """Raised when the Bot API does not acknowledge a call."""


class TelegramClient:
    def __init__(
        self,
        token: str,
        base_url: str = "https://api.telegram.org",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def call(self, method: str, payload: dict) -> dict:
        url = f"{self.base_url}/bot{self.token}/{method}"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(url, json=payload)
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not response.is_success or not data.get("ok"):
            raise TelegramError(
                data.get("description") or f"HTTP {response.status_code}: {response.text[:200]}"
            )
        return data.get("result") or {}

    async def send_message(
        self, chat_id: Union[int, str], text: str, parse_mode: str = "HTML"
    ) -> dict:
        return await self.call(
            "sendMessage", {"chat_id": chat_id, "text": text, "parse_mode": parse_mode}
        )


def get_telegram_client(
    settings: Settings = Depends(get_settings),
) -> Optional[TelegramClient]:
    """Bot API client, or None when no bot token is configured."""
    if not settings.telegram_bot_token:
        return None
    return TelegramClient(settings.telegram_bot_token, base_url=settings.telegram_api_url)
