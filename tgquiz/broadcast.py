import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable
from tgquiz.log import get_logger
from tgquiz.telegram_client import TelegramClient

log = get_logger(__name__)

BROADCAST_DELAY_SECONDS = 0.1


@dataclass
class BroadcastReport:
    total: int = 0
    sent: int = 0
    failed: int = 0
    failures: list[dict] = field(default_factory=list)

    def as_response(self) -> dict:
        body = {"ok": True, "sent": self.sent, "failed": self.failed, "total": self.total}
        if self.failures:
            body["failedUsers"] = self.failures
        return body


async def broadcast(
    client: TelegramClient,
    recipients: Iterable[int],
    text: str,
    delay: float = BROADCAST_DELAY_SECONDS,
) -> BroadcastReport:
    """Send ``text`` to every recipient one at a time.

    A single worker drains the queue so sends keep their order and the
    fixed pause between them. A failed send is recorded and the loop moves
    on; nothing is retried.
    """
    queue = deque(recipients)
    report = BroadcastReport(total=len(queue))

    while queue:
        telegram_id = queue.popleft()
        try:
            await client.send_message(telegram_id, text)
            report.sent += 1
        except Exception as e:
            report.failed += 1
            report.failures.append({"telegramId": telegram_id, "error": str(e) or "Network error"})
            log.warning("Broadcast to %s failed: %s", telegram_id, e)

        if queue and delay > 0:
            await asyncio.sleep(delay)

    log.info(
        "Broadcast finished: %d sent, %d failed of %d", report.sent, report.failed, report.total
    )
    return report
