from typing import Optional
from fastapi import APIRouter, Depends
from tgquiz.config import Settings, get_settings
from tgquiz.log import get_logger
from tgquiz.schemas import PaymentNotification
from tgquiz.telegram_client import TelegramClient, get_telegram_client

log = get_logger(__name__)
router = APIRouter(prefix="/api/notify", tags=["notify"])

PAYMENT_TEMPLATE = """
💰 <b>New payment request!</b>
---------------------------
💵 <b>Amount:</b> {amount}
📦 <b>Tariff:</b> {tariff}
💳 <b>Card details:</b> <code>{user_info}</code>
👤 <b>User ID:</b> <code>{user_id}</code>
---------------------------
"""


def format_payment_message(data: PaymentNotification) -> str:
    return PAYMENT_TEMPLATE.format(
        amount=data.amount,
        tariff=data.tariff_name or "Not specified",
        user_info=data.user_info or "Not specified",
        user_id=data.user_id or "Not specified",
    )


@router.get("/test")
def notify_test(settings: Settings = Depends(get_settings)):
    return {
        "success": True,
        "message": "Notify router is working",
        "hasBotToken": bool(settings.telegram_bot_token),
        "hasAdminId": bool(settings.telegram_admin_id),
    }


@router.post("/payment")
async def notify_payment(
    data: PaymentNotification,
    settings: Settings = Depends(get_settings),
    client: Optional[TelegramClient] = Depends(get_telegram_client),
):
    """Forward a payment request to the admin chat.

    Always answers 200 so a delivery problem never breaks the client's
    purchase flow.
    """
    log.info(
        "Payment notification: amount=%s tariff=%s user=%s",
        data.amount, data.tariff_name, data.user_id,
    )
    if client is None or not settings.telegram_admin_id:
        log.warning(
            "Skipping payment notification, bot token %s, admin chat %s",
            "set" if client else "missing",
            "set" if settings.telegram_admin_id else "missing",
        )
        return {"success": True, "skipped": True, "reason": "Missing environment variables"}

    try:
        await client.send_message(settings.telegram_admin_id, format_payment_message(data))
    except Exception as e:
        log.error("Payment notification failed: %s", e)
        return {"success": False, "error": str(e)}

    log.info("Payment notification delivered")
    return {"success": True}
