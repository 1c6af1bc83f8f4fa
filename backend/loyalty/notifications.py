import logging

import requests
from django.conf import settings

from .models import WhatsAppSettings

logger = logging.getLogger(__name__)


def send_whatsapp_message(message: str) -> bool:
    """Post a message to the configured WhatsApp gateway.

    Returns True when the gateway accepted the request. Gateway errors are
    logged and swallowed so they never fail the caller.
    """
    wa_settings = WhatsAppSettings.get_solo()
    if not wa_settings.is_active or not wa_settings.webhook_url or not wa_settings.recipient_id:
        logger.debug("WhatsApp notifications disabled, skipping message")
        return False

    try:
        response = requests.post(
            wa_settings.webhook_url,
            headers={"Authorization": settings.FONNTE_TOKEN},
            data={"target": wa_settings.recipient_id, "message": message},
            timeout=settings.WHATSAPP_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
    except requests.RequestException:
        logger.error("Failed to send WhatsApp notification", exc_info=True)
        return False
    return True


def notify_redemption_created(redemption) -> bool:
    message = (
        "Penukaran hadiah baru\n"
        f"Mitra: {redemption.user_name} ({redemption.partner_id or '-'})\n"
        f"Hadiah: {redemption.reward_name}\n"
        f"Poin: {redemption.points_spent}"
    )
    return send_whatsapp_message(message)


def notify_redemption_status(redemption) -> bool:
    message = (
        "Status penukaran hadiah diperbarui\n"
        f"Mitra: {redemption.user_name} ({redemption.partner_id or '-'})\n"
        f"Hadiah: {redemption.reward_name}\n"
        f"Status: {redemption.status}"
    )
    if redemption.status_note:
        message += f"\nCatatan: {redemption.status_note}"
    return send_whatsapp_message(message)
