"""Outbound WhatsApp gateway (Evolution API)."""

from typing import Optional

import httpx

from busybot.config import settings
from busybot.logging_config import get_logger

logger = get_logger("gateway_service")

DEFAULT_DELAY_MS = 2000


def send_text(
    contact_number: str,
    text: str,
    instance: Optional[str] = None,
    delay_ms: int = DEFAULT_DELAY_MS,
) -> bool:
    """Send a text message through the gateway. Non-2xx or transport error returns False."""
    if not text or not contact_number:
        logger.warning(f"send_text: missing contact_number={contact_number!r} or text")
        return False

    instance = instance or settings.evolution_default_instance
    url = f"{settings.evolution_api_url.rstrip('/')}/message/sendText/{instance}"

    try:
        with httpx.Client(timeout=settings.gateway_timeout_seconds) as client:
            response = client.post(
                url,
                headers={"apikey": settings.evolution_api_key, "Content-Type": "application/json"},
                json={"number": contact_number, "text": text, "delay": delay_ms},
            )
    except httpx.HTTPError as e:
        logger.error(f"Gateway send failed: {e}", extra={"context": {"instance": instance}})
        return False

    ok = 200 <= response.status_code < 300
    log = logger.info if ok else logger.warning
    log(
        f"Gateway response: status={response.status_code}",
        extra={"context": {"instance": instance, "body": response.text[:200]}},
    )
    return ok
