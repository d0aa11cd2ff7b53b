from fastapi import APIRouter, Depends

from busybot.database import get_session_factory
from busybot.logging_config import get_logger
from busybot.schemas.webhook import EvolutionWebhookEvent, WebhookResponse
from busybot.services.fanout_service import dispatch_event, parse_gateway_event, summarize_event

logger = get_logger("webhook")

router = APIRouter()


@router.post("/webhook", response_model=WebhookResponse)
def handle_webhook(payload: EvolutionWebhookEvent, session_factory=Depends(get_session_factory)):
    """Inbound Evolution API event. Every bound tenant is processed; one failing does not fail the rest."""
    parsed = parse_gateway_event(payload)
    if parsed.event is None:
        logger.debug(f"Webhook {parsed.status}: {parsed.reason}", extra={"context": {"event": payload.event}})
        return WebhookResponse(status=parsed.status, reason=parsed.reason, event=payload.event)

    results = dispatch_event(parsed.event, session_factory=session_factory)
    return WebhookResponse(status="ok", event=payload.event, results=results, **summarize_event(parsed.event))
