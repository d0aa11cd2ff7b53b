"""Dispatch one gateway event to every tenant it concerns, isolating failures per tenant."""

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from busybot.config import settings
from busybot.database import get_session_factory
from busybot.logging_config import bind_logger, get_logger
from busybot.schemas.webhook import EvolutionWebhookEvent
from busybot.services.alert_service import alert_error
from busybot.services.classifier_service import Urgency, classify_message, detect_urgency, media_classification
from busybot.services.conversation_service import get_or_create_conversation, touch_conversation
from busybot.services.message_service import MEDIA_PLACEHOLDER, SENDER_TENANT, count_tenant_messages, save_message
from busybot.services.personality_service import get_personality_profile
from busybot.services.reply_service import InboundMessage, process_inbound_for_tenant
from busybot.services.settings_service import get_tenant_settings, resolve_tenant_ids
from busybot.services.training_service import schedule_retrain

logger = get_logger("fanout_service")

UPSERT_EVENT = "messages.upsert"
GROUP_SUFFIX = "@g.us"
USER_SUFFIX = "@s.whatsapp.net"

SessionFactory = Callable[[], Session]


@dataclass
class GatewayEvent:
    instance: Optional[str]
    contact_number: str
    from_me: bool
    text: str
    message_type: str
    contact_name: Optional[str] = None
    external_id: Optional[str] = None

    @property
    def is_media(self) -> bool:
        return self.text == MEDIA_PLACEHOLDER

    def to_inbound(self) -> InboundMessage:
        return InboundMessage(
            contact_number=self.contact_number,
            text=self.text,
            message_type=self.message_type,
            contact_name=self.contact_name,
            external_id=self.external_id,
            instance=self.instance,
        )


@dataclass
class ParseResult:
    event: Optional[GatewayEvent] = None
    status: str = "ok"
    reason: Optional[str] = None


def _is_upsert(event_name: Optional[str]) -> bool:
    return (event_name or "").lower().replace("_", ".") == UPSERT_EVENT


def parse_gateway_event(payload: EvolutionWebhookEvent) -> ParseResult:
    """Turn an Evolution webhook body into a GatewayEvent, or say why it is ignored."""
    if not _is_upsert(payload.event):
        return ParseResult(status="ignored", reason="event")
    data = payload.data
    if data is None:
        return ParseResult(status="ignored", reason="no_data")

    remote_jid = (data.key.remoteJid if data.key else None) or ""
    if remote_jid.endswith(GROUP_SUFFIX):
        return ParseResult(status="skipped", reason="group")
    contact_number = remote_jid.replace(USER_SUFFIX, "").strip()
    if not contact_number:
        return ParseResult(status="skipped", reason="no_number")

    content = data.message
    text = None
    message_type = "text"
    if content is not None:
        text = (
            content.conversation
            or (content.extendedTextMessage.text if content.extendedTextMessage else None)
            or (content.imageMessage.caption if content.imageMessage else None)
            or (content.videoMessage.caption if content.videoMessage else None)
        )
        if content.imageMessage or content.videoMessage:
            message_type = "image"
        elif content.audioMessage:
            message_type = "voice"

    from_me = bool(data.key and data.key.fromMe)
    return ParseResult(
        event=GatewayEvent(
            instance=payload.instance,
            contact_number=contact_number,
            from_me=from_me,
            text=(text or "").strip() or MEDIA_PLACEHOLDER,
            message_type=message_type,
            # pushName is our own name on fromMe events.
            contact_name=None if from_me else (data.pushName or None),
            external_id=data.key.id if data.key else None,
        )
    )


def should_retrain(db: Session, tenant_id: UUID) -> bool:
    """True when enough tenant-authored messages arrived since the last training run."""
    tenant_settings = get_tenant_settings(db, tenant_id)
    if tenant_settings is None or not tenant_settings.llm_api_key:
        return False
    profile = get_personality_profile(db, tenant_id)
    trained_count = profile.training_message_count if profile else 0
    new_messages = count_tenant_messages(db, tenant_id) - (trained_count or 0)
    return new_messages >= settings.retrain_threshold


def record_tenant_message(
    db: Session,
    tenant_id: UUID,
    event: GatewayEvent,
    session_factory: SessionFactory,
) -> dict:
    """Learning mode: store a message the tenant sent from their own device."""
    conversation = get_or_create_conversation(db, tenant_id, event.contact_number)
    message = save_message(
        db,
        conversation_id=conversation.id,
        tenant_id=tenant_id,
        sender=SENDER_TENANT,
        content=event.text,
        message_type=event.message_type,
        external_id=event.external_id,
    )
    touch_conversation(db, conversation, message.created_at, increment_unread=False)
    db.commit()

    result = {"tenant_id": str(tenant_id), "action": "learned", "snippet": event.text[:50]}
    try:
        if should_retrain(db, tenant_id):
            result["retrain_scheduled"] = schedule_retrain(tenant_id, session_factory) is not None
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Auto-retrain check failed for {tenant_id}: {e}")
    return result


def process_event_for_tenant(
    tenant_id: UUID,
    event: GatewayEvent,
    session_factory: SessionFactory,
    cancel_event: Optional[threading.Event] = None,
) -> dict:
    """One tenant's share of the event. Never raises: failures become an ``error`` result."""
    log = bind_logger(logger, tenant_id=tenant_id)
    deadline = threading.Timer(settings.tenant_deadline_seconds, cancel_event.set) if cancel_event else None
    if deadline is not None:
        deadline.daemon = True
        deadline.start()

    db = session_factory()
    try:
        if event.from_me:
            return record_tenant_message(db, tenant_id, event, session_factory)
        outcome = process_inbound_for_tenant(db, tenant_id, event.to_inbound(), cancel_event=cancel_event)
        return outcome.to_dict()
    except Exception as e:
        db.rollback()
        log.exception(f"Tenant processing failed: {e}")
        alert_error("Tenant processing failed", {"tenant_id": str(tenant_id), "error": str(e)[:200]})
        return {"tenant_id": str(tenant_id), "action": "error", "error": str(e)[:200]}
    finally:
        if deadline is not None:
            deadline.cancel()
        db.close()


def dispatch_event(
    event: GatewayEvent,
    session_factory: Optional[SessionFactory] = None,
) -> list[dict]:
    """Resolve tenants for the event and process each one, concurrently when configured."""
    session_factory = session_factory or get_session_factory()

    db = session_factory()
    try:
        tenant_ids = resolve_tenant_ids(db, event.instance, broadcast=settings.fanout_broadcast)
    finally:
        db.close()

    if not tenant_ids:
        logger.warning(f"No tenant bound to instance {event.instance!r}")
        return []

    logger.info(
        f"Dispatching event to {len(tenant_ids)} tenant(s)",
        extra={"context": {"instance": event.instance, "from_me": event.from_me}},
    )

    workers = min(settings.fanout_max_workers, len(tenant_ids))
    if workers <= 1:
        return [process_event_for_tenant(tenant_id, event, session_factory, threading.Event()) for tenant_id in tenant_ids]

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fanout") as pool:
        futures = [
            pool.submit(process_event_for_tenant, tenant_id, event, session_factory, threading.Event())
            for tenant_id in tenant_ids
        ]
        return [future.result() for future in futures]


def summarize_event(event: GatewayEvent) -> dict:
    """Classification fields echoed in the webhook response."""
    if event.from_me:
        return {"from_me": True, "urgency": Urgency.NORMAL.value}
    if event.is_media:
        classification = media_classification()
        urgency = Urgency.NORMAL
    else:
        classification = classify_message(event.text)
        urgency = detect_urgency(event.text, classification)
    return {
        "from_me": False,
        "intent": classification.intent.value,
        "sentiment": classification.sentiment.value,
        "urgency": urgency.value,
    }
