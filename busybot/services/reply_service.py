"""Per-tenant handling of one inbound contact message: store, decide, compose, send, record."""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from busybot.config import settings
from busybot.logging_config import bind_logger, get_logger
from busybot.models import Conversation, TenantSettings
from busybot.services import gateway_service
from busybot.services.alert_service import alert_warning
from busybot.services.classifier_service import (
    ClassificationResult,
    Intent,
    Sentiment,
    Urgency,
    classify_message,
    detect_urgency,
    media_classification,
)
from busybot.services.conversation_service import (
    claim_reply_slot,
    confirm_reply_slot,
    get_or_create_conversation,
    release_reply_slot,
    touch_conversation,
)
from busybot.services.llm import LLMError
from busybot.services.llm.client import call_llm
from busybot.services.message_service import (
    MEDIA_PLACEHOLDER,
    SENDER_BOT,
    SENDER_CONTACT,
    get_recent_messages,
    save_message,
)
from busybot.services.personality_service import PersonalityModel, load_personality
from busybot.services.prompt_service import build_reply_prompt
from busybot.services.relationship_service import infer_relationship
from busybot.services.settings_service import get_tenant_settings
from busybot.services.state_machine import ReplyState, SkipReason, transition

logger = get_logger("reply_service")

DEFAULT_FALLBACK_TEXT = "Hey, caught up with something rn. Will text you back soon!"
GREETING_FALLBACK = "Hey! Kinda caught up rn, will text you back soon 👋"
SAD_FALLBACK = "Hey, I see your message. I'll call you back soon, just in something rn ❤️"
QUESTION_SUFFIX = "Will answer that properly when I'm free."
IMPORTANT_SUFFIX = "Noted this seems important, will prioritize it."

REPLY_TEMPERATURE = 0.9
REPLY_MAX_TOKENS = 150

SendFunc = Callable[..., bool]


@dataclass
class InboundMessage:
    """A contact-authored message as parsed from the gateway event."""

    contact_number: str
    text: str
    message_type: str = "text"  # text, image, voice
    contact_name: Optional[str] = None
    external_id: Optional[str] = None
    instance: Optional[str] = None

    @property
    def is_media(self) -> bool:
        return not (self.text or "").strip() or self.text == MEDIA_PLACEHOLDER


@dataclass
class ReplyOutcome:
    tenant_id: UUID
    state: ReplyState
    skip_reason: Optional[SkipReason] = None
    intent: Optional[str] = None
    sentiment: Optional[str] = None
    relationship: Optional[str] = None
    urgency: str = Urgency.NORMAL.value
    conversation_id: Optional[UUID] = None
    inbound_message_id: Optional[UUID] = None
    reply_message_id: Optional[UUID] = None
    reply_text: Optional[str] = None
    used_fallback: bool = False
    llm_error: Optional[dict] = None

    def to_dict(self) -> dict:
        data = {
            "tenant_id": str(self.tenant_id),
            "state": self.state.value,
            "skip_reason": self.skip_reason.value if self.skip_reason else None,
            "intent": self.intent,
            "sentiment": self.sentiment,
            "relationship": self.relationship,
            "urgency": self.urgency,
            "used_fallback": self.used_fallback,
        }
        if self.reply_text:
            data["reply"] = self.reply_text[:80]
        if self.llm_error:
            data["llm_error"] = self.llm_error["kind"]
        return data


def select_fallback_reply(
    classification: ClassificationResult,
    urgency: Urgency,
    fallback_text: Optional[str] = None,
) -> str:
    """Deterministic reply used when there is no credential or the LLM fails. Never empty."""
    fallback = (fallback_text or "").strip() or DEFAULT_FALLBACK_TEXT

    if classification.intent == Intent.GREETING:
        return GREETING_FALLBACK
    if classification.intent == Intent.EMOTIONAL and classification.sentiment == Sentiment.SAD:
        return SAD_FALLBACK
    if classification.intent == Intent.QUESTION:
        return f"{fallback} {QUESTION_SUFFIX}"
    if urgency == Urgency.IMPORTANT:
        return f"{fallback} {IMPORTANT_SUFFIX}"
    return fallback


def _skip_reason(
    inbound: InboundMessage,
    tenant_settings: Optional[TenantSettings],
    classification: ClassificationResult,
    urgency: Urgency,
) -> Optional[SkipReason]:
    """Skip conditions that need no lock, in order. Cooldown is claimed separately."""
    if inbound.is_media:
        return SkipReason.MEDIA
    if tenant_settings is None or not tenant_settings.auto_reply_enabled:
        return SkipReason.DISABLED
    if not classification.needs_reply:
        return SkipReason.NO_REPLY_NEEDED
    if urgency == Urgency.EMERGENCY and tenant_settings.emergency_notify:
        return SkipReason.EMERGENCY
    return None


def _compose_reply(
    db: Session,
    tenant_settings: TenantSettings,
    conversation: Conversation,
    inbound: InboundMessage,
    inbound_message_id: UUID,
    classification: ClassificationResult,
    urgency: Urgency,
    personality: PersonalityModel,
    outcome: ReplyOutcome,
    cancel_event: Optional[threading.Event],
    log,
) -> str:
    history = get_recent_messages(db, conversation.id, settings.history_limit, exclude_id=inbound_message_id)
    relationship = infer_relationship(conversation.contact_name, history)
    outcome.relationship = relationship.value

    if tenant_settings.llm_api_key:
        contact_style = personality.learned.find_contact(conversation.id, conversation.contact_name)
        prompt = build_reply_prompt(
            inbound.text,
            classification,
            relationship,
            personality,
            history,
            contact_name=conversation.contact_name,
            contact_style=contact_style,
        )
        try:
            return call_llm(
                prompt,
                tenant_settings.llm_api_key,
                provider=tenant_settings.llm_provider,
                temperature=REPLY_TEMPERATURE,
                max_tokens=REPLY_MAX_TOKENS,
                cancel_event=cancel_event,
            )
        except LLMError as e:
            outcome.llm_error = e.to_dict()
            log.warning(f"LLM reply failed, using fallback: {e}", context={"kind": e.kind.value})

    outcome.used_fallback = True
    return select_fallback_reply(classification, urgency, tenant_settings.auto_reply_text)


def process_inbound_for_tenant(
    db: Session,
    tenant_id: UUID,
    inbound: InboundMessage,
    cancel_event: Optional[threading.Event] = None,
    send: Optional[SendFunc] = None,
) -> ReplyOutcome:
    """Run the reply state machine for one inbound message and one tenant.

    The inbound message is committed before any reply decision. Persistence errors
    propagate to the caller. LLM failures degrade to a fallback reply.
    """
    send = send or gateway_service.send_text
    log = bind_logger(logger, tenant_id=tenant_id, contact=inbound.contact_number)

    state = ReplyState.RECEIVED
    classification = media_classification() if inbound.is_media else classify_message(inbound.text)
    urgency = Urgency.NORMAL if inbound.is_media else detect_urgency(inbound.text, classification)

    conversation = get_or_create_conversation(db, tenant_id, inbound.contact_number, inbound.contact_name)
    stored = save_message(
        db,
        conversation_id=conversation.id,
        tenant_id=tenant_id,
        sender=SENDER_CONTACT,
        content=inbound.text or MEDIA_PLACEHOLDER,
        message_type=inbound.message_type,
        urgency=urgency.value,
        external_id=inbound.external_id,
    )
    touch_conversation(db, conversation, stored.created_at, increment_unread=True)
    db.commit()
    state = transition(state, ReplyState.STORED)

    outcome = ReplyOutcome(
        tenant_id=tenant_id,
        state=state,
        intent=classification.intent.value,
        sentiment=classification.sentiment.value,
        urgency=urgency.value,
        conversation_id=conversation.id,
        inbound_message_id=stored.id,
    )

    tenant_settings = get_tenant_settings(db, tenant_id)
    reason = _skip_reason(inbound, tenant_settings, classification, urgency)

    previous_claim = conversation.last_auto_reply_at
    claimed_at = datetime.now(timezone.utc)
    if reason is None:
        cooldown = timedelta(minutes=settings.reply_cooldown_minutes)
        if not claim_reply_slot(db, conversation.id, claimed_at, cooldown):
            reason = SkipReason.COOLDOWN
        db.commit()

    if reason is not None:
        outcome.state = transition(state, ReplyState.SKIPPED)
        outcome.skip_reason = reason
        log.info(f"Reply skipped: {reason.value}", context={"intent": outcome.intent})
        return outcome

    state = transition(state, ReplyState.REPLYING)
    try:
        personality = load_personality(db, tenant_id)
        reply_text = _compose_reply(
            db,
            tenant_settings,
            conversation,
            inbound,
            stored.id,
            classification,
            urgency,
            personality,
            outcome,
            cancel_event,
            log,
        )
        sent = send(
            inbound.contact_number,
            reply_text,
            instance=tenant_settings.gateway_instance or inbound.instance,
            delay_ms=personality.response_delay_ms,
        )
    except Exception:
        db.rollback()
        release_reply_slot(db, conversation.id, claimed_at, previous_claim)
        db.commit()
        raise

    outcome.reply_text = reply_text
    if not sent:
        release_reply_slot(db, conversation.id, claimed_at, previous_claim)
        db.commit()
        outcome.state = transition(state, ReplyState.SEND_FAILED)
        log.warning("Gateway send failed, reply not recorded")
        alert_warning(
            "Auto-reply not delivered",
            {"tenant_id": str(tenant_id), "conversation_id": str(conversation.id)},
        )
        return outcome

    reply = save_message(
        db,
        conversation_id=conversation.id,
        tenant_id=tenant_id,
        sender=SENDER_BOT,
        content=reply_text,
        is_auto_reply=True,
    )
    confirm_reply_slot(db, conversation.id, claimed_at, reply.created_at)
    touch_conversation(db, conversation, reply.created_at, increment_unread=False)
    db.commit()

    outcome.reply_message_id = reply.id
    outcome.state = transition(state, ReplyState.SENT)
    log.info(
        f"Reply sent [{outcome.intent}/{outcome.sentiment}/{outcome.relationship}]",
        context={"used_fallback": outcome.used_fallback},
    )
    return outcome
