from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from busybot.logging_config import get_logger
from busybot.models import Conversation

logger = get_logger("conversation_service")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_conversation(db: Session, tenant_id: UUID, contact_number: str) -> Optional[Conversation]:
    return (
        db.query(Conversation)
        .filter(Conversation.tenant_id == tenant_id, Conversation.contact_number == contact_number)
        .first()
    )


def get_or_create_conversation(
    db: Session,
    tenant_id: UUID,
    contact_number: str,
    contact_name: Optional[str] = None,
) -> Conversation:
    """Find the (tenant, contact) conversation or create it. Refreshes the display name."""
    conversation = get_conversation(db, tenant_id, contact_number)

    if not conversation:
        savepoint = db.begin_nested()
        try:
            conversation = Conversation(
                tenant_id=tenant_id,
                contact_number=contact_number,
                contact_name=contact_name,
                unread_count=0,
                created_at=datetime.now(timezone.utc),
            )
            db.add(conversation)
            db.flush()
            savepoint.commit()
        except IntegrityError:
            # Another worker created it first.
            savepoint.rollback()
            conversation = get_conversation(db, tenant_id, contact_number)
            if conversation is None:
                raise

    if contact_name and conversation.contact_name != contact_name:
        conversation.contact_name = contact_name
        db.flush()

    return conversation


def touch_conversation(db: Session, conversation: Conversation, at: datetime, increment_unread: bool) -> None:
    """Bump freshness, and the unread counter for contact messages, in a single UPDATE."""
    values = {Conversation.last_message_at: at}
    if increment_unread:
        values[Conversation.unread_count] = Conversation.unread_count + 1
    db.query(Conversation).filter(Conversation.id == conversation.id).update(values, synchronize_session=False)
    db.expire(conversation, ["unread_count", "last_message_at"])


def claim_reply_slot(db: Session, conversation_id: UUID, now: datetime, cooldown: timedelta) -> bool:
    """Atomically claim the right to auto-reply. False when a reply is within the cooldown window.

    Conditional UPDATE, so two concurrent claims for one conversation cannot both win.
    """
    cutoff = now - cooldown
    claimed = (
        db.query(Conversation)
        .filter(
            Conversation.id == conversation_id,
            or_(Conversation.last_auto_reply_at.is_(None), Conversation.last_auto_reply_at <= cutoff),
        )
        .update({Conversation.last_auto_reply_at: now}, synchronize_session=False)
    )
    return claimed == 1


def confirm_reply_slot(db: Session, conversation_id: UUID, claimed_at: datetime, sent_at: datetime) -> None:
    """Move the claim to the persisted reply's timestamp so the next window starts there."""
    db.query(Conversation).filter(
        Conversation.id == conversation_id, Conversation.last_auto_reply_at == claimed_at
    ).update({Conversation.last_auto_reply_at: sent_at}, synchronize_session=False)


def release_reply_slot(
    db: Session,
    conversation_id: UUID,
    claimed_at: datetime,
    previous: Optional[datetime],
) -> None:
    """Give the claim back after a failed send, unless someone else has claimed since."""
    released = (
        db.query(Conversation)
        .filter(Conversation.id == conversation_id, Conversation.last_auto_reply_at == claimed_at)
        .update({Conversation.last_auto_reply_at: previous}, synchronize_session=False)
    )
    if not released:
        logger.info(f"Reply slot for {conversation_id} already re-claimed, not released")
