from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from busybot.models import Message
from busybot.services.conversation_service import as_utc

SENDER_CONTACT = "contact"
SENDER_TENANT = "tenant"
SENDER_BOT = "bot"

MEDIA_PLACEHOLDER = "[media message]"

MIN_TICK = timedelta(microseconds=1)


def _next_created_at(db: Session, conversation_id: UUID, now: datetime) -> datetime:
    """Keep created_at strictly increasing within a conversation."""
    last = db.query(func.max(Message.created_at)).filter(Message.conversation_id == conversation_id).scalar()
    last = as_utc(last)
    if last is not None and now <= last:
        return last + MIN_TICK
    return now


def save_message(
    db: Session,
    conversation_id: UUID,
    tenant_id: UUID,
    sender: str,
    content: str,
    message_type: str = "text",
    urgency: str = "normal",
    is_auto_reply: bool = False,
    external_id: Optional[str] = None,
) -> Message:
    """Save message to database."""
    message = Message(
        conversation_id=conversation_id,
        tenant_id=tenant_id,
        sender=sender,
        content=content,
        message_type=message_type,
        urgency=urgency,
        is_auto_reply=is_auto_reply,
        external_id=external_id,
        created_at=_next_created_at(db, conversation_id, datetime.now(timezone.utc)),
    )
    db.add(message)
    db.flush()
    return message


def get_recent_messages(
    db: Session,
    conversation_id: UUID,
    limit: int,
    exclude_id: Optional[UUID] = None,
) -> list[Message]:
    """Last ``limit`` messages of a conversation, oldest first."""
    query = db.query(Message).filter(Message.conversation_id == conversation_id)
    if exclude_id is not None:
        query = query.filter(Message.id != exclude_id)
    rows = query.order_by(Message.created_at.desc()).limit(limit).all()
    return list(reversed(rows))


def get_conversation_history(db: Session, conversation_id: UUID, limit: int = 100) -> list[Message]:
    """First ``limit`` messages of a conversation, oldest first."""
    return (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.asc())
        .limit(limit)
        .all()
    )


def count_tenant_messages(db: Session, tenant_id: UUID) -> int:
    return (
        db.query(func.count(Message.id))
        .filter(Message.tenant_id == tenant_id, Message.sender == SENDER_TENANT)
        .scalar()
        or 0
    )


def get_tenant_text_messages(db: Session, tenant_id: UUID, limit: int) -> list[Message]:
    """Most recent tenant-authored messages with usable text (captions included), newest first."""
    rows = (
        db.query(Message)
        .filter(
            Message.tenant_id == tenant_id,
            Message.sender == SENDER_TENANT,
            Message.content != MEDIA_PLACEHOLDER,
        )
        .order_by(Message.created_at.desc())
        .limit(limit)
        .all()
    )
    return [row for row in rows if row.content and row.content.strip()]
