import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import relationship

from busybot.database import Base


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
        Index("ix_messages_tenant_sender", "tenant_id", "sender"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid, ForeignKey("conversations.id"), nullable=False)
    tenant_id = Column(Uuid, nullable=False)
    sender = Column(Text, nullable=False)  # contact, tenant, bot
    content = Column(Text, nullable=False)
    message_type = Column(Text, nullable=False, default="text")  # text, image, voice
    urgency = Column(Text, nullable=False, default="normal")  # normal, important, emergency
    is_auto_reply = Column(Boolean, nullable=False, default=False)
    external_id = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False)

    conversation = relationship("Conversation", back_populates="messages")
