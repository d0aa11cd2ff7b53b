import uuid

from sqlalchemy import Column, DateTime, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from busybot.database import Base


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (UniqueConstraint("tenant_id", "contact_number", name="uq_conversations_tenant_contact"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False, index=True)
    contact_number = Column(Text, nullable=False)
    contact_name = Column(Text)
    unread_count = Column(Integer, nullable=False, default=0)
    last_message_at = Column(DateTime(timezone=True))
    last_auto_reply_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False)

    messages = relationship("Message", back_populates="conversation")
