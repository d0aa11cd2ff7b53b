from sqlalchemy import Boolean, Column, DateTime, Text, Uuid

from busybot.database import Base


class TenantSettings(Base):
    __tablename__ = "tenant_settings"

    tenant_id = Column(Uuid, primary_key=True)
    auto_reply_enabled = Column(Boolean, nullable=False, default=False)  # "busy mode"
    emergency_notify = Column(Boolean, nullable=False, default=True)
    auto_reply_text = Column(Text)
    llm_api_key = Column(Text)
    llm_provider = Column(Text, nullable=False, default="gemini")  # gemini, openai
    gateway_instance = Column(Text, index=True)
    updated_at = Column(DateTime(timezone=True))
