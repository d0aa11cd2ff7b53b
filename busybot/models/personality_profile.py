from sqlalchemy import Boolean, Column, DateTime, Integer, Text, Uuid

from busybot.database import Base
from busybot.models.types import JSONType


class PersonalityProfile(Base):
    __tablename__ = "personality_profiles"

    tenant_id = Column(Uuid, primary_key=True)

    # Manually configured traits
    tone = Column(Text, nullable=False, default="casual")
    avg_length = Column(Integer, nullable=False, default=15)
    emoji_usage = Column(Boolean, nullable=False, default=True)
    formality = Column(Integer, nullable=False, default=50)  # 0 = max casual, 100 = max formal
    common_phrases = Column(JSONType, nullable=False, default=list)
    response_delay_ms = Column(Integer, nullable=False, default=2000)

    # Replaced wholesale by each training run
    learned_style = Column(JSONType, nullable=False, default=dict)
    last_trained_at = Column(DateTime(timezone=True))
    training_message_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))
