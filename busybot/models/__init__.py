from busybot.models.conversation import Conversation
from busybot.models.message import Message
from busybot.models.personality_profile import PersonalityProfile
from busybot.models.tenant_settings import TenantSettings

__all__ = [
    "Conversation",
    "Message",
    "PersonalityProfile",
    "TenantSettings",
]
