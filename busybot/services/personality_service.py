"""Layered personality: manual traits, global learned style and per-contact style."""

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from busybot.logging_config import get_logger
from busybot.models import PersonalityProfile

logger = get_logger("personality_service")

DEFAULT_TONE = "casual"
DEFAULT_AVG_LENGTH = 15
DEFAULT_FORMALITY = 50
DEFAULT_RESPONSE_DELAY_MS = 2000

# Older profiles were written with these key names.
LEGACY_KEYS = {
    "emoji_favorites": "favorite_emojis",
    "code_switching_pattern": "code_switching",
}


def contact_key(name: Optional[str]) -> str:
    """Name-derived key used by older per-contact entries: lower case, underscores for spaces."""
    return re.sub(r"\s+", "_", (name or "").strip().casefold())


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item not in (None, "")]


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class ContactStyle:
    contact_id: str = ""
    contact_name: str = ""
    contact_key: str = ""
    tone: str = ""
    language: str = ""
    emoji_usage: str = ""
    sample_replies: list[str] = field(default_factory=list)
    relationship_hint: str = ""
    unique_patterns: str = ""
    messages_analyzed: int = 0

    @classmethod
    def from_dict(cls, data: dict, contact_id: str = "") -> "ContactStyle":
        name = _text(data.get("contact_name"))
        return cls(
            contact_id=_text(data.get("contact_id")) or contact_id,
            contact_name=name,
            contact_key=_text(data.get("contact_key")) or contact_key(name),
            tone=_text(data.get("tone")),
            language=_text(data.get("language")),
            emoji_usage=_text(data.get("emoji_usage")),
            sample_replies=_str_list(data.get("sample_replies")),
            relationship_hint=_text(data.get("relationship_hint")),
            unique_patterns=_text(data.get("unique_patterns")),
            messages_analyzed=_int(data.get("messages_analyzed")),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class LearnedStyle:
    greetings: list[str] = field(default_factory=list)
    affirmatives: list[str] = field(default_factory=list)
    negatives: list[str] = field(default_factory=list)
    fillers: list[str] = field(default_factory=list)
    closings: list[str] = field(default_factory=list)
    favorite_emojis: list[str] = field(default_factory=list)
    signature_phrases: list[str] = field(default_factory=list)
    detected_languages: list[str] = field(default_factory=list)
    primary_language: str = ""
    language_mix: str = ""
    code_switching: str = ""
    tone_summary: str = ""
    abbreviation_style: str = ""
    avg_word_count: int = 0
    per_contact: dict[str, ContactStyle] = field(default_factory=dict)
    contacts_analyzed: int = 0
    is_fallback: bool = False
    fallback_reason: Optional[str] = None

    LIST_FIELDS = (
        "greetings",
        "affirmatives",
        "negatives",
        "fillers",
        "closings",
        "favorite_emojis",
        "signature_phrases",
        "detected_languages",
    )
    TEXT_FIELDS = ("primary_language", "language_mix", "code_switching", "tone_summary", "abbreviation_style")

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "LearnedStyle":
        """Tolerant parse: missing or wrongly typed fields become empty, never invented."""
        data = dict(data or {})
        for legacy, current in LEGACY_KEYS.items():
            if legacy in data and current not in data:
                data[current] = data[legacy]

        style = cls()
        for name in cls.LIST_FIELDS:
            setattr(style, name, _str_list(data.get(name)))
        for name in cls.TEXT_FIELDS:
            setattr(style, name, _text(data.get(name)))
        style.avg_word_count = _int(data.get("avg_word_count"))

        per_contact = data.get("per_contact")
        if isinstance(per_contact, dict):
            style.per_contact = {
                str(key): ContactStyle.from_dict(value, contact_id=str(key))
                for key, value in per_contact.items()
                if isinstance(value, dict)
            }
        style.contacts_analyzed = _int(data.get("contacts_analyzed"), len(style.per_contact))
        style.is_fallback = bool(data.get("is_fallback", False))
        style.fallback_reason = data.get("fallback_reason")
        return style

    def to_dict(self) -> dict:
        data = {name: list(getattr(self, name)) for name in self.LIST_FIELDS}
        data.update({name: getattr(self, name) for name in self.TEXT_FIELDS})
        data["avg_word_count"] = self.avg_word_count
        data["per_contact"] = {key: value.to_dict() for key, value in self.per_contact.items()}
        data["contacts_analyzed"] = len(self.per_contact)
        if self.is_fallback:
            data["is_fallback"] = True
            data["fallback_reason"] = self.fallback_reason
        return data

    def find_contact(self, conversation_id: Optional[Any], contact_name: Optional[str]) -> Optional[ContactStyle]:
        """Look up per-contact style by conversation id, then name key, then a unique substring match."""
        if not self.per_contact:
            return None

        if conversation_id is not None:
            entry = self.per_contact.get(str(conversation_id))
            if entry is not None:
                return entry

        key = contact_key(contact_name)
        if not key:
            return None

        for entry_key, entry in self.per_contact.items():
            if entry_key == key or entry.contact_key == key:
                return entry

        matches = [
            entry
            for entry in self.per_contact.values()
            if entry.contact_key and (key in entry.contact_key or entry.contact_key in key)
        ]
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            logger.info(f"Ambiguous per-contact match for '{contact_name}', ignoring {len(matches)} candidates")
        return None


@dataclass
class PersonalityModel:
    tone: str = DEFAULT_TONE
    avg_length: int = DEFAULT_AVG_LENGTH
    emoji_usage: bool = True
    formality: int = DEFAULT_FORMALITY
    common_phrases: list[str] = field(default_factory=list)
    response_delay_ms: int = DEFAULT_RESPONSE_DELAY_MS
    learned: LearnedStyle = field(default_factory=LearnedStyle)

    @classmethod
    def from_profile(cls, profile: Optional[PersonalityProfile]) -> "PersonalityModel":
        if profile is None:
            return cls()
        return cls(
            tone=profile.tone or DEFAULT_TONE,
            avg_length=profile.avg_length or DEFAULT_AVG_LENGTH,
            emoji_usage=profile.emoji_usage is not False,
            formality=DEFAULT_FORMALITY if profile.formality is None else max(0, min(100, profile.formality)),
            common_phrases=_str_list(profile.common_phrases),
            response_delay_ms=(
                DEFAULT_RESPONSE_DELAY_MS if profile.response_delay_ms is None else profile.response_delay_ms
            ),
            learned=LearnedStyle.from_dict(profile.learned_style),
        )

    def context_block(self, contact_style: Optional[ContactStyle] = None, contact_label: str = "this person") -> str:
        """Personality section of the reply prompt."""
        learned = self.learned
        lines = [
            "YOUR PERSONALITY:",
            f"- Base tone: {self.tone}",
            f"- Formality: {self.formality}% (0% = very casual, 100% = very formal)",
            f"- Usual message length: about {self.avg_length} words",
            "- Emojis: " + ("use them the way you normally do" if self.emoji_usage else "hardly ever"),
        ]
        if self.common_phrases:
            lines.append(f"- Phrases you often use: {', '.join(self.common_phrases)}")

        learned_lines = (
            ("Greetings you use", ", ".join(learned.greetings)),
            ("Saying yes", ", ".join(learned.affirmatives)),
            ("Saying no", ", ".join(learned.negatives)),
            ("Filler words", ", ".join(learned.fillers)),
            ("Ending a chat", ", ".join(learned.closings)),
            ("Favourite emojis", " ".join(learned.favorite_emojis)),
            ("Signature phrases", ", ".join(learned.signature_phrases)),
            ("Languages you write in", ", ".join(learned.detected_languages)),
            ("Primary language", learned.primary_language),
            ("Language mix", learned.language_mix),
            ("Code-switching", learned.code_switching),
            ("Overall tone", learned.tone_summary),
            ("Abbreviations", learned.abbreviation_style),
        )
        lines.extend(f"- {label}: {value}" for label, value in learned_lines if value)

        if contact_style is not None:
            lines.append("")
            lines.append(f"HOW YOU TALK TO {contact_label}:")
            if contact_style.tone:
                lines.append(f"- Tone with them: {contact_style.tone}")
            if contact_style.relationship_hint:
                lines.append(f"- They are your: {contact_style.relationship_hint}")
            if contact_style.language:
                lines.append(f"- Language with them: {contact_style.language}")
            if contact_style.emoji_usage:
                lines.append(f"- Emoji use with them: {contact_style.emoji_usage}")
            if contact_style.sample_replies:
                samples = "; ".join(f'"{reply}"' for reply in contact_style.sample_replies)
                lines.append(f"- Things you have replied to them: {samples}")
            if contact_style.unique_patterns:
                lines.append(f"- Specific to them: {contact_style.unique_patterns}")

        return "\n".join(lines)


def get_personality_profile(db: Session, tenant_id: UUID) -> Optional[PersonalityProfile]:
    return db.query(PersonalityProfile).filter(PersonalityProfile.tenant_id == tenant_id).first()


def load_personality(db: Session, tenant_id: UUID) -> PersonalityModel:
    return PersonalityModel.from_profile(get_personality_profile(db, tenant_id))


def replace_learned_style(
    db: Session,
    tenant_id: UUID,
    learned_style: dict,
    training_message_count: int,
    avg_length: Optional[int] = None,
) -> PersonalityProfile:
    """Create or update the profile, replacing learned_style wholesale."""
    now = datetime.now(timezone.utc)
    profile = get_personality_profile(db, tenant_id)
    if profile is None:
        profile = PersonalityProfile(tenant_id=tenant_id, created_at=now)
        db.add(profile)

    profile.learned_style = learned_style
    profile.last_trained_at = now
    profile.training_message_count = training_message_count
    if avg_length:
        profile.avg_length = avg_length
    profile.updated_at = now
    db.flush()
    return profile
