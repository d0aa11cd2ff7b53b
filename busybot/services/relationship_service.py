import re
from enum import Enum
from typing import Any, Iterable, Optional


class Relationship(str, Enum):
    FAMILY = "family"
    PROFESSIONAL = "professional"
    CLOSE_PERSONAL = "close_personal"
    FRIEND = "friend"
    ACQUAINTANCE = "acquaintance"
    UNKNOWN = "unknown"


# Tunable policy, not learned.
MIN_TENANT_MESSAGES = 3
AFFECTION_THRESHOLD = 2
FORMAL_MARGIN = 2
CASUAL_MARGIN = 1

FAMILY_NAME_PATTERN = re.compile(
    r"\b(?:mom|mum|mama|amma|dad|papa|baba|sis|bro|brother|sister|bhai|didi|bhaiya|appa|aththai|chitthi|"
    r"chitappa|periappa|periamma|thatha|paatti|anna|akka|thambi|thangai|maama|maami|chachi|chacha|tai|masi|"
    r"nani|dada|dadi|athai|maman)\b"
)
PROFESSIONAL_NAME_PATTERN = re.compile(
    r"\b(?:sir|ma'am|prof|boss|manager|dr|doctor|teacher|principal|hod|madam)\b"
)

FORMAL_MARKERS = re.compile(
    r"\b(?:sir|ma'am|please|kindly|regards|thank you|noted|will do|madam|respected|acknowledge)\b"
)
CASUAL_MARKERS = re.compile(
    r"\b(?:bro|dude|yaar|bhai|lol|haha|bruh|omg|wtf|lmao|oye|da|di|dei|machi|machan|nanba|thala|thambi|anna|"
    r"pa|vaa|po|semma|mass|vera\s?level|scene|seri|okda|hmda|machaa)\b"
)
AFFECTION_MARKERS = re.compile(r"\b(?:love|miss|baby|jaan|darling|sweetheart|kannu|chellam|kutty|bangaram|ra|raa|pyaar|kaadhal)\b")
AFFECTION_GLYPHS = ("❤️", "😘", "🥰")


def _field(message: Any, name: str) -> Any:
    if isinstance(message, dict):
        return message.get(name)
    return getattr(message, name, None)


def _tenant_texts(history: Iterable[Any]) -> list[str]:
    texts = []
    for message in history:
        if _field(message, "sender") != "tenant":
            continue
        content = _field(message, "content")
        if content:
            texts.append(str(content).casefold())
    return texts


def count_markers(text: str) -> tuple[int, int, int]:
    """Return (formal, casual, affection) marker counts for a block of text."""
    formal = len(FORMAL_MARKERS.findall(text))
    casual = len(CASUAL_MARKERS.findall(text))
    affection = len(AFFECTION_MARKERS.findall(text)) + sum(text.count(glyph) for glyph in AFFECTION_GLYPHS)
    return formal, casual, affection


def infer_relationship(contact_name: Optional[str], history: Iterable[Any]) -> Relationship:
    """Guess the relationship to a contact from their display name and the tenant's own messages.

    ``history`` items are Message rows or dicts with ``sender`` and ``content``.
    """
    name = (contact_name or "").casefold()
    if name:
        if FAMILY_NAME_PATTERN.search(name):
            return Relationship.FAMILY
        if PROFESSIONAL_NAME_PATTERN.search(name):
            return Relationship.PROFESSIONAL

    texts = _tenant_texts(history)
    if len(texts) < MIN_TENANT_MESSAGES:
        return Relationship.UNKNOWN

    formal, casual, affection = count_markers(" ".join(texts))

    if affection > AFFECTION_THRESHOLD:
        return Relationship.CLOSE_PERSONAL
    if formal > casual + FORMAL_MARGIN:
        return Relationship.PROFESSIONAL
    if casual > formal + CASUAL_MARGIN:
        return Relationship.FRIEND
    return Relationship.ACQUAINTANCE
