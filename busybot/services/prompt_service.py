from typing import Any, Iterable, Optional

from busybot.services.classifier_service import ClassificationResult, Intent, Sentiment
from busybot.services.personality_service import ContactStyle, PersonalityModel
from busybot.services.relationship_service import Relationship

RELATIONSHIP_GUIDANCE = {
    Relationship.FAMILY: "Family member. Warm and caring, short is fine but never cold.",
    Relationship.CLOSE_PERSONAL: "Someone very close to you. Affectionate and genuine.",
    Relationship.FRIEND: "A friend. Relaxed and playful, slang is fine.",
    Relationship.PROFESSIONAL: "A work contact. A little more polished, light on slang, still human.",
    Relationship.ACQUAINTANCE: "An acquaintance. Friendly and polite without being stiff.",
    Relationship.UNKNOWN: "Relationship unclear. Mirror their tone.",
}

INTENT_GUIDANCE = {
    Intent.GREETING: "They are saying hi. Greet them back your usual way and mention you are tied up.",
    Intent.QUESTION: "They asked something. Reference the question briefly and say you will answer properly later.",
    Intent.REQUEST: "They need something from you. Acknowledge it and say you will sort it out soon.",
    Intent.FOLLOW_UP: "They are checking whether you saw their messages. Reassure them you are busy, not ignoring them.",
    Intent.EMOTIONAL: "They are sharing something personal. Respond to their feelings first, then say you will talk soon.",
    Intent.STATEMENT: "General message. Reply briefly and naturally, hinting that you are occupied.",
    Intent.FAREWELL: "They are signing off. Say bye your way.",
}

SENTIMENT_GUIDANCE = {
    Sentiment.HAPPY: "They sound happy. Match some of that energy.",
    Sentiment.SAD: "They sound down. Be extra gentle and caring.",
    Sentiment.ANGRY: "They sound upset. Stay calm and acknowledge the frustration.",
    Sentiment.URGENT: "It feels urgent to them. Take it seriously.",
    Sentiment.NEUTRAL: "Neutral mood. Reply naturally.",
}

LANGUAGE_GUIDANCE = (
    "Reply in the language of their message. Tanglish or Tamil: Tamil-English mix in Roman script. "
    "Hinglish or Hindi: Hindi-English mix in Roman script. Mixed: follow their mix. English: plain English."
)

REPLY_RULES = (
    "You are this person. Copy their slang, abbreviations and language exactly.",
    "You are busy right now. Let that come through naturally, not as a template.",
    "Never send a stock line like 'I am busy, will get back to you soon'.",
    "No corporate phrasing such as 'at my earliest convenience'.",
    "One to three short sentences, like a quick chat message.",
    "If they are upset or emotional, acknowledge that before anything else.",
    "If they asked something specific, mention what they asked.",
    "Use the conversation history for context.",
    "Never say or hint that you are an AI.",
)

FIRST_MESSAGE_PLACEHOLDER = "(No earlier messages with this contact)"


def _field(message: Any, name: str) -> Any:
    if isinstance(message, dict):
        return message.get(name)
    return getattr(message, name, None)


def format_history(history: Iterable[Any], contact_label: str) -> str:
    """Render chronological history as ``Speaker: text`` lines."""
    lines = []
    for message in history:
        speaker = contact_label if _field(message, "sender") == "contact" else "You"
        lines.append(f"{speaker}: {_field(message, 'content')}")
    return "\n".join(lines) or FIRST_MESSAGE_PLACEHOLDER


def build_reply_prompt(
    incoming_text: str,
    classification: ClassificationResult,
    relationship: Relationship,
    personality: PersonalityModel,
    history: Iterable[Any],
    contact_name: Optional[str] = None,
    contact_style: Optional[ContactStyle] = None,
) -> str:
    """Assemble the reply prompt from personality layers, guidance tables and history."""
    contact_label = contact_name or "Contact"
    rules = "\n".join(f"{index}. {rule}" for index, rule in enumerate(REPLY_RULES, start=1))

    sections = [
        "You are a real person replying on WhatsApp. Write exactly like them.",
        personality.context_block(contact_style, contact_label=contact_name or "this person"),
        f"RELATIONSHIP: {RELATIONSHIP_GUIDANCE.get(relationship, RELATIONSHIP_GUIDANCE[Relationship.UNKNOWN])}",
        f"THEIR LANGUAGE: {classification.detected_language}\n{LANGUAGE_GUIDANCE}",
        "ABOUT THEIR MESSAGE:\n"
        f"- Intent: {classification.intent.value}. "
        f"{INTENT_GUIDANCE.get(classification.intent, INTENT_GUIDANCE[Intent.STATEMENT])}\n"
        f"- Mood: {classification.sentiment.value}. "
        f"{SENTIMENT_GUIDANCE.get(classification.sentiment, SENTIMENT_GUIDANCE[Sentiment.NEUTRAL])}",
        f"RULES:\n{rules}",
        f"CHAT SO FAR WITH {contact_label}:\n{format_history(history, contact_label)}",
        f'NEW MESSAGE FROM {contact_label}: "{incoming_text}"',
        "Your reply (text only):",
    ]
    return "\n\n".join(sections)
