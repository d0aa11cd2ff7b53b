"""Style training: learn a tenant's writing style from their own sent messages.

Phase 1 analyses the most recent messages together for a global style. Phase 2
analyses the busiest conversations one by one, including "they said -> you
replied" pairs, for per-contact style. The result replaces ``learned_style``.
"""

import re
import threading
from collections import Counter, defaultdict
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from busybot.config import settings
from busybot.logging_config import get_logger
from busybot.models import Conversation, Message
from busybot.services.alert_service import alert_error
from busybot.services.llm import LLMError, LLMErrorKind
from busybot.services.llm.client import call_llm
from busybot.services.message_service import (
    SENDER_CONTACT,
    SENDER_TENANT,
    count_tenant_messages,
    get_conversation_history,
    get_tenant_text_messages,
)
from busybot.services.personality_service import ContactStyle, LearnedStyle, contact_key, replace_learned_style
from busybot.services.result import Result
from busybot.services.settings_service import get_tenant_settings

logger = get_logger("training_service")

MISSING_CREDENTIAL_MESSAGE = "LLM API key not configured. Add it in Settings first."
INSUFFICIENT_DATA_MESSAGE = (
    "Not enough messages to train. Keep chatting with BusyBot off, it learns from your real messages!"
)
INSUFFICIENT_DATA_TIP = "Send at least 10-20 messages naturally while BusyBot is turned off."
PERSISTENCE_ERROR_MESSAGE = "Failed to save personality data"

GLOBAL_TEMPERATURE = 0.3
GLOBAL_MAX_TOKENS = 1200
CONTACT_TEMPERATURE = 0.3
CONTACT_MAX_TOKENS = 600
HISTORY_FETCH_LIMIT = 100
TOP_EMOJI_COUNT = 5

EMOJI_PATTERN = re.compile("[\U0001F300-\U0001FAFF\u2600-\u27BF]")

GLOBAL_SCHEMA = """{
  "greetings": ["greetings they actually use"],
  "affirmatives": ["how they say yes or okay"],
  "negatives": ["how they say no"],
  "fillers": ["filler words they use"],
  "closings": ["how they end a chat"],
  "favorite_emojis": ["emojis they use most"],
  "avg_word_count": 8,
  "detected_languages": ["languages that appear"],
  "primary_language": "language used most",
  "language_mix": "how languages are mixed, e.g. English with Tamil slang",
  "tone_summary": "short description of tone and energy",
  "signature_phrases": ["phrases they repeat"],
  "abbreviation_style": "how they shorten words, e.g. u for you",
  "code_switching": "when and how they switch language mid-message"
}"""

CONTACT_SCHEMA = """{
  "tone": "how they talk to this person, e.g. playful, formal, affectionate",
  "language": "language used with this person",
  "emoji_usage": "heavy, moderate, rarely or never",
  "sample_replies": ["3 to 5 short replies they would typically send this person"],
  "relationship_hint": "friend, close friend, family, colleague, boss, romantic or acquaintance",
  "unique_patterns": "what is different from their usual style with this person"
}"""


@dataclass
class TrainingReport:
    learned_style: dict
    messages_analyzed: int
    contacts_analyzed: int
    per_contact_summary: list[dict] = field(default_factory=list)
    is_fallback: bool = False
    fallback_reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "status": "trained",
            "messages_analyzed": self.messages_analyzed,
            "contacts_analyzed": self.contacts_analyzed,
            "is_fallback": self.is_fallback,
            "fallback_reason": self.fallback_reason,
            "per_contact_summary": self.per_contact_summary,
            "learned_style": self.learned_style,
        }


@dataclass
class ContactJob:
    conversation_id: UUID
    contact_name: str
    message_count: int
    prompt: str


def build_global_prompt(texts: list[str]) -> str:
    joined = "\n".join(texts)
    return (
        "These WhatsApp messages were all sent by one person. Describe how they write.\n\n"
        f"MESSAGES (newest first):\n{joined}\n\n"
        "Return only a JSON object, no markdown, with exactly these fields:\n"
        f"{GLOBAL_SCHEMA}\n\n"
        "Use only patterns present in the messages above. If a list field has nothing, return []."
    )


def build_reply_pairs(history: list[Message], limit: int) -> list[str]:
    """``They: ... -> You: ...`` lines for each contact message directly answered by the tenant."""
    pairs = []
    for current, following in zip(history, history[1:]):
        if current.sender == SENDER_CONTACT and following.sender == SENDER_TENANT:
            pairs.append(f'They: "{current.content}" -> You: "{following.content}"')
            if len(pairs) >= limit:
                break
    return pairs


def build_contact_prompt(contact_name: str, texts: list[str], pairs: list[str]) -> str:
    sections = [
        f'How does this person write to "{contact_name}" on WhatsApp?',
        f"THEIR MESSAGES TO {contact_name}:\n" + "\n".join(texts),
    ]
    if pairs:
        sections.append(f"EXCHANGES ({contact_name} said -> they replied):\n" + "\n".join(pairs))
    sections.append(f"Return only a JSON object, no markdown:\n{CONTACT_SCHEMA}")
    return "\n\n".join(sections)


def local_style_stats(texts: list[str]) -> LearnedStyle:
    """Minimal style from local counts, used when global analysis fails."""
    emoji_counts = Counter(match for text in texts for match in EMOJI_PATTERN.findall(text))
    word_counts = [len(text.split()) for text in texts if text.strip()]
    style = LearnedStyle()
    style.favorite_emojis = [emoji for emoji, _ in emoji_counts.most_common(TOP_EMOJI_COUNT)]
    style.avg_word_count = round(sum(word_counts) / len(word_counts)) if word_counts else 0
    return style


def _analyze_global(texts: list[str], api_key: str, provider: Optional[str]) -> tuple[LearnedStyle, Optional[LLMError]]:
    try:
        data = call_llm(
            build_global_prompt(texts),
            api_key,
            expect_json=True,
            provider=provider,
            temperature=GLOBAL_TEMPERATURE,
            max_tokens=GLOBAL_MAX_TOKENS,
        )
        if not isinstance(data, dict):
            raise LLMError(LLMErrorKind.MALFORMED_OUTPUT, "Global style is not a JSON object")
    except LLMError as e:
        logger.warning(f"Global style analysis failed, using local stats: {e}", extra={"context": e.to_dict()})
        style = local_style_stats(texts)
        style.is_fallback = True
        style.fallback_reason = f"{e.kind.value}: {e}"
        return style, e
    return LearnedStyle.from_dict(data), None


def _select_contacts(db: Session, messages: list[Message]) -> list[ContactJob]:
    """Build phase-2 prompts for the busiest conversations. Sequential: needs the session."""
    by_conversation: dict[UUID, list[str]] = defaultdict(list)
    for message in messages:
        by_conversation[message.conversation_id].append(message.content[: settings.training_message_chars])

    ranked = sorted(
        (item for item in by_conversation.items() if len(item[1]) >= settings.training_min_contact_messages),
        key=lambda item: len(item[1]),
        reverse=True,
    )[: settings.training_top_contacts]
    if not ranked:
        return []

    conversations = {
        row.id: row
        for row in db.query(Conversation).filter(Conversation.id.in_([conversation_id for conversation_id, _ in ranked]))
    }

    jobs = []
    for conversation_id, texts in ranked:
        conversation = conversations.get(conversation_id)
        if conversation is None:
            continue
        name = conversation.contact_name or conversation.contact_number
        history = get_conversation_history(db, conversation_id, limit=HISTORY_FETCH_LIMIT)
        pairs = build_reply_pairs(history, settings.training_pair_limit)
        jobs.append(
            ContactJob(
                conversation_id=conversation_id,
                contact_name=name,
                message_count=len(texts),
                prompt=build_contact_prompt(name, texts[: settings.training_contact_messages], pairs),
            )
        )
    return jobs


def _analyze_contact(job: ContactJob, api_key: str, provider: Optional[str]) -> ContactStyle:
    data = call_llm(
        job.prompt,
        api_key,
        expect_json=True,
        provider=provider,
        temperature=CONTACT_TEMPERATURE,
        max_tokens=CONTACT_MAX_TOKENS,
    )
    if not isinstance(data, dict):
        raise LLMError(LLMErrorKind.MALFORMED_OUTPUT, "Contact style is not a JSON object")
    style = ContactStyle.from_dict(data, contact_id=str(job.conversation_id))
    style.contact_id = str(job.conversation_id)
    style.contact_name = job.contact_name
    style.contact_key = contact_key(job.contact_name)
    style.messages_analyzed = job.message_count
    return style


def _analyze_contacts(jobs: list[ContactJob], api_key: str, provider: Optional[str]) -> dict[str, ContactStyle]:
    """Run per-contact analysis on a bounded pool. A failed contact is skipped."""
    if not jobs:
        return {}

    per_contact: dict[str, ContactStyle] = {}
    workers = max(1, min(settings.training_concurrency, len(jobs)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="train-contact") as pool:
        futures = [(job, pool.submit(_analyze_contact, job, api_key, provider)) for job in jobs]
        for job, future in futures:
            try:
                per_contact[str(job.conversation_id)] = future.result()
            except LLMError as e:
                logger.warning(
                    f"Per-contact analysis failed for {job.contact_name}: {e}",
                    extra={"context": {"conversation_id": str(job.conversation_id), **e.to_dict()}},
                )
    return per_contact


def train_personality(db: Session, tenant_id: UUID) -> Result[TrainingReport]:
    """Learn global and per-contact style for a tenant and replace their learned style."""
    tenant_settings = get_tenant_settings(db, tenant_id)
    api_key = tenant_settings.llm_api_key if tenant_settings else None
    if not api_key:
        return Result.failure(MISSING_CREDENTIAL_MESSAGE, code="missing_credential")
    provider = tenant_settings.llm_provider

    messages = get_tenant_text_messages(db, tenant_id, settings.training_message_limit)
    if len(messages) < settings.training_min_messages:
        return Result.failure(
            INSUFFICIENT_DATA_MESSAGE,
            code="insufficient_data",
            message_count=len(messages),
            minimum=settings.training_min_messages,
            tip=INSUFFICIENT_DATA_TIP,
        )

    texts = [message.content[: settings.training_message_chars] for message in messages]
    logger.info(f"Training style for {tenant_id}", extra={"context": {"messages": len(texts)}})

    learned, global_error = _analyze_global(texts, api_key, provider)

    if global_error is not None and global_error.kind == LLMErrorKind.INVALID_CREDENTIAL:
        logger.warning(f"Skipping per-contact analysis for {tenant_id}: credential rejected")
    else:
        jobs = _select_contacts(db, messages)
        learned.per_contact = _analyze_contacts(jobs, api_key, provider)
    learned.contacts_analyzed = len(learned.per_contact)

    learned_style = learned.to_dict()
    try:
        replace_learned_style(
            db,
            tenant_id,
            learned_style,
            training_message_count=count_tenant_messages(db, tenant_id),
            avg_length=learned.avg_word_count or None,
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to save learned style for {tenant_id}: {e}")
        return Result.failure(PERSISTENCE_ERROR_MESSAGE, code="persistence_error", reason=str(e))

    summary = [
        {
            "contact": style.contact_name,
            "messages": style.messages_analyzed,
            "tone": style.tone or None,
            "relationship": style.relationship_hint or None,
        }
        for style in learned.per_contact.values()
    ]
    logger.info(
        f"Training done for {tenant_id}",
        extra={"context": {"contacts": learned.contacts_analyzed, "fallback": learned.is_fallback}},
    )
    return Result.success(
        TrainingReport(
            learned_style=learned_style,
            messages_analyzed=len(messages),
            contacts_analyzed=learned.contacts_analyzed,
            per_contact_summary=summary,
            is_fallback=learned.is_fallback,
            fallback_reason=learned.fallback_reason,
        )
    )


_retrain_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="retrain")
_retrain_lock = threading.Lock()
_retrain_pending: set[UUID] = set()


def _run_retrain(tenant_id: UUID, session_factory: Callable[[], Session]) -> Result[TrainingReport]:
    db = session_factory()
    try:
        return train_personality(db, tenant_id)
    finally:
        db.close()


def _on_retrain_done(tenant_id: UUID, future: Future) -> None:
    with _retrain_lock:
        _retrain_pending.discard(tenant_id)

    error = future.exception()
    if error is not None:
        logger.error(f"Background retrain crashed for {tenant_id}: {error}", exc_info=error)
        alert_error("Background retrain crashed", {"tenant_id": str(tenant_id), "error": str(error)[:200]})
        return

    result = future.result()
    if not result.ok:
        logger.warning(
            f"Background retrain failed for {tenant_id}: {result.error}",
            extra={"context": {"code": result.error_code}},
        )
        if result.error_code == "persistence_error":
            alert_error("Background retrain failed", {"tenant_id": str(tenant_id), "code": result.error_code})


def schedule_retrain(tenant_id: UUID, session_factory: Callable[[], Session]) -> Optional[Future]:
    """Fire-and-forget retrain. Returns None if one is already queued for the tenant."""
    with _retrain_lock:
        if tenant_id in _retrain_pending:
            return None
        _retrain_pending.add(tenant_id)

    future = _retrain_executor.submit(_run_retrain, tenant_id, session_factory)
    future.add_done_callback(lambda done: _on_retrain_done(tenant_id, done))
    logger.info(f"Background retrain scheduled for {tenant_id}")
    return future
