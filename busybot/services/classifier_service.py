"""Heuristic classification of inbound chat messages.

Everything here is a pure function over strings. Rule families are kept as
data tables so adding a language or a keyword is a table edit: the
evaluation order is the table order.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Pattern


class Intent(str, Enum):
    GREETING = "greeting"
    QUESTION = "question"
    REQUEST = "request"
    FOLLOW_UP = "follow_up"
    EMOTIONAL = "emotional"
    STATEMENT = "statement"
    FAREWELL = "farewell"
    MEDIA = "media"


class Sentiment(str, Enum):
    HAPPY = "happy"
    SAD = "sad"
    ANGRY = "angry"
    URGENT = "urgent"
    NEUTRAL = "neutral"


class Urgency(str, Enum):
    NORMAL = "normal"
    IMPORTANT = "important"
    EMERGENCY = "emergency"


UNKNOWN_LANGUAGE = "unknown"
DEFAULT_LANGUAGE = "english"
MIXED_LANGUAGE = "mixed"


@dataclass(frozen=True)
class ClassificationResult:
    intent: Intent
    sentiment: Sentiment
    detected_language: str
    needs_reply: bool


@dataclass(frozen=True)
class IntentRule:
    intent: Intent
    pattern: Pattern[str]
    max_words: Optional[int] = None

    def matches(self, text: str) -> bool:
        if self.max_words is not None and len(text.split()) > self.max_words:
            return False
        return bool(self.pattern.search(text))


@dataclass(frozen=True)
class SentimentRule:
    sentiment: Sentiment
    pattern: Pattern[str]
    glyphs: tuple[str, ...] = ()

    def matches(self, text: str) -> bool:
        if self.pattern.search(text):
            return True
        return any(glyph in text for glyph in self.glyphs)


def _words(*alternatives: str) -> str:
    return "|".join(alternatives)


# English + Hinglish + Tanglish. "good night" lives in the farewell family only.
GREETING_PATTERN = re.compile(
    r"^(?:"
    + _words(
        r"hi", r"hey", r"hello", r"yo", r"sup", r"hii+", r"heyy+", r"oyee?", r"oi", r"assalam", r"salam",
        r"namaste", r"hola", r"howdy", r"wassup", r"whats\s?up", r"good\s?(?:morning|afternoon|evening)", r"gm",
        r"vanakkam", r"vannakam", r"da", r"di", r"dei", r"machi", r"machan", r"machii?", r"nanba", r"bha+i",
        r"kya\s?hal", r"kaise\s?ho", r"kem\s?cho", r"aur\s?bata", r"bolo", r"bol\s?na", r"haan\s?bhai",
        r"arr?ey", r"yov", r"enna\s?da", r"eppadi", r"vaanga", r"maapla", r"helo+",
    )
    + r")\b"
)

QUESTION_PATTERN = re.compile(
    r"\?|^(?:"
    + _words(
        r"what", r"when", r"where", r"why", r"how", r"who", r"which", r"can", r"could", r"would", r"will",
        r"do", r"does", r"did", r"is", r"are", r"have", r"has", r"kya", r"kab", r"kahan", r"kaun", r"kaise",
        r"kidhar", r"kitna", r"kithe", r"enna", r"enga", r"yaar", r"yaaru", r"eppo", r"epdi", r"ethuku",
        r"evlo", r"ethana", r"yenda", r"yen", r"enge", r"mudiyuma", r"theriyuma", r"unaku", r"neenga",
    )
    + r")\b"
)

REQUEST_PATTERN = re.compile(
    r"\b(?:"
    + _words(
        r"please", r"plz", r"pls", r"send", r"share", r"give", r"tell", r"help", r"need", r"want", r"call",
        r"come", r"meet", r"check", r"look", r"see", r"reply", r"respond", r"answer", r"batao", r"bhejo",
        r"bata", r"karo", r"dedo", r"batado", r"suno", r"bhejna", r"dikhao", r"samjhao", r"sollu", r"solu",
        r"sollunga", r"anuppu", r"kudu", r"kudungga", r"paru", r"paaru", r"pannunga", r"pannuda", r"konjam",
        r"thaa", r"kududa", r"(?:call|msg|reply|check)\s?pannu",
    )
    + r")\b"
)

FOLLOW_UP_PATTERN = re.compile(
    r"^(?:"
    + _words(
        r"you there", r"still busy", r"any update", r"update", r"so", r"bro", r"dude", r"bhai",
        r"are you there", r"r u there", r"reply", r"seen", r"online", r"bol\s?na", r"sun\s?na",
        r"kaha\s?ho", r"kidhar\s?ho", r"reply\s?to\s?kar", r"msg\s?dekh", r"enna\s?aachu", r"enga\s?da",
        r"reply\s?pannu\s?da", r"pesi\s?mudicha", r"vandhudu", r"free\s?ah",
    )
    + r")\s*\?*$"
)

EMOTIONAL_PATTERN = re.compile(
    r"\b(?:"
    + _words(
        r"miss you", r"love", r"sorry", r"sad", r"upset", r"crying", r"worried", r"scared", r"angry",
        r"frustrated", r"happy", r"excited", r"proud", r"thank\w*", r"congrat\w*", r"rip", r"passed away",
        r"died", r"hospital", r"sick", r"ill", r"hurt", r"pain", r"broke", r"breakup", r"fight", r"pyaar",
        r"dukhi", r"rona", r"tension", r"pareshan", r"fikar", r"gussa", r"khush", r"maafi", r"dhanyavaad",
        r"sogam", r"kashtam", r"valikuthu", r"azhugiren", r"bayam", r"kovam", r"sandhosham", r"nandri",
        r"kanneer", r"vali", r"kavalai", r"manam", r"nesam", r"romba\s?bad", r"feel\s?pannuren", r"mosam",
        r"dhrogam",
    )
    + r")\b"
)

FAREWELL_PATTERN = re.compile(
    r"^(?:"
    + _words(
        r"bye", r"ok\s?bye", r"see you", r"cya", r"ttyl", r"good\s?night", r"gn", r"take care", r"chal",
        r"chalo", r"tc", r"later", r"tata", r"alvida", r"phir\s?milte", r"baad\s?mein", r"chalta\s?hu",
        r"nikalta\s?hu", r"poi\s?varen", r"poitu\s?varen", r"sari\s?da", r"seri\s?da", r"seri\s?po",
        r"ta\s?ta", r"bye\s?da", r"bye\s?di", r"night\s?da", r"poidren", r"varuven", r"innum\s?pesalam",
    )
    + r")\b"
)

INTENT_RULES: tuple[IntentRule, ...] = (
    IntentRule(Intent.GREETING, GREETING_PATTERN, max_words=6),
    IntentRule(Intent.QUESTION, QUESTION_PATTERN),
    IntentRule(Intent.REQUEST, REQUEST_PATTERN),
    IntentRule(Intent.FOLLOW_UP, FOLLOW_UP_PATTERN),
    IntentRule(Intent.EMOTIONAL, EMOTIONAL_PATTERN),
    IntentRule(Intent.FAREWELL, FAREWELL_PATTERN),
)

# Emergency-class keywords also drive message urgency (see detect_urgency).
EMERGENCY_KEYWORDS = (r"emergency", r"urgent", r"asap", r"sos", r"911", r"critical", r"help me", r"need help")
EMERGENCY_GLYPHS = ("🚨", "⚠️")
EMERGENCY_PATTERN = re.compile(r"\b(?:" + _words(*EMERGENCY_KEYWORDS) + r")\b")

IMPORTANT_PATTERN = re.compile(r"\b(?:important|priority|need|please call|call me)\b")

# Urgent outranks every tone: an upset *and* urgent message must be treated as urgent.
SENTIMENT_RULES: tuple[SentimentRule, ...] = (
    SentimentRule(
        Sentiment.URGENT,
        re.compile(
            r"\b(?:"
            + _words(
                *EMERGENCY_KEYWORDS,
                r"immediately", r"right now", r"hurry", r"quick", r"fast", r"jaldi", r"turant", r"fatafat",
                r"abhi", r"udane", r"vegam", r"seekiram", r"urgent\s?a", r"konjam\s?fast", r"important\s?da",
            )
            + r")\b"
        ),
        EMERGENCY_GLYPHS,
    ),
    SentimentRule(
        Sentiment.ANGRY,
        re.compile(
            r"\b(?:"
            + _words(
                r"angry", r"mad", r"furious", r"pissed", r"annoyed", r"frustrated", r"wtf", r"hate", r"gussa",
                r"chidh", r"irritate\w*", r"kovam", r"erichhal", r"podhum", r"podhumda", r"porukka\s?mudiyala",
                r"veriethuthu",
            )
            + r")\b"
        ),
        ("🤬", "😡"),
    ),
    SentimentRule(
        Sentiment.SAD,
        re.compile(
            r"\b(?:"
            + _words(
                r"sad", r"upset", r"crying", r"cry", r"depressed", r"lonely", r"miss", r"hurt", r"pain", r"sorry",
                r"worried", r"scared", r"anxiety", r"stressed", r"dukhi", r"rona", r"udaas", r"pareshan",
                r"tension", r"sogam", r"kashtam", r"valikuthu", r"kanneer", r"feel\s?panren", r"romba\s?bad",
                r"vali", r"kavalai", r"thanimai", r"bayam",
            )
            + r")\b"
        ),
        ("😢", "😭", "💔"),
    ),
    SentimentRule(
        Sentiment.HAPPY,
        re.compile(
            r"\b(?:"
            + _words(
                r"happy", r"excited", r"great", r"awesome", r"amazing", r"wonderful", r"love", r"haha\w*",
                r"lol", r"yay", r"woohoo", r"fantastic", r"perfect", r"khush", r"maza", r"badhiya", r"zabardast",
                r"mast", r"superr?", r"semma", r"theri", r"mass", r"vera\s?level", r"romba\s?nalla", r"adipoli",
                r"kalakkal", r"sema", r"jolly", r"chanceless",
            )
            + r")\b"
        ),
        ("😂", "😄", "🎉", "❤️", "😍"),
    ),
)

# Short acknowledgements and reactions that never warrant an auto-reply.
NO_REPLY_PATTERN = re.compile(
    r"^(?:"
    + _words(
        r"ok", r"k", r"kk", r"okay", r"👍", r"👌", r"🙏", r"thanks", r"thanku", r"ty", r"tq", r"hmm+", r"mm+",
        r"hm", r"oh", r"ohk", r"accha", r"acha", r"theek", r"thik", r"seri", r"serida", r"okda", r"okdi", r"hmda",
        r"aamam", r"haan", r"ha", r"ji", r"ok\s?va", r"seri\s?pa", r"ok\s?pa", r"ok\s?da", r"ok\s?machi",
        r"nandri", r"dhanyavaad", r"thenkyu", r"thanksu",
    )
    + r")\s*[.!]*$"
)

# Script ranges win over roman-keyword counting.
SCRIPT_RULES: tuple[tuple[str, Pattern[str]], ...] = (
    ("tamil", re.compile(r"[\u0B80-\u0BFF]")),
    ("hindi", re.compile(r"[\u0900-\u097F]")),
)

ROMAN_LANGUAGE_RULES: tuple[tuple[str, Pattern[str]], ...] = (
    (
        "tanglish",
        re.compile(
            r"\b(?:"
            + _words(
                r"da", r"di", r"dei", r"machi", r"machan", r"nanba", r"enna", r"enga", r"eppo", r"epdi", r"sollu",
                r"pannunga", r"vaanga", r"semma", r"thala", r"paaru", r"kudu", r"seri", r"romba", r"podu", r"aana",
                r"illa", r"iruku", r"theriyum", r"konjam", r"panna", r"vandhu", r"pogalam", r"vaada", r"vanakkam",
                r"nandri",
            )
            + r")\b"
        ),
    ),
    (
        "hinglish",
        re.compile(
            r"\b(?:"
            + _words(
                r"kya", r"kab", r"kaise", r"kahan", r"kaun", r"kitna", r"bhai", r"yaar", r"acha", r"theek", r"haan",
                r"nahi", r"batao", r"bhejo", r"karo", r"dekho", r"sunno", r"arey", r"chalo", r"abhi", r"jaldi",
                r"matlab", r"wala", r"mein", r"hai", r"toh", r"bhi", r"lekin", r"bohot", r"bahut", r"tera", r"mera",
                r"apna", r"humara",
            )
            + r")\b"
        ),
    ),
)


def normalize_text(text: str) -> str:
    """Lowercase, trim and collapse whitespace."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text.strip().casefold())


def detect_intent(normalized: str) -> Intent:
    for rule in INTENT_RULES:
        if rule.matches(normalized):
            return rule.intent
    return Intent.STATEMENT


def detect_sentiment(normalized: str) -> Sentiment:
    for rule in SENTIMENT_RULES:
        if rule.matches(normalized):
            return rule.sentiment
    return Sentiment.NEUTRAL


def detect_language(normalized: str) -> str:
    """Best-effort language label: script ranges first, then roman keyword hits."""
    if not normalized:
        return UNKNOWN_LANGUAGE

    scripts = [label for label, pattern in SCRIPT_RULES if pattern.search(normalized)]
    if len(scripts) > 1:
        return MIXED_LANGUAGE
    if scripts:
        return scripts[0]

    hits = [(label, len(pattern.findall(normalized))) for label, pattern in ROMAN_LANGUAGE_RULES]
    hits = [(label, count) for label, count in hits if count > 0]
    if len(hits) > 1:
        return MIXED_LANGUAGE
    if hits:
        label, count = hits[0]
        return label if count >= 2 else f"{label}_light"
    return DEFAULT_LANGUAGE


def is_no_reply_message(normalized: str) -> bool:
    return bool(NO_REPLY_PATTERN.match(normalized))


def classify_message(text: str) -> ClassificationResult:
    """Classify intent, sentiment and language, and decide whether a reply is warranted."""
    normalized = normalize_text(text)
    if not normalized:
        return ClassificationResult(
            intent=Intent.STATEMENT,
            sentiment=Sentiment.NEUTRAL,
            detected_language=UNKNOWN_LANGUAGE,
            needs_reply=False,
        )

    intent = detect_intent(normalized)
    needs_reply = not (is_no_reply_message(normalized) or intent == Intent.FAREWELL)
    return ClassificationResult(
        intent=intent,
        sentiment=detect_sentiment(normalized),
        detected_language=detect_language(normalized),
        needs_reply=needs_reply,
    )


def media_classification() -> ClassificationResult:
    """Fixed result for media-only messages, which bypass text classification."""
    return ClassificationResult(
        intent=Intent.MEDIA,
        sentiment=Sentiment.NEUTRAL,
        detected_language=UNKNOWN_LANGUAGE,
        needs_reply=False,
    )


def detect_urgency(text: str, classification: ClassificationResult) -> Urgency:
    """Urgency of a contact-authored message. Urgent sentiment always means emergency."""
    if classification.sentiment == Sentiment.URGENT:
        return Urgency.EMERGENCY
    normalized = normalize_text(text)
    if EMERGENCY_PATTERN.search(normalized) or any(glyph in normalized for glyph in EMERGENCY_GLYPHS):
        return Urgency.EMERGENCY
    if IMPORTANT_PATTERN.search(normalized):
        return Urgency.IMPORTANT
    return Urgency.NORMAL
