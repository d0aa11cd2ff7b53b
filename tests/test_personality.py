import uuid

from busybot.services.personality_service import (
    ContactStyle,
    LearnedStyle,
    PersonalityModel,
    contact_key,
    load_personality,
    replace_learned_style,
)


class TestContactKey:
    def test_lowercase_underscores(self):
        assert contact_key("  Priya  Sharma ") == "priya_sharma"

    def test_empty(self):
        assert contact_key(None) == ""


class TestLearnedStyleFromDict:
    def test_missing_fields_default_empty(self):
        style = LearnedStyle.from_dict({"greetings": ["hey"]})
        assert style.greetings == ["hey"]
        assert style.closings == []
        assert style.primary_language == ""
        assert style.per_contact == {}

    def test_wrong_types_are_dropped(self):
        style = LearnedStyle.from_dict({"fillers": "like", "avg_word_count": "abc", "tone_summary": ["x"]})
        assert style.fillers == []
        assert style.avg_word_count == 0
        assert style.tone_summary == ""

    def test_legacy_keys(self):
        style = LearnedStyle.from_dict({"emoji_favorites": ["😂"], "code_switching_pattern": "Tamil when joking"})
        assert style.favorite_emojis == ["😂"]
        assert style.code_switching == "Tamil when joking"

    def test_per_contact_parsed(self):
        style = LearnedStyle.from_dict({"per_contact": {"abc": {"contact_name": "Priya", "tone": "playful"}}})
        entry = style.per_contact["abc"]
        assert entry.contact_id == "abc"
        assert entry.contact_key == "priya"
        assert entry.tone == "playful"

    def test_to_dict_counts_contacts(self):
        style = LearnedStyle(per_contact={"a": ContactStyle(contact_name="A"), "b": ContactStyle(contact_name="B")})
        assert style.to_dict()["contacts_analyzed"] == 2
        assert "is_fallback" not in style.to_dict()


class TestFindContact:
    def setup_method(self):
        self.conversation_id = uuid.uuid4()
        self.style = LearnedStyle(
            per_contact={
                str(self.conversation_id): ContactStyle(contact_name="Priya Sharma", contact_key="priya_sharma"),
                "rahul_k": ContactStyle(contact_name="Rahul K", contact_key="rahul_k"),
                "ravi": ContactStyle(contact_name="Ravi", contact_key="ravi"),
                "ravi_teja": ContactStyle(contact_name="Ravi Teja", contact_key="ravi_teja"),
            }
        )

    def test_by_conversation_id(self):
        assert self.style.find_contact(self.conversation_id, "Someone Else").contact_name == "Priya Sharma"

    def test_by_exact_name_key(self):
        assert self.style.find_contact(uuid.uuid4(), "Rahul K").contact_name == "Rahul K"

    def test_by_unique_substring(self):
        assert self.style.find_contact(None, "Rahul").contact_name == "Rahul K"

    def test_exact_key_wins_over_substring(self):
        assert self.style.find_contact(None, "Ravi").contact_name == "Ravi"

    def test_ambiguous_substring_returns_none(self):
        style = LearnedStyle(
            per_contact={
                "anu_m": ContactStyle(contact_name="Anu M", contact_key="anu_m"),
                "anu_r": ContactStyle(contact_name="Anu R", contact_key="anu_r"),
            }
        )
        assert style.find_contact(None, "Anu") is None

    def test_no_name(self):
        assert self.style.find_contact(None, None) is None


class TestPersonalityModel:
    def test_defaults_without_profile(self):
        model = PersonalityModel.from_profile(None)
        assert model.tone == "casual"
        assert model.response_delay_ms == 2000
        assert model.learned.greetings == []

    def test_context_block_includes_learned_and_contact(self):
        model = PersonalityModel(
            tone="playful",
            common_phrases=["no worries"],
            learned=LearnedStyle(greetings=["heyy"], favorite_emojis=["😂", "🔥"], primary_language="tanglish"),
        )
        contact = ContactStyle(tone="teasing", relationship_hint="college friend", sample_replies=["seri da", "podaa"])

        block = model.context_block(contact, contact_label="Priya")

        assert "Base tone: playful" in block
        assert "no worries" in block
        assert "Greetings you use: heyy" in block
        assert "😂 🔥" in block
        assert "HOW YOU TALK TO Priya" in block
        assert "- They are your: college friend" in block
        assert '"seri da"; "podaa"' in block

    def test_context_block_skips_empty_learned_fields(self):
        block = PersonalityModel().context_block()
        assert "Greetings you use" not in block
        assert "HOW YOU TALK TO" not in block


class TestPersistence:
    def test_replace_creates_profile(self, db_session, tenant_id):
        replace_learned_style(db_session, tenant_id, {"greetings": ["yo"]}, training_message_count=12, avg_length=7)
        db_session.commit()

        model = load_personality(db_session, tenant_id)
        assert model.learned.greetings == ["yo"]
        assert model.avg_length == 7

    def test_replace_is_wholesale(self, db_session, tenant_id, make_profile):
        make_profile(tenant_id, learned_style={"greetings": ["old"], "per_contact": {"x": {"tone": "old"}}})

        profile = replace_learned_style(db_session, tenant_id, {"closings": ["bye"]}, training_message_count=3)
        db_session.commit()

        assert profile.learned_style == {"closings": ["bye"]}
        assert profile.training_message_count == 3
        assert profile.last_trained_at is not None
