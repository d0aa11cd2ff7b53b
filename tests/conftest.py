import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CREATE_TABLES"] = "false"
os.environ["ALERT_BOT_TOKEN"] = ""
os.environ["ALERT_CHAT_ID"] = ""

import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import busybot.models  # noqa: F401
from busybot.database import Base, get_db, get_session_factory
from busybot.models import Conversation, Message, PersonalityProfile, TenantSettings


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    """Real SQLAlchemy session on in-memory SQLite."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def tenant_id():
    return uuid.uuid4()


@pytest.fixture
def make_tenant(db_session):
    def _make(tenant_id=None, **overrides):
        values = {
            "tenant_id": tenant_id or uuid.uuid4(),
            "auto_reply_enabled": True,
            "emergency_notify": True,
            "auto_reply_text": "Busy, will reply soon",
            "llm_api_key": None,
            "llm_provider": "gemini",
            "gateway_instance": "busybot",
            "updated_at": datetime.now(timezone.utc),
        }
        values.update(overrides)
        tenant = TenantSettings(**values)
        db_session.add(tenant)
        db_session.commit()
        return tenant

    return _make


@pytest.fixture
def make_conversation(db_session):
    def _make(tenant_id, contact_number="919876543210", contact_name=None, **overrides):
        conversation = Conversation(
            tenant_id=tenant_id,
            contact_number=contact_number,
            contact_name=contact_name,
            unread_count=0,
            created_at=datetime.now(timezone.utc),
            **overrides,
        )
        db_session.add(conversation)
        db_session.commit()
        return conversation

    return _make


@pytest.fixture
def add_messages(db_session):
    """Insert (sender, content) pairs into a conversation, in order."""
    from busybot.services.message_service import save_message

    def _add(conversation, turns, **overrides):
        rows = [
            save_message(
                db_session,
                conversation_id=conversation.id,
                tenant_id=conversation.tenant_id,
                sender=sender,
                content=content,
                **overrides,
            )
            for sender, content in turns
        ]
        db_session.commit()
        return rows

    return _add


@pytest.fixture
def make_profile(db_session):
    def _make(tenant_id, **overrides):
        profile = PersonalityProfile(tenant_id=tenant_id, created_at=datetime.now(timezone.utc), **overrides)
        db_session.add(profile)
        db_session.commit()
        return profile

    return _make


@pytest.fixture
def client(session_factory):
    from busybot.main import app

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def bot_messages(db_session):
    def _query(conversation_id):
        db_session.expire_all()
        return (
            db_session.query(Message)
            .filter(Message.conversation_id == conversation_id, Message.sender == "bot")
            .order_by(Message.created_at)
            .all()
        )

    return _query
