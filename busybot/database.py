from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from busybot.config import settings

_connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
    connect_args=_connect_args,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db() -> None:
    import busybot.models  # noqa: F401 - register models

    Base.metadata.create_all(engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    """Session factory for work that outlives a single request session (fan-out, training jobs)."""
    return SessionLocal
