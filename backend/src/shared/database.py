from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import settings


class Base(DeclarativeBase):
    pass


def build_engine(url: str | None = None) -> Engine:
    """Create a sync engine for the key material store."""
    url = url or settings.DATABASE_URL
    if url == "sqlite://" or (url.startswith("sqlite") and ":memory:" in url):
        # Single shared connection so every session sees the same in-memory database
        return create_engine(
            url,
            echo=settings.LOG_LEVEL == "DEBUG",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, echo=settings.LOG_LEVEL == "DEBUG", pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to the given engine."""
    return sessionmaker(bind=engine, class_=Session, expire_on_commit=False, autoflush=False)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Transactional scope: commit on success, roll back on error."""
    with factory() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
