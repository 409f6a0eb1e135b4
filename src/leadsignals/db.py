"""Database connection and session management."""

from collections.abc import Callable, Generator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from leadsignals.config import settings

engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=10,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope(
    factory: Callable[[], Session] = SessionLocal, *, expire_on_commit: bool = True
) -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations.

    With ``expire_on_commit=False`` loaded objects stay readable after the
    session closes.
    """
    session = factory()
    session.expire_on_commit = expire_on_commit
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
