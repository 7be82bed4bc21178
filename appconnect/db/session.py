"""Record-store engine, session factory and the ``get_db`` dependency.

The store holds one small row per user, so the engine runs on SQLAlchemy's
default pool. SQLite URLs are accepted for single-user installs.
"""

from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from appconnect.core.config import settings


def engine_options(database_url: str) -> Dict[str, Any]:
    """Keyword arguments for ``create_engine`` matching the URL's backend."""
    if make_url(database_url).get_backend_name() == "sqlite":
        return {"connect_args": {"check_same_thread": False}}
    # MySQL closes idle connections after wait_timeout
    return {"pool_pre_ping": True, "pool_recycle": 1800}


engine = create_engine(settings.DATABASE_URL, echo=settings.DEBUG, **engine_options(settings.DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create the connection_records table when missing."""
    from appconnect.db.base import Base
    import appconnect.models  # noqa: F401  registers the models on Base

    Base.metadata.create_all(bind=engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
