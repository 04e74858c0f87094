"""
Database engines and sessions.

Two session factories exist: the regular one used by every request, and an
administrative one used only by ``quiz_repository.AdminReader`` for aggregate
counts. The admin factory may point at a different (elevated) credential via
``ADMIN_DATABASE_URL``.
"""
import logging
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config import get_settings
from models import Base

logger = logging.getLogger("vibecheck.database")


def build_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=False, pool_pre_ping=True, connect_args=connect_args)


settings = get_settings()
engine = build_engine(settings.database_url)
admin_engine = build_engine(settings.admin_database_url) if settings.admin_database_url else engine

SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
AdminSessionLocal = sessionmaker(bind=admin_engine, expire_on_commit=False)


def init_db(bind: Engine = engine) -> None:
    """Create database schema if it doesn't exist."""
    Base.metadata.create_all(bind)
    logger.info("Database schema ready")


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding a request-scoped session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
