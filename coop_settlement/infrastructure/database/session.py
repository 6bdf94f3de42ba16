"""Database session management with connection pooling"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from coop_settlement.config import settings


def build_engine(database_url: str) -> Engine:
    """Create an engine; SQLite gets a single-file connection without pool sizing"""
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})

    # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


# Settlement commits explicitly
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def get_db() -> Session:
    """Dependency injection for database sessions"""
    if SessionLocal.kw.get("bind") is None:
        SessionLocal.configure(bind=build_engine(settings.database_url))

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
