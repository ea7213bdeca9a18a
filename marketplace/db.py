# marketplace/db.py
"""Database engine and session utilities.

Centralized SQLAlchemy engine creation and the session dependency for FastAPI.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from .config import get_config

Base = declarative_base()


def create_db_engine(url: str, pool_size: int = 5, max_overflow: int = 10):
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every thread sees an empty database
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    # tuned pool settings for cloud DB
    return create_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True
    )


_cfg = get_config()
if not _cfg.database_url:
    raise RuntimeError("POSTGRES_URL not set")

engine = create_db_engine(_cfg.database_url, _cfg.db_pool_size, _cfg.db_max_overflow)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
