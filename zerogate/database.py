"""
Engine and session wiring for the compliance store.

Accounts, applications, credentials, assets and the audit trail all live in
one database: PostgreSQL (Supabase) in production, SQLite for local runs and
tests.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from zerogate.config import get_settings


def normalize_database_url(url: str) -> str:
    """Supabase hands out postgres:// URLs; SQLAlchemy only accepts postgresql://."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def build_engine(url: str, **options):
    url = normalize_database_url(url)
    if url.startswith("sqlite"):
        # Request handlers and the mint race run on other threads
        options.setdefault("connect_args", {"check_same_thread": False})
    else:
        options.setdefault("pool_pre_ping", True)
        options.setdefault("pool_size", 5)
        options.setdefault("max_overflow", 10)
    return create_engine(url, **options)


engine = build_engine(get_settings().database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """One session per request; closed even when the transition fails."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
