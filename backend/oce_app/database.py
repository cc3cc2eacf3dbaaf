"""Database engine and session configuration.

WHAT:
    Resolves DATABASE_URL once at import, builds the engine, and hands out
    sessions two ways: `get_db` for request handlers and `get_sync_session()`
    for order sync / reply forwarding jobs that run after the response.

WHY:
    Production runs on PostgreSQL (psycopg2) behind a pool; tests and local
    runs use SQLite, which rejects pool sizing arguments. Keeping both paths
    here means nothing else needs to know which backend is in use.

USAGE:
    from oce_app.database import get_db, get_sync_session

    @router.get("/domains/list")
    def list_domains(db: Session = Depends(get_db)):
        ...

    with get_sync_session() as db:
        Repository(db).select_one(OrderSync, {"shop": shop})
"""

import os
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from oce_app.utils.env import load_env_file, require_env


# Hosted Postgres providers still hand out the pre-SQLAlchemy-1.4 scheme
LEGACY_POSTGRES_SCHEME = "postgres://"


def normalize_database_url(url: str) -> str:
    if url.startswith(LEGACY_POSTGRES_SCHEME):
        return "postgresql://" + url[len(LEGACY_POSTGRES_SCHEME):]
    return url


def _resolve_database_url() -> str:
    """Read DATABASE_URL, falling back to backend/.env for local runs.

    Raises:
        RuntimeError: when neither the environment nor .env provides it
    """
    if not os.getenv("DATABASE_URL"):
        load_env_file()
    return normalize_database_url(require_env("DATABASE_URL"))


def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        # Sessions are shared with post-response tasks on other threads
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_size=int(os.getenv("DB_POOL_SIZE", "10")),
        max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "20")),
        pool_recycle=3600,
        pool_pre_ping=True,
    )


DATABASE_URL = _resolve_database_url()
engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


# =============================================================================
# SESSIONS
# =============================================================================

def get_db() -> Generator[Session, None, None]:
    """Request-scoped session (FastAPI dependency, overridden in tests)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """Session for work outside a request: ARQ jobs and background tasks.

    Looks up `SessionLocal` at call time so tests can swap the factory.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
