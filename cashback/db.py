# cashback/db.py
import os
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

# -----------------------------------------------------------------------------
# DATABASE_URL
#   postgres:// and postgresql:// become postgresql+psycopg://;
#   remote hosts get sslmode=require; unset means a local SQLite file.
# -----------------------------------------------------------------------------

def _normalize_db_url(raw: Optional[str]) -> str:
    db_url = (raw or "").strip()

    if not db_url:
        # local dev
        return "sqlite:///./cashback.db"

    # Normalize scheme: postgres://  -> postgresql://
    db_url = db_url.replace("postgres://", "postgresql://", 1)

    # Ensure psycopg (v3) driver is used unless user already specified a driver
    if db_url.startswith("postgresql://") and "+psycopg" not in db_url:
        db_url = db_url.replace("postgresql://", "postgresql+psycopg://", 1)

    # hosted Postgres needs SSL
    if (
        db_url.startswith("postgresql")
        and "localhost" not in db_url
        and "127.0.0.1" not in db_url
        and "sslmode=" not in db_url
    ):
        db_url += ("&" if "?" in db_url else "?") + "sslmode=require"

    return db_url


def make_engine(url: str) -> Engine:
    kwargs = dict(pool_pre_ping=True, future=True)
    if url.startswith("sqlite"):
        # needed for SQLite + threads (FastAPI runs sync routes in a threadpool)
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": 15}
    return create_engine(url, **kwargs)


DATABASE_URL = _normalize_db_url(os.getenv("DATABASE_URL"))

# -----------------------------------------------------------------------------
# Engine, sessions, base
# -----------------------------------------------------------------------------

engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session and ensures close."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Optional[Engine] = None) -> None:
    """Create tables if they don't exist yet."""
    from . import models  # noqa: F401  ensure models are registered
    Base.metadata.create_all(bind=bind or engine)
