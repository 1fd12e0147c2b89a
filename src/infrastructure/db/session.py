# src/infrastructure/db/session.py

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from src import config


# -----------------------------
# Database URL
# -----------------------------
def normalize_database_url(url: str) -> str:
    # Hosted providers hand out postgres://; SQLAlchemy expects postgresql://
    if url.startswith("postgres://"):
        return "postgresql+psycopg2://" + url[len("postgres://"):]
    return url


def _engine_options(url: str) -> dict:
    options = {"echo": config.SQL_ECHO, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        # Sync routes run in a threadpool, not on the creating thread.
        options["connect_args"] = {"check_same_thread": False}
    return options


DATABASE_URL = normalize_database_url(config.DATABASE_URL)


# -----------------------------
# Engine
# -----------------------------
engine: Engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))


# -----------------------------
# Base Class for Models
# -----------------------------
class Base(DeclarativeBase):
    pass


# -----------------------------
# Session Factory
# -----------------------------
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
)


# -----------------------------
# Context Manager (scripts and jobs)
# -----------------------------
@contextmanager
def get_db_session() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
