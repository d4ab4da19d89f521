import os

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from .models import Base

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "sqlite+pysqlite:///./channel-pricing.db",
)


def make_engine(url: str = DATABASE_URL) -> Engine:
    if url.startswith("sqlite") and ":memory:" in url:
        # One shared connection so every session (and request thread) sees the same in-memory DB.
        eng = create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    else:
        eng = create_engine(url, pool_pre_ping=True)
    Base.metadata.create_all(eng)
    return eng


def session(engine: Engine) -> Session:
    # Callers read record fields after committing; keep them loaded.
    return Session(engine, expire_on_commit=False)
