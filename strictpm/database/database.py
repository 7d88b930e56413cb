"""Database connection and session management for strictpm.

The durable key-value store lives in a single table. SQLite is the default;
any SQLAlchemy URL can be supplied through `DATABASE_URL`.
"""

import os
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from dotenv import load_dotenv

load_dotenv()

# Database URL - SQLite file next to the app by default
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./strictpm.db")


def _is_sqlite_url(database_url: str) -> bool:
    return "sqlite" in (database_url or "")


def get_engine_kwargs(database_url: str) -> dict:
    """Return deterministic create_engine kwargs for a DB URL.

    This is separated to allow deterministic unit testing without connecting.
    """
    engine_kwargs: dict = {
        "echo": os.getenv("DEBUG", "False").lower() == "true",
        "pool_pre_ping": True,
    }

    if _is_sqlite_url(database_url):
        # FastAPI runs sync endpoints in a thread pool
        engine_kwargs["connect_args"] = {"check_same_thread": False}

    return engine_kwargs


def build_engine(database_url: str) -> Engine:
    return create_engine(database_url, **get_engine_kwargs(database_url))


# Create engine (module-level singleton)
engine = build_engine(DATABASE_URL)


@event.listens_for(Engine, "connect")
def set_sqlite_pragmas(dbapi_conn, connection_record):
    """Enable WAL on SQLite connections so reads do not block the snapshot writer."""
    if _is_sqlite_url(DATABASE_URL):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for declarative models
Base = declarative_base()


def init_db(bind: Engine = None) -> None:
    """Create the key-value table if it does not exist yet."""
    # Import models so they register with Base.metadata
    from strictpm.database import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
