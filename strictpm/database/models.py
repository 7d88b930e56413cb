"""SQLAlchemy database models for strictpm."""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime

from strictpm.database.database import Base


class KeyValueEntryDB(Base):
    """One durable key-value pair (the server-side stand-in for browser local storage)."""

    __tablename__ = "kv_entries"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
