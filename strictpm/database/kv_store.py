"""Key-value store abstraction for strictpm.

Everything the app persists (the task snapshot, cached news) goes through the
`KeyValueStore` protocol so the durable backend can be swapped for an
in-memory fake under test.
"""

import logging
import threading
from datetime import datetime
from typing import Dict, Optional, Protocol

from sqlalchemy.orm import sessionmaker

from strictpm.database.models import KeyValueEntryDB

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """String-keyed, string-valued persistence port."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...


class InMemoryKeyValueStore:
    """Process-local key-value store (tests, ephemeral runs)."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)


class SQLKeyValueStore:
    """Key-value store backed by the `kv_entries` table."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        with self._session_factory() as db:
            entry = db.get(KeyValueEntryDB, key)
            return entry.value if entry else None

    def set(self, key: str, value: str) -> None:
        with self._session_factory() as db:
            try:
                entry = db.get(KeyValueEntryDB, key)
                if entry is None:
                    db.add(KeyValueEntryDB(key=key, value=value, updated_at=datetime.utcnow()))
                else:
                    entry.value = value
                    entry.updated_at = datetime.utcnow()
                db.commit()
                logger.debug(f"Stored key {key} ({len(value)} chars)")
            except Exception as e:
                db.rollback()
                logger.error(f"Failed to store key {key}: {type(e).__name__}: {str(e)}")
                raise

    def delete(self, key: str) -> None:
        with self._session_factory() as db:
            try:
                db.query(KeyValueEntryDB).filter(KeyValueEntryDB.key == key).delete()
                db.commit()
            except Exception as e:
                db.rollback()
                logger.error(f"Failed to delete key {key}: {type(e).__name__}: {str(e)}")
                raise

    def clear(self) -> None:
        with self._session_factory() as db:
            try:
                deleted = db.query(KeyValueEntryDB).delete()
                db.commit()
                logger.info(f"Cleared {deleted} stored keys")
            except Exception as e:
                db.rollback()
                logger.error(f"Failed to clear key-value store: {type(e).__name__}: {str(e)}")
                raise
