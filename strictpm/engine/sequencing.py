"""Request sequencing for AI calls that publish shared results.

When two requests of the same kind overlap, only the most recently issued one
may publish its result; a slower, older response is dropped instead of
overwriting a newer one.
"""

import datetime
import logging
import threading
from typing import Dict

logger = logging.getLogger(__name__)


def dated_kind(kind: str, day: datetime.date) -> str:
    """Request kind scoped to one date; requests for other dates never supersede it."""
    return f"{kind}:{day.isoformat()}"


class RequestSequencer:
    """Issues increasing tokens per request kind and tells which one is current."""

    def __init__(self):
        self._latest: Dict[str, int] = {}
        self._lock = threading.Lock()

    def issue(self, kind: str) -> int:
        """Register a new request of `kind` and return its token."""
        with self._lock:
            token = self._latest.get(kind, 0) + 1
            self._latest[kind] = token
            return token

    def is_current(self, kind: str, token: int) -> bool:
        """True if no newer request of `kind` was issued after `token`."""
        with self._lock:
            current = self._latest.get(kind, 0) == token
        if not current:
            logger.info(f"Dropping stale {kind} result (token {token})")
        return current
