"""Task creation factory for strictpm.

This module centralizes task creation logic so that manually created tasks and
AI-ingested tasks get the same identifiers, defaults and timestamps.
"""

import datetime
import time
import uuid
from typing import Optional, List, Dict, Any

from strictpm.models.task import Task, Subtask, TaskTag
from strictpm.models.constants import (
    DEFAULT_DURATION_MINUTES,
    DEFAULT_TAG,
    DEFAULT_STATUS,
)


def current_time_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    """Generate a fresh opaque identifier (UUID v4)."""
    return str(uuid.uuid4())


def create_task_defaults() -> Dict[str, Any]:
    """Get default task values as a dictionary."""
    return {
        "estimated_duration": DEFAULT_DURATION_MINUTES,
        "tag": DEFAULT_TAG,
        "status": DEFAULT_STATUS,
        "deferred_count": 0,
        "subtasks": None,
    }


def create_subtask(title: str, duration: Optional[int] = None) -> Subtask:
    """Create a new, not yet completed subtask.

    Args:
        title: Subtask title
        duration: Optional duration in minutes; non-positive values mean "no duration"

    Returns:
        Subtask with a freshly generated id
    """
    return Subtask(
        id=new_id(),
        title=title,
        is_completed=False,
        duration=duration if duration and duration > 0 else None,
    )


def create_task_base(
    title: str,
    date: datetime.date,
    estimated_duration: Optional[int] = None,
    tag: Optional[TaskTag] = None,
    subtasks: Optional[List[Subtask]] = None,
    now_ms: Optional[int] = None,
) -> Task:
    """Create a pending task with defaults, allowing overrides.

    Args:
        title: Task title (required)
        date: Owning calendar day (required; immutable afterwards)
        estimated_duration: Estimated duration in minutes (defaults to constant)
        tag: Category tag (defaults to Other)
        subtasks: Already-built subtasks; an empty list is stored as no list
        now_ms: Creation timestamp override (epoch ms), mainly for tests

    Returns:
        Task object with status pending and deferred count zero
    """
    defaults = create_task_defaults()

    return Task(
        id=new_id(),
        title=title,
        estimated_duration=estimated_duration if estimated_duration is not None else defaults["estimated_duration"],
        tag=tag if tag is not None else defaults["tag"],
        status=defaults["status"],
        date=date,
        created_at=now_ms if now_ms is not None else current_time_ms(),
        deferred_count=defaults["deferred_count"],
        subtasks=subtasks or defaults["subtasks"],
    )
