"""AI task ingestion for strictpm.

Maps the loosely-typed task descriptors that the assistant passes to the
`addTasksToSchedule` tool into validated Task records.

Each raw descriptor is first validated into a tagged result:
- AcceptedDescriptor: normalized fields, ready to become a Task
- RejectedDescriptor: the descriptor's position in the batch and a reason

Missing optional fields get documented defaults (duration 30 minutes, tag
Other, the currently selected date). Present-but-invalid values are rejected
rather than coerced, except duration, which always falls back to the default.
A batch is never failed as a whole: accepted descriptors are ingested and
rejected ones are reported.
"""

import datetime
import logging
import math
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple, Union

from strictpm.models.constants import DATE_FORMAT, DEFAULT_DURATION_MINUTES, DEFAULT_TAG
from strictpm.models.task import Task, TaskTag
from strictpm.models.task_factory import create_task_base, create_subtask, current_time_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubtaskDescriptor:
    title: str
    duration: Optional[int] = None


@dataclass(frozen=True)
class AcceptedDescriptor:
    """A descriptor that passed validation, with all defaults applied."""
    index: int
    title: str
    estimated_duration: int
    tag: TaskTag
    date: datetime.date
    subtasks: Tuple[SubtaskDescriptor, ...] = ()


@dataclass(frozen=True)
class RejectedDescriptor:
    """A descriptor that could not be turned into a task."""
    index: int
    reason: str


DescriptorResult = Union[AcceptedDescriptor, RejectedDescriptor]


@dataclass
class IngestionResult:
    """Outcome of ingesting one batch of descriptors."""
    tasks: List[Task] = field(default_factory=list)
    rejected: List[RejectedDescriptor] = field(default_factory=list)


def coerce_minutes(value: Any) -> Optional[int]:
    """Positive whole minutes from a loosely-typed number, or None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    minutes = int(round(value))
    return minutes if minutes > 0 else None


def _parse_tag(value: Any) -> Optional[TaskTag]:
    if not isinstance(value, str):
        return None
    try:
        return TaskTag(value.strip())
    except ValueError:
        return None


def _parse_date(value: Any) -> Optional[datetime.date]:
    if not isinstance(value, str):
        return None
    try:
        return datetime.datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        return None


def _validate_subtasks(value: Any) -> Union[Tuple[SubtaskDescriptor, ...], str]:
    """Validate a subtask list; returns descriptors or a rejection reason."""
    if value is None:
        return ()
    if not isinstance(value, list):
        return "subtasks must be a list"

    subtasks = []
    for position, item in enumerate(value):
        if not isinstance(item, dict):
            return f"subtask {position} is not an object"
        title = item.get("title")
        if not isinstance(title, str) or not title.strip():
            return f"subtask {position} is missing a title"
        subtasks.append(SubtaskDescriptor(title=title.strip(), duration=coerce_minutes(item.get("duration"))))
    return tuple(subtasks)


def validate_descriptor(raw: Any, index: int, selected_date: datetime.date) -> DescriptorResult:
    """Validate one raw task descriptor from a tool call.

    Args:
        raw: Descriptor as decoded from the tool-call arguments
        index: Position of the descriptor in its batch (for reporting)
        selected_date: Date used when the descriptor carries none

    Returns:
        AcceptedDescriptor or RejectedDescriptor
    """
    if not isinstance(raw, dict):
        return RejectedDescriptor(index=index, reason="descriptor is not an object")

    title = raw.get("title")
    if not isinstance(title, str) or not title.strip():
        return RejectedDescriptor(index=index, reason="missing title")

    duration = coerce_minutes(raw.get("estimatedDuration"))
    if duration is None:
        # Missing or unusable durations fall back to the default
        duration = DEFAULT_DURATION_MINUTES

    tag = DEFAULT_TAG
    if raw.get("tag") is not None:
        tag = _parse_tag(raw.get("tag"))
        if tag is None:
            return RejectedDescriptor(index=index, reason=f"unknown tag {raw.get('tag')!r}")

    date = selected_date
    if raw.get("date") is not None:
        date = _parse_date(raw.get("date"))
        if date is None:
            return RejectedDescriptor(index=index, reason=f"invalid date {raw.get('date')!r}")

    subtasks = _validate_subtasks(raw.get("subtasks"))
    if isinstance(subtasks, str):
        return RejectedDescriptor(index=index, reason=subtasks)

    return AcceptedDescriptor(
        index=index,
        title=title.strip(),
        estimated_duration=duration,
        tag=tag,
        date=date,
        subtasks=subtasks,
    )


def build_task(descriptor: AcceptedDescriptor, now_ms: int) -> Task:
    """Turn an accepted descriptor into a pending Task with fresh ids."""
    subtasks = [create_subtask(st.title, st.duration) for st in descriptor.subtasks]
    return create_task_base(
        title=descriptor.title,
        date=descriptor.date,
        estimated_duration=descriptor.estimated_duration,
        tag=descriptor.tag,
        subtasks=subtasks or None,
        now_ms=now_ms,
    )


def ingest_descriptors(
    raw_descriptors: Sequence[Any],
    selected_date: datetime.date,
    now_ms: Optional[int] = None,
) -> IngestionResult:
    """Validate a batch of descriptors and build tasks for the valid ones.

    Args:
        raw_descriptors: The `tasks` argument of an addTasksToSchedule call
        selected_date: Currently selected date (default owning date)
        now_ms: Ingestion timestamp (epoch ms); defaults to now

    Returns:
        IngestionResult with the new tasks (in batch order) and the rejects
    """
    result = IngestionResult()
    if now_ms is None:
        now_ms = current_time_ms()

    for index, raw in enumerate(raw_descriptors or []):
        validated = validate_descriptor(raw, index, selected_date)
        if isinstance(validated, RejectedDescriptor):
            logger.warning(f"Rejected task descriptor {index}: {validated.reason}")
            result.rejected.append(validated)
            continue
        result.tasks.append(build_task(validated, now_ms))

    logger.info(f"Ingested {len(result.tasks)} task(s), rejected {len(result.rejected)}")
    return result
