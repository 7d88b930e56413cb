"""Task lifecycle transitions for strictpm.

States: pending -> in-progress -> completed, with completion reversible back to
pending. Every transition is pure: it returns a new Task record and leaves the
input untouched. Persisting the result is the caller's job (see TaskStore.update).
"""

from typing import Optional, List

from strictpm.engine.errors import InvalidTransitionError, SubtaskNotFoundError
from strictpm.models.task import Task, TaskStatus, TaskTag, Subtask
from strictpm.models.task_factory import current_time_ms


def start_task(task: Task, now_ms: Optional[int] = None) -> Task:
    """Move a pending task to in-progress and record the start time.

    Raises:
        InvalidTransitionError: If the task is not pending
    """
    if task.status != TaskStatus.PENDING:
        raise InvalidTransitionError(task.id, task.status, "start")

    return task.model_copy(update={
        "status": TaskStatus.IN_PROGRESS.value,
        "actual_start_time": now_ms if now_ms is not None else current_time_ms(),
    })


def toggle_complete(task: Task, now_ms: Optional[int] = None) -> Task:
    """Toggle completion.

    Any non-completed status becomes completed with an end timestamp; a
    completed task reverts to pending and loses its end timestamp. The start
    timestamp is kept either way.
    """
    if task.status == TaskStatus.COMPLETED:
        return task.model_copy(update={
            "status": TaskStatus.PENDING.value,
            "actual_end_time": None,
        })

    return task.model_copy(update={
        "status": TaskStatus.COMPLETED.value,
        "actual_end_time": now_ms if now_ms is not None else current_time_ms(),
    })


def toggle_subtask(task: Task, subtask_id: str) -> Task:
    """Flip one subtask's completion flag.

    The parent task's own status is never changed here.

    Raises:
        SubtaskNotFoundError: If the task has no subtask with this id
    """
    subtasks = task.subtasks or []
    if not any(st.id == subtask_id for st in subtasks):
        raise SubtaskNotFoundError(task.id, subtask_id)

    updated = [
        st.model_copy(update={"is_completed": not st.is_completed}) if st.id == subtask_id else st
        for st in subtasks
    ]
    return task.model_copy(update={"subtasks": updated})


def edit_task(
    task: Task,
    title: Optional[str] = None,
    estimated_duration: Optional[int] = None,
    tag: Optional[TaskTag] = None,
    subtasks: Optional[List[Subtask]] = None,
) -> Task:
    """Return an edited copy of a task.

    Only the descriptive fields can change. Identity, owning date, creation
    time, status and lifecycle timestamps are carried over unchanged. The
    result is re-validated so an edit cannot produce an invalid record.
    """
    data = task.model_dump()
    if title is not None:
        data["title"] = title
    if estimated_duration is not None:
        data["estimated_duration"] = estimated_duration
    if tag is not None:
        data["tag"] = tag
    if subtasks is not None:
        data["subtasks"] = [st.model_dump() for st in subtasks]
    return Task.model_validate(data)
