"""Task store for strictpm.

Tasks live in an in-memory ordered list that is mirrored to the key-value store
under `strictpm_tasks` on every mutation. The snapshot is always rewritten in
full; there is no incremental diff. The in-memory list only changes once the
new snapshot has been written.
"""

import datetime
import json
import logging
import threading
from typing import Any, Dict, List, Optional, Iterable

from pydantic import ValidationError

from strictpm.database.kv_store import KeyValueStore
from strictpm.engine.errors import TaskNotFoundError, DuplicateTaskError, ImmutableFieldError
from strictpm.engine.ingestion import coerce_minutes
from strictpm.models.constants import TASKS_STORAGE_KEY, DEFAULT_DURATION_MINUTES
from strictpm.models.task import Task

logger = logging.getLogger(__name__)


def normalize_saved_record(item: Any) -> Any:
    """Repair loosely-typed durations in a saved task record.

    Older snapshots stored model-supplied durations as given, so they may be
    missing, fractional or non-positive. Task durations fall back to the
    default and subtask durations are dropped, the same way tool input is
    treated on ingestion. Anything that is not a dict is returned unchanged.
    """
    if not isinstance(item, dict):
        return item

    record: Dict[str, Any] = dict(item)
    duration_key = "estimated_duration" if "estimated_duration" in record else "estimatedDuration"
    record[duration_key] = coerce_minutes(record.get(duration_key)) or DEFAULT_DURATION_MINUTES

    subtasks = record.get("subtasks")
    if isinstance(subtasks, list):
        repaired = []
        for subtask in subtasks:
            if isinstance(subtask, dict) and "duration" in subtask:
                subtask = {**subtask, "duration": coerce_minutes(subtask["duration"])}
            repaired.append(subtask)
        record["subtasks"] = repaired
    return record


class TaskStore:
    """Ordered task collection persisted as a single JSON snapshot."""

    def __init__(self, kv_store: KeyValueStore, storage_key: str = TASKS_STORAGE_KEY):
        self.kv_store = kv_store
        self.storage_key = storage_key
        self._tasks: List[Task] = []
        self._lock = threading.RLock()
        self._tasks = self._load()

    def _load(self) -> List[Task]:
        """Read the saved snapshot once.

        A snapshot that fails to parse is logged and treated as "no saved data".
        Records are normalized first; those that still fail validation are skipped.
        """
        raw = self.kv_store.get(self.storage_key)
        if not raw:
            return []

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse saved tasks: {e}")
            return []

        if not isinstance(data, list):
            logger.error(f"Saved tasks snapshot is a {type(data).__name__}, expected a list")
            return []

        tasks: List[Task] = []
        seen_ids = set()
        for index, item in enumerate(data):
            try:
                task = Task.model_validate(normalize_saved_record(item))
            except ValidationError as e:
                logger.warning(f"Skipping invalid saved task at index {index}: {e.error_count()} error(s)")
                continue
            if task.id in seen_ids:
                logger.warning(f"Skipping duplicate saved task {task.id}")
                continue
            seen_ids.add(task.id)
            tasks.append(task)

        logger.info(f"Loaded {len(tasks)} saved tasks")
        return tasks

    def _commit(self, tasks: List[Task]) -> None:
        """Write the snapshot for `tasks`, then make it the current list.

        If the write raises, the current list is left untouched.
        """
        snapshot = json.dumps([task.to_snapshot() for task in tasks], ensure_ascii=False)
        self.kv_store.set(self.storage_key, snapshot)
        self._tasks = tasks
    def _index_of(self, task_id: str) -> int:
        for index, task in enumerate(self._tasks):
            if task.id == task_id:
                return index
        raise TaskNotFoundError(task_id)

    def get(self, task_id: str) -> Optional[Task]:
        """Get task by ID."""
        with self._lock:
            for task in self._tasks:
                if task.id == task_id:
                    return task
        return None

    def get_all(self) -> List[Task]:
        """All tasks in insertion order."""
        with self._lock:
            return list(self._tasks)

    def get_for_date(self, date: datetime.date) -> List[Task]:
        """Tasks owned by one calendar date, in insertion order."""
        with self._lock:
            return [task for task in self._tasks if task.date == date]

    def count(self) -> int:
        with self._lock:
            return len(self._tasks)

    def create(self, task: Task) -> Task:
        """Append a new task."""
        return self.create_many([task])[0]

    def create_many(self, tasks: Iterable[Task]) -> List[Task]:
        """Append several tasks with a single snapshot write.

        Raises:
            DuplicateTaskError: If any id is already in the store (nothing is added)
        """
        new_tasks = list(tasks)
        with self._lock:
            existing_ids = {task.id for task in self._tasks}
            for task in new_tasks:
                if task.id in existing_ids:
                    raise DuplicateTaskError(task.id)
                existing_ids.add(task.id)

            self._commit(self._tasks + new_tasks)

        for task in new_tasks:
            logger.debug(f"Created task {task.id}: {task.title[:50]}")
        return new_tasks

    def update(self, task: Task) -> Task:
        """Replace an existing task record as a whole.

        Raises:
            TaskNotFoundError: If no task has this id
            ImmutableFieldError: If the replacement moves the task to another date
        """
        with self._lock:
            index = self._index_of(task.id)
            if self._tasks[index].date != task.date:
                raise ImmutableFieldError(task.id, "date")
            tasks = list(self._tasks)
            tasks[index] = task
            self._commit(tasks)
        logger.debug(f"Updated task {task.id} (status={task.status})")
        return task

    def delete(self, task_id: str) -> None:
        """Remove a task by id."""
        with self._lock:
            index = self._index_of(task_id)
            self._commit(self._tasks[:index] + self._tasks[index + 1:])
        logger.debug(f"Deleted task {task_id}")
