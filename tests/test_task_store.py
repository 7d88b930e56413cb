"""Tests for TaskStore persistence and CRUD operations."""

import json
import pytest
import uuid
from datetime import date

from strictpm.database.kv_store import InMemoryKeyValueStore
from strictpm.database.repository import TaskStore
from strictpm.engine.errors import TaskNotFoundError, DuplicateTaskError, ImmutableFieldError
from strictpm.engine.lifecycle import toggle_complete, start_task
from strictpm.models.constants import TASKS_STORAGE_KEY
from strictpm.models.task import Task, Subtask, TaskTag


class TestTaskStore:
    """Test TaskStore CRUD operations."""

    def test_create_and_get(self, task_store, sample_task):
        task_store.create(sample_task)

        assert task_store.get(sample_task.id) == sample_task
        assert task_store.count() == 1

    def test_get_nonexistent_task(self, task_store):
        assert task_store.get("nonexistent-id") is None

    def test_get_all_keeps_insertion_order(self, task_store, sample_task_base):
        titles = ["Task 1", "Task 2", "Task 3"]
        for title in titles:
            task_store.create(Task(**{**sample_task_base, "id": str(uuid.uuid4()), "title": title}))

        assert [task.title for task in task_store.get_all()] == titles

    def test_get_for_date(self, task_store, sample_task_base):
        today = Task(**{**sample_task_base, "id": "t1", "date": date(2024, 5, 1)})
        tomorrow = Task(**{**sample_task_base, "id": "t2", "date": date(2024, 5, 2)})
        task_store.create_many([today, tomorrow])

        assert task_store.get_for_date(date(2024, 5, 2)) == [tomorrow]

    def test_duplicate_id_rejected(self, task_store, sample_task):
        task_store.create(sample_task)
        with pytest.raises(DuplicateTaskError):
            task_store.create(sample_task)
        assert task_store.count() == 1

    def test_duplicate_inside_batch_adds_nothing(self, task_store, sample_task):
        with pytest.raises(DuplicateTaskError):
            task_store.create_many([sample_task, sample_task])
        assert task_store.count() == 0

    def test_update_replaces_whole_record(self, task_store, sample_task):
        task_store.create(sample_task)
        done = toggle_complete(sample_task, now_ms=99)

        task_store.update(done)

        assert task_store.get(sample_task.id) == done

    def test_update_cannot_move_date(self, task_store, sample_task):
        task_store.create(sample_task)
        moved = sample_task.model_copy(update={"date": date(2030, 1, 1)})

        with pytest.raises(ImmutableFieldError):
            task_store.update(moved)

    def test_update_unknown_task(self, task_store, sample_task):
        with pytest.raises(TaskNotFoundError):
            task_store.update(sample_task)

    def test_delete(self, task_store, sample_task):
        task_store.create(sample_task)
        task_store.delete(sample_task.id)

        assert task_store.get(sample_task.id) is None
        assert json.loads(task_store.kv_store.get(TASKS_STORAGE_KEY)) == []

    def test_delete_unknown_task(self, task_store):
        with pytest.raises(TaskNotFoundError):
            task_store.delete("nonexistent-id")


class TestTaskStorePersistence:
    """Snapshot persistence and reload."""

    def test_every_mutation_rewrites_snapshot(self, kv_store, task_store, sample_task):
        task_store.create(sample_task)
        snapshot = json.loads(kv_store.get(TASKS_STORAGE_KEY))
        assert snapshot[0]["status"] == "pending"

        task_store.update(start_task(sample_task, now_ms=7))
        snapshot = json.loads(kv_store.get(TASKS_STORAGE_KEY))
        assert snapshot[0]["status"] == "in-progress"
        assert snapshot[0]["actualStartTime"] == 7

    def test_reload_reproduces_tasks(self, kv_store, sample_task_base):
        store = TaskStore(kv_store)
        created = []
        for n in range(5):
            task = Task(**{
                **sample_task_base,
                "id": f"task-{n}",
                "title": f"Task {n}",
                "estimated_duration": 10 + n,
                "tag": list(TaskTag)[n],
                "subtasks": [Subtask(id=f"sub-{n}", title="Step", duration=5)] if n % 2 else None,
            })
            store.create(task)
            created.append(task)

        reloaded = TaskStore(kv_store)

        assert reloaded.get_all() == created

    def test_reload_from_sql_backend(self, sql_kv_store, completed_task, task_with_subtasks):
        store = TaskStore(sql_kv_store)
        store.create_many([completed_task.model_copy(update={"id": "done"}), task_with_subtasks])

        reloaded = TaskStore(sql_kv_store)

        assert [task.id for task in reloaded.get_all()] == ["done", task_with_subtasks.id]
        assert reloaded.get("done").actual_end_time == completed_task.actual_end_time
        assert reloaded.get(task_with_subtasks.id).subtasks == task_with_subtasks.subtasks

    def test_corrupt_snapshot_treated_as_empty(self, caplog):
        kv_store = InMemoryKeyValueStore({TASKS_STORAGE_KEY: "{not json"})

        store = TaskStore(kv_store)

        assert store.get_all() == []
        assert "Failed to parse saved tasks" in caplog.text

    def test_non_list_snapshot_treated_as_empty(self):
        store = TaskStore(InMemoryKeyValueStore({TASKS_STORAGE_KEY: json.dumps({"id": "x"})}))
        assert store.get_all() == []

    def test_invalid_records_are_skipped(self, sample_task):
        snapshot = [sample_task.to_snapshot(), {"id": "broken", "title": "No date"}]
        store = TaskStore(InMemoryKeyValueStore({TASKS_STORAGE_KEY: json.dumps(snapshot)}))

        assert [task.id for task in store.get_all()] == [sample_task.id]

    def test_loads_snapshot_from_earlier_app_versions(self):
        raw = json.dumps([{
            "id": "17145504000001abc",
            "title": "晨跑",
            "estimatedDuration": 30,
            "tag": "Health",
            "status": "completed",
            "date": "2024-05-01",
            "createdAt": 1714550400000,
            "actualEndTime": 1714552200000,
            "deferredCount": 0,
            "subtasks": [],
        }], ensure_ascii=False)

        store = TaskStore(InMemoryKeyValueStore({TASKS_STORAGE_KEY: raw}))
        task = store.get("17145504000001abc")

        assert task.title == "晨跑"
        assert task.is_completed
        assert task.subtasks is None

    def test_loads_loosely_typed_durations_from_earlier_app_versions(self):
        raw = json.dumps([
            {
                "id": "ai-1",
                "title": "复习",
                "estimatedDuration": 45.5,
                "tag": "Study",
                "status": "pending",
                "date": "2024-05-01",
                "createdAt": 1714550400000,
                "deferredCount": 0,
            },
            {
                "id": "ai-2",
                "title": "写周报",
                "tag": "Work",
                "status": "pending",
                "date": "2024-05-01",
                "createdAt": 1714550400000,
                "deferredCount": 0,
                "subtasks": [
                    {"id": "s1", "title": "整理数据", "isCompleted": False, "duration": 0},
                    {"id": "s2", "title": "发送", "isCompleted": True, "duration": 12.4},
                ],
            },
        ], ensure_ascii=False)

        store = TaskStore(InMemoryKeyValueStore({TASKS_STORAGE_KEY: raw}))

        assert [task.id for task in store.get_all()] == ["ai-1", "ai-2"]
        assert store.get("ai-1").estimated_duration == 46
        report = store.get("ai-2")
        assert report.estimated_duration == 30
        assert report.subtasks[0].duration is None
        assert report.subtasks[1].duration == 12
        assert report.subtasks[1].is_completed is True


class FailingKeyValueStore(InMemoryKeyValueStore):
    """Key-value store whose writes fail once `fail_writes` is set."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.fail_writes = False

    def set(self, key, value):
        if self.fail_writes:
            raise RuntimeError("storage unavailable")
        super().set(key, value)


class TestTaskStoreWriteFailures:

    @pytest.fixture
    def failing_kv_store(self):
        return FailingKeyValueStore()

    def test_failed_create_leaves_store_unchanged(self, failing_kv_store, sample_task):
        store = TaskStore(failing_kv_store)
        failing_kv_store.fail_writes = True

        with pytest.raises(RuntimeError):
            store.create(sample_task)

        assert store.get_all() == []
        assert failing_kv_store.get(TASKS_STORAGE_KEY) is None

    def test_failed_update_keeps_previous_record(self, failing_kv_store, sample_task):
        store = TaskStore(failing_kv_store)
        store.create(sample_task)
        failing_kv_store.fail_writes = True

        with pytest.raises(RuntimeError):
            store.update(toggle_complete(sample_task))

        assert store.get(sample_task.id).status == "pending"
        assert TaskStore(failing_kv_store).get(sample_task.id).status == "pending"

    def test_failed_delete_keeps_task(self, failing_kv_store, sample_task):
        store = TaskStore(failing_kv_store)
        store.create(sample_task)
        failing_kv_store.fail_writes = True

        with pytest.raises(RuntimeError):
            store.delete(sample_task.id)

        assert store.get(sample_task.id) is not None
        assert store.count() == 1


class TestSQLKeyValueStore:

    def test_set_get_overwrite_delete(self, sql_kv_store):
        assert sql_kv_store.get("k") is None
        sql_kv_store.set("k", "v1")
        sql_kv_store.set("k", "v2")
        assert sql_kv_store.get("k") == "v2"

        sql_kv_store.delete("k")
        assert sql_kv_store.get("k") is None

    def test_clear(self, sql_kv_store):
        sql_kv_store.set("a", "1")
        sql_kv_store.set("b", "2")
        sql_kv_store.clear()
        assert sql_kv_store.get("a") is None
        assert sql_kv_store.get("b") is None
