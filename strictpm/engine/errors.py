"""Domain errors raised by the task store and lifecycle engine."""


class TaskError(Exception):
    """Base class for task domain errors."""


class TaskNotFoundError(TaskError):
    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class DuplicateTaskError(TaskError):
    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} already exists")
        self.task_id = task_id


class SubtaskNotFoundError(TaskError):
    def __init__(self, task_id: str, subtask_id: str):
        super().__init__(f"Subtask {subtask_id} not found on task {task_id}")
        self.task_id = task_id
        self.subtask_id = subtask_id


class InvalidTransitionError(TaskError):
    """Raised when a lifecycle transition is not permitted from the task's status."""

    def __init__(self, task_id: str, status: str, action: str):
        super().__init__(f"Cannot {action} task {task_id} in status '{status}'")
        self.task_id = task_id
        self.status = status
        self.action = action


class ImmutableFieldError(TaskError):
    def __init__(self, task_id: str, field: str):
        super().__init__(f"Field '{field}' of task {task_id} cannot be changed")
        self.task_id = task_id
        self.field = field
