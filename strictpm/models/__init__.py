"""Data models for strictpm."""

from strictpm.models.task import Task, Subtask, TaskStatus, TaskTag
from strictpm.models.chat import ChatMessage, ChatRole, DailyNews
from strictpm.models.review import DailyStats, DailyReview

__all__ = [
    "Task",
    "Subtask",
    "TaskStatus",
    "TaskTag",
    "ChatMessage",
    "ChatRole",
    "DailyNews",
    "DailyStats",
    "DailyReview",
]
