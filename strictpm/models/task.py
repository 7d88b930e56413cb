"""Task data model for strictpm."""

import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class TaskStatus(str, Enum):
    """Task status enumeration."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    DEFERRED = "deferred"  # Counter-only; no code path rolls a task to a later date


class TaskTag(str, Enum):
    """Task category tag enumeration."""
    LIFE = "Life"
    STUDY = "Study"
    WORK = "Work"
    HEALTH = "Health"
    OTHER = "Other"


class Subtask(BaseModel):
    """A sub-unit of a Task with only a binary completion state."""

    id: str = Field(..., description="Unique subtask identifier")
    title: str = Field(..., description="Subtask title")
    is_completed: bool = Field(False, alias="isCompleted", description="Completion flag")
    duration: Optional[int] = Field(None, gt=0, description="Optional duration in minutes")

    class Config:
        """Pydantic configuration."""
        populate_by_name = True


class Task(BaseModel):
    """Canonical Task model.

    Field aliases follow the camelCase keys of the persisted JSON snapshot so
    that snapshots written by earlier versions of the app reload unchanged.
    Timestamps are epoch milliseconds.
    """

    id: str = Field(..., description="Unique task identifier")
    title: str = Field(..., min_length=1, description="Task title")
    estimated_duration: int = Field(
        ..., gt=0, alias="estimatedDuration", description="Estimated duration in minutes"
    )
    tag: TaskTag = Field(TaskTag.OTHER, description="Task category tag")
    status: TaskStatus = Field(TaskStatus.PENDING, description="Task status")
    date: datetime.date = Field(..., description="Owning calendar day")
    created_at: int = Field(..., alias="createdAt", description="Creation timestamp (ms)")
    actual_start_time: Optional[int] = Field(
        None, alias="actualStartTime", description="When work actually started (ms)"
    )
    actual_end_time: Optional[int] = Field(
        None, alias="actualEndTime", description="When the task was completed (ms)"
    )
    deferred_count: int = Field(
        0, ge=0, alias="deferredCount", description="How many times the task was pushed back"
    )
    subtasks: Optional[List[Subtask]] = Field(None, description="Ordered subtasks (never empty)")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
        populate_by_name = True

    @field_validator("subtasks")
    @classmethod
    def _normalize_empty_subtasks(cls, v):
        # Absence of subtasks is "no list", never an empty list
        if not v:
            return None
        return v

    @model_validator(mode="after")
    def _check_end_time_matches_status(self):
        completed = self.status == TaskStatus.COMPLETED
        if completed and self.actual_end_time is None:
            raise ValueError("completed task requires actualEndTime")
        if not completed and self.actual_end_time is not None:
            raise ValueError("actualEndTime is only allowed on completed tasks")
        return self

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def to_snapshot(self) -> dict:
        """Serialize to the JSON-ready dict stored in the task snapshot."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
