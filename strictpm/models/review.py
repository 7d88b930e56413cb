"""Daily statistics and review data models for strictpm."""

import datetime
from typing import List
from pydantic import BaseModel, Field


class DailyStats(BaseModel):
    """Completion statistics for one calendar date."""

    total_tasks: int = Field(0, ge=0)
    completed_tasks: int = Field(0, ge=0)
    completion_rate: int = Field(0, ge=0, le=100, description="Rounded completion percentage")
    total_estimated_minutes: int = Field(0, ge=0)
    completed_minutes: int = Field(0, ge=0)


class DailyReview(BaseModel):
    """Generated end-of-day review for one date."""

    date: datetime.date
    stats: DailyStats
    review_text: str
    pending_titles: List[str] = Field(default_factory=list, description="Titles still to improve on")
