"""Daily review aggregation for strictpm.

Derives completion statistics for one calendar date and asks the
text-generation service for a narrative review of the day.
"""

import datetime
import logging
from typing import List, Tuple

from strictpm.integrations.openai_client import OpenAIClient, log_api_failure
from strictpm.models.constants import REVIEW_EMPTY_FALLBACK, REVIEW_ERROR_FALLBACK
from strictpm.models.review import DailyStats, DailyReview
from strictpm.models.task import Task

logger = logging.getLogger(__name__)

REVIEW_PROMPT_TEMPLATE = (
    "为用户进行 {date_label} 的复盘。已完成：{completed}。未完成：{pending}。"
    "请给出分析、建议和鼓励，分段输出。"
)


def completion_rate(completed: int, total: int) -> int:
    """Completion percentage rounded half-up; zero tasks is 0%, never undefined."""
    if total <= 0:
        return 0
    # Integer form of floor(100 * completed / total + 0.5)
    return (200 * completed + total) // (2 * total)


def partition_tasks(tasks: List[Task]) -> Tuple[List[Task], List[Task]]:
    """Split tasks into (completed, not completed), keeping order."""
    completed = [task for task in tasks if task.is_completed]
    pending = [task for task in tasks if not task.is_completed]
    return completed, pending


def compute_daily_stats(tasks: List[Task]) -> DailyStats:
    """Compute completion statistics for the tasks of one date."""
    completed, _ = partition_tasks(tasks)
    return DailyStats(
        total_tasks=len(tasks),
        completed_tasks=len(completed),
        completion_rate=completion_rate(len(completed), len(tasks)),
        total_estimated_minutes=sum(task.estimated_duration for task in tasks),
        completed_minutes=sum(task.estimated_duration for task in completed),
    )


def format_date_label(date: datetime.date) -> str:
    """Human-readable date used in prompts (e.g. 2024年05月01日)."""
    return f"{date.year:04d}年{date.month:02d}月{date.day:02d}日"


def build_review_prompt(completed: List[Task], pending: List[Task], date_label: str) -> str:
    return REVIEW_PROMPT_TEMPLATE.format(
        date_label=date_label,
        completed=", ".join(task.title for task in completed),
        pending=", ".join(task.title for task in pending),
    )


def request_review_text(client: OpenAIClient, prompt: str) -> str:
    """Ask for the review narrative once.

    Returns the generated text, or one of the static fallback texts. Never raises.
    """
    try:
        text = client.generate_text(prompt)
    except Exception as e:
        log_api_failure(e, "daily review generation")
        return REVIEW_ERROR_FALLBACK

    return text or REVIEW_EMPTY_FALLBACK


def generate_daily_review(tasks: List[Task], review_date: datetime.date, client: OpenAIClient) -> DailyReview:
    """Build the end-of-day review for one date.

    Args:
        tasks: Tasks owned by review_date
        review_date: The date under review
        client: Text-generation client

    Returns:
        DailyReview with statistics, review text (possibly a fallback string,
        to be shown verbatim) and the titles of unfinished tasks
    """
    completed, pending = partition_tasks(tasks)
    prompt = build_review_prompt(completed, pending, format_date_label(review_date))

    logger.info(f"Generating review for {review_date}: {len(completed)}/{len(tasks)} completed")
    review_text = request_review_text(client, prompt)

    return DailyReview(
        date=review_date,
        stats=compute_daily_stats(tasks),
        review_text=review_text,
        pending_titles=[task.title for task in pending],
    )
