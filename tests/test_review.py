"""Tests for daily statistics and review generation."""

import pytest
import uuid
from datetime import date
from openai import APIError

from strictpm.engine.review import (
    build_review_prompt,
    completion_rate,
    compute_daily_stats,
    format_date_label,
    generate_daily_review,
)
from strictpm.integrations.openai_client import OpenAINotConfiguredError
from strictpm.models.constants import REVIEW_EMPTY_FALLBACK, REVIEW_ERROR_FALLBACK
from strictpm.models.task import Task, TaskStatus


def _task(base, title, completed=False, duration=30):
    data = {**base, "id": str(uuid.uuid4()), "title": title, "estimated_duration": duration}
    if completed:
        data.update(status=TaskStatus.COMPLETED, actual_end_time=1)
    return Task(**data)


class TestCompletionRate:

    def test_zero_tasks_is_zero(self):
        assert completion_rate(0, 0) == 0

    def test_one_of_three(self):
        assert completion_rate(1, 3) == 33

    def test_two_of_three_rounds_up(self):
        assert completion_rate(2, 3) == 67

    def test_half_rounds_up(self):
        # 12.5% -> 13%, as Math.round would
        assert completion_rate(1, 8) == 13

    def test_all_done(self):
        assert completion_rate(4, 4) == 100


class TestComputeDailyStats:

    def test_empty_day(self):
        stats = compute_daily_stats([])
        assert stats.total_tasks == 0
        assert stats.completion_rate == 0

    def test_mixed_day(self, sample_task_base):
        tasks = [
            _task(sample_task_base, "Run", completed=True, duration=40),
            _task(sample_task_base, "Read", duration=20),
            _task(sample_task_base, "Cook", duration=60),
        ]

        stats = compute_daily_stats(tasks)

        assert stats.total_tasks == 3
        assert stats.completed_tasks == 1
        assert stats.completion_rate == 33
        assert stats.total_estimated_minutes == 120
        assert stats.completed_minutes == 40


class TestGenerateDailyReview:

    def test_prompt_embeds_both_partitions(self, sample_task_base):
        done = [_task(sample_task_base, "Run", completed=True)]
        pending = [_task(sample_task_base, "Read"), _task(sample_task_base, "Cook")]

        prompt = build_review_prompt(done, pending, "2024年05月01日")

        assert "2024年05月01日" in prompt
        assert "已完成：Run" in prompt
        assert "未完成：Read, Cook" in prompt

    def test_date_label(self):
        assert format_date_label(date(2024, 5, 1)) == "2024年05月01日"

    def test_returns_generated_text(self, sample_task_base, mock_openai_client, selected_date):
        mock_openai_client.generate_text.return_value = "**做得好** 继续保持。"
        tasks = [_task(sample_task_base, "Run", completed=True), _task(sample_task_base, "Read")]

        review = generate_daily_review(tasks, selected_date, mock_openai_client)

        assert review.review_text == "**做得好** 继续保持。"
        assert review.stats.completion_rate == 50
        assert review.pending_titles == ["Read"]
        prompt = mock_openai_client.generate_text.call_args.args[0]
        assert "Run" in prompt and "Read" in prompt

    def test_empty_reply_uses_fallback(self, mock_openai_client, selected_date):
        mock_openai_client.generate_text.return_value = ""

        review = generate_daily_review([], selected_date, mock_openai_client)

        assert review.review_text == REVIEW_EMPTY_FALLBACK

    @pytest.mark.parametrize("error", [
        OpenAINotConfiguredError("no key"),
        ConnectionError("offline"),
        APIError("boom", request=None, body=None),
    ])
    def test_failure_returns_apology_verbatim(self, mock_openai_client, selected_date, error):
        mock_openai_client.generate_text.side_effect = error

        review = generate_daily_review([], selected_date, mock_openai_client)

        assert review.review_text == REVIEW_ERROR_FALLBACK
        mock_openai_client.generate_text.assert_called_once()
