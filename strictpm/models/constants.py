"""Constants for strictpm.

This module centralizes default values, storage keys and the static texts shown
to the user when the text-generation service is unavailable.
"""

from strictpm.models.task import TaskStatus, TaskTag


# Task defaults
DEFAULT_DURATION_MINUTES = 30
DEFAULT_TAG = TaskTag.OTHER
DEFAULT_STATUS = TaskStatus.PENDING

# Storage keys
TASKS_STORAGE_KEY = "strictpm_tasks"
NEWS_STORAGE_KEY_PREFIX = "strictpm_news_"

# Date format for owning dates and dated storage keys
DATE_FORMAT = "%Y-%m-%d"

# Chat tool
ADD_TASKS_TOOL_NAME = "addTasksToSchedule"
ADD_TASKS_TOOL_RESULT = "Tasks successfully added to user schedule."

# Chat transcript texts
CHAT_WELCOME_TEXT = "你好！我是 CoachPM。我可以帮你规划多天的日程，也可以帮你拆解复杂的任务。请告诉我你的目标。"
CHAT_TASKS_ADDED_FALLBACK = "已添加到日程。"
CHAT_EMPTY_REPLY_FALLBACK = "收到。"
CHAT_ERROR_FALLBACK = "连接出错，请重试。"

# Daily review texts
REVIEW_EMPTY_FALLBACK = "无法生成复盘。"
REVIEW_ERROR_FALLBACK = "无法生成复盘，请检查网络连接。"

# Daily news texts (three lines: headline, summary, insight)
NEWS_EMPTY_FALLBACK = "市场观察\n今日全球市场波动较小，投资者静待数据发布。\n关注长期价值，保持投资定力。"
NEWS_ERROR_FALLBACK = "连接超时\n无法获取今日最新财经资讯，请检查网络。\n保持冷静，专注于当下的工作与生活。"
NEWS_HEADLINE_PLACEHOLDER = "获取经济资讯中..."
NEWS_SUMMARY_PLACEHOLDER = "..."
