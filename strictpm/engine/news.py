"""Daily economic news blurb for strictpm.

One blurb per calendar day: the first request of the day asks the
text-generation service and caches the answer under `strictpm_news_<date>`;
later requests that day are served from the cache.
"""

import datetime
import logging
from typing import Optional

from strictpm.database.kv_store import KeyValueStore
from strictpm.engine.sequencing import RequestSequencer, dated_kind
from strictpm.integrations.openai_client import OpenAIClient, log_api_failure
from strictpm.models.chat import DailyNews
from strictpm.models.constants import (
    DATE_FORMAT,
    NEWS_STORAGE_KEY_PREFIX,
    NEWS_EMPTY_FALLBACK,
    NEWS_ERROR_FALLBACK,
    NEWS_HEADLINE_PLACEHOLDER,
    NEWS_SUMMARY_PLACEHOLDER,
)

logger = logging.getLogger(__name__)

NEWS_PROMPT = (
    "请提供一条今天或最近24小时内最重要的全球或中国宏观经济新闻。"
    "格式严格要求三行：第一行是简短的标题（20字以内），第二行是新闻摘要（50字以内），"
    "第三行是一句核心洞察或对普通人的影响（30字以内）。不要有Markdown格式，不要有额外解释。"
)
NEWS_MAX_TOKENS = 200
NEWS_TEMPERATURE = 0.5


def news_storage_key(day: datetime.date) -> str:
    return f"{NEWS_STORAGE_KEY_PREFIX}{day.strftime(DATE_FORMAT)}"


def parse_news(text: str) -> DailyNews:
    """Split a three-line blurb into headline, summary and insight.

    Blank lines are ignored; everything after the second line is joined into
    the insight.
    """
    lines = [line.strip() for line in (text or "").split("\n") if line.strip()]
    return DailyNews(
        headline=lines[0] if lines else NEWS_HEADLINE_PLACEHOLDER,
        summary=lines[1] if len(lines) > 1 else NEWS_SUMMARY_PLACEHOLDER,
        insight=" ".join(lines[2:]),
    )


class NewsService:
    """Fetches and caches the daily news blurb."""

    def __init__(self, kv_store: KeyValueStore, client: OpenAIClient, sequencer: Optional[RequestSequencer] = None):
        self.kv_store = kv_store
        self.client = client
        self.sequencer = sequencer or RequestSequencer()

    def fetch_news_text(self) -> str:
        """Ask for a fresh blurb; returns a static text instead of raising."""
        try:
            text = self.client.generate_text(
                NEWS_PROMPT,
                temperature=NEWS_TEMPERATURE,
                max_tokens=NEWS_MAX_TOKENS,
            )
        except Exception as e:
            log_api_failure(e, "daily news fetch")
            return NEWS_ERROR_FALLBACK
        return text or NEWS_EMPTY_FALLBACK

    def get_daily_news_text(self, today: Optional[datetime.date] = None) -> str:
        """Return today's blurb, fetching and caching it on the first call of the day."""
        today = today or datetime.date.today()
        key = news_storage_key(today)

        cached = self.kv_store.get(key)
        if cached:
            return cached

        kind = dated_kind("news", today)
        token = self.sequencer.issue(kind)
        text = self.fetch_news_text()
        # The fallback text is cached as well, so a failed day is not re-fetched
        if self.sequencer.is_current(kind, token):
            self.kv_store.set(key, text)
            logger.info(f"Cached daily news under {key}")
        return text

    def get_daily_news(self, today: Optional[datetime.date] = None) -> DailyNews:
        return parse_news(self.get_daily_news_text(today))
