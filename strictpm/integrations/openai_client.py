"""OpenAI API integration for strictpm.

This module wraps the chat completions API for the three AI features: the
daily news blurb, the end-of-day review and the CoachPM chat with its
`addTasksToSchedule` tool. Callers catch failures and substitute static
fallback texts; nothing here retries.
"""

import os
import logging
from typing import Any, Dict, List, Optional
from openai import OpenAI, APIError
from dotenv import load_dotenv

from strictpm.models.constants import ADD_TASKS_TOOL_NAME
from strictpm.models.task import TaskTag

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_TIMEOUT_SEC = float(os.getenv("OPENAI_TIMEOUT_SEC", "30"))

# Tool declaration for the chat session (OpenAI function-calling format)
ADD_TASKS_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": ADD_TASKS_TOOL_NAME,
        "description": "Add tasks to the user's schedule.",
        "parameters": {
            "type": "object",
            "properties": {
                "tasks": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "title": {"type": "string"},
                            "estimatedDuration": {
                                "type": "number",
                                "description": "Estimated duration in minutes",
                            },
                            "tag": {"type": "string", "enum": [tag.value for tag in TaskTag]},
                            "date": {"type": "string", "description": "Owning date, YYYY-MM-DD"},
                            "subtasks": {
                                "type": "array",
                                "items": {
                                    "type": "object",
                                    "properties": {
                                        "title": {"type": "string"},
                                        "duration": {
                                            "type": "number",
                                            "description": "Duration in minutes",
                                        },
                                    },
                                    "required": ["title"],
                                },
                            },
                        },
                        "required": ["title", "estimatedDuration", "tag"],
                    },
                }
            },
            "required": ["tasks"],
        },
    },
}


class OpenAINotConfiguredError(RuntimeError):
    """Raised when an AI call is attempted without an API key."""


def log_api_failure(error: Exception, context: str) -> None:
    """Log an AI call failure without echoing the error message.

    The message of an SDK error can contain request details, so only the
    status/code (for API errors) or the exception type is logged.
    """
    if isinstance(error, APIError):
        error_code = getattr(error, 'code', None)
        status_code = getattr(error, 'status_code', None)

        if error_code == 'insufficient_quota':
            logger.warning(f"OpenAI API quota insufficient during {context}. Please check billing in the OpenAI dashboard.")
        elif status_code == 429:
            logger.warning(f"OpenAI API rate limit exceeded during {context}. Please wait before retrying.")
        else:
            logger.error(f"OpenAI API error during {context}: {status_code or 'unknown'} ({error_code or 'unknown'})")
    elif isinstance(error, OpenAINotConfiguredError):
        logger.debug(f"Skipping {context}: OpenAI client not configured")
    else:
        logger.error(f"Error during {context}: {type(error).__name__}")


class OpenAIClient:
    """Client for OpenAI API integration."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key. If None, reads from OPENAI_API_KEY environment variable.
            model: Model name. If None, uses OPENAI_MODEL.

        Note:
            A missing API key does not fail here; every call then raises
            OpenAINotConfiguredError so callers fall back to their static texts.
        """
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model = model or OPENAI_MODEL
        self.client = None

        if self.api_key:
            # No automatic retries: one attempt per AI call
            self.client = OpenAI(api_key=self.api_key, timeout=OPENAI_TIMEOUT_SEC, max_retries=0)
        else:
            logger.warning("OPENAI_API_KEY not found in environment. AI features will use fallback texts.")

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def _require_client(self) -> OpenAI:
        if not self.client:
            raise OpenAINotConfiguredError("OPENAI_API_KEY is not set")
        return self.client

    def generate_text(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Send a single prompt and return the reply text.

        Returns:
            Reply text stripped of surrounding whitespace ("" if the model sent none)

        Raises:
            OpenAINotConfiguredError: If no API key is configured
            openai.APIError: On API failures
        """
        client = self._require_client()

        messages: List[Dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        kwargs: Dict[str, Any] = {}
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        response = client.chat.completions.create(
            model=self.model,
            messages=messages,
            **kwargs,
        )

        content = response.choices[0].message.content
        text = (content or "").strip()
        logger.debug(f"OpenAI generated {len(text)} chars")
        return text

    def chat(self, messages: List[Dict[str, Any]], tools: Optional[List[Dict[str, Any]]] = None) -> Any:
        """Run one chat completion over a full message history.

        Args:
            messages: OpenAI-style message dicts, system instruction first
            tools: Tool declarations offered to the model

        Returns:
            The assistant message (with `.content` and `.tool_calls`)

        Raises:
            OpenAINotConfiguredError: If no API key is configured
            openai.APIError: On API failures
        """
        client = self._require_client()

        kwargs: Dict[str, Any] = {}
        if tools:
            kwargs["tools"] = tools

        response = client.chat.completions.create(
            model=self.model,
            messages=messages,
            **kwargs,
        )
        return response.choices[0].message
