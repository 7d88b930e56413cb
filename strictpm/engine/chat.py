"""CoachPM chat session for strictpm.

One conversational session per service lifetime, created lazily on the first
message. Each turn forwards the user's text to the model together with the
`addTasksToSchedule` tool; when the model calls the tool, the task descriptors
are ingested into the task store, a tool result is sent back on the same
session and the model's follow-up reply is shown.

Turns are dispatched through a single-worker executor, so two overlapping
requests can never interleave their tool-call state.
"""

import datetime
import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from strictpm.database.repository import TaskStore
from strictpm.engine.ingestion import ingest_descriptors, IngestionResult
from strictpm.integrations.openai_client import OpenAIClient, ADD_TASKS_TOOL, log_api_failure
from strictpm.models.chat import ChatMessage, ChatRole
from strictpm.models.constants import (
    ADD_TASKS_TOOL_NAME,
    ADD_TASKS_TOOL_RESULT,
    CHAT_WELCOME_TEXT,
    CHAT_TASKS_ADDED_FALLBACK,
    CHAT_EMPTY_REPLY_FALLBACK,
    CHAT_ERROR_FALLBACK,
    DATE_FORMAT,
)
from strictpm.models.task_factory import current_time_ms, new_id

logger = logging.getLogger(__name__)

_WEEKDAYS = ["星期一", "星期二", "星期三", "星期四", "星期五", "星期六", "星期日"]

SYSTEM_INSTRUCTION_TEMPLATE = """
你是一个专业、理性且乐于助人的项目经理助手（CoachPM）。
当前时间：{today_label}。
1. 帮助用户规划日程。
2. 允许跨天规划，确定日期后使用 '{tool_name}' 工具。
3. 任务时长一律以分钟为单位（例如"1小时"写作 60）。
当前已有 {task_count} 个任务。
"""


def format_today_label(today: datetime.date) -> str:
    """Textual "today" reference for the session, e.g. 2024-05-01 (星期三)."""
    return f"{today.strftime(DATE_FORMAT)} ({_WEEKDAYS[today.weekday()]})"


def build_system_instruction(task_count: int, today_label: str) -> str:
    return SYSTEM_INSTRUCTION_TEMPLATE.format(
        today_label=today_label,
        tool_name=ADD_TASKS_TOOL_NAME,
        task_count=task_count,
    ).strip()


@dataclass
class ChatSessionState:
    """Explicit state of the one long-lived model conversation."""
    system_instruction: str
    history: List[Dict[str, Any]] = field(default_factory=list)

    def request_messages(self) -> List[Dict[str, Any]]:
        return [{"role": "system", "content": self.system_instruction}, *self.history]


def assistant_message_to_dict(message: Any) -> Dict[str, Any]:
    """Convert an SDK assistant message into a history entry."""
    entry: Dict[str, Any] = {"role": "assistant", "content": message.content or ""}
    tool_calls = getattr(message, "tool_calls", None) or []
    if tool_calls:
        entry["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.function.name, "arguments": call.function.arguments},
            }
            for call in tool_calls
        ]
    return entry


def parse_tool_arguments(arguments: Any) -> Dict[str, Any]:
    """Decode tool-call arguments (JSON text or an already-decoded dict)."""
    if isinstance(arguments, dict):
        return arguments
    try:
        decoded = json.loads(arguments or "{}")
    except (TypeError, json.JSONDecodeError):
        logger.warning("Tool call arguments are not valid JSON")
        return {}
    return decoded if isinstance(decoded, dict) else {}


class ChatService:
    """Visible transcript plus the model session behind it."""

    def __init__(
        self,
        task_store: TaskStore,
        client: OpenAIClient,
        today_provider: Callable[[], datetime.date] = datetime.date.today,
    ):
        self.task_store = task_store
        self.client = client
        self.today_provider = today_provider
        self.session: Optional[ChatSessionState] = None
        self._transcript: List[ChatMessage] = []
        self._transcript_lock = threading.Lock()
        self._dispatcher = ThreadPoolExecutor(max_workers=1, thread_name_prefix="chat-turn")
        self._append(ChatRole.MODEL, CHAT_WELCOME_TEXT)

    def _append(self, role: ChatRole, text: str, is_system: bool = False) -> ChatMessage:
        message = ChatMessage(
            id=new_id(),
            role=role,
            text=text,
            is_system=is_system,
            timestamp=current_time_ms(),
        )
        with self._transcript_lock:
            self._transcript.append(message)
        return message

    def get_transcript(self) -> List[ChatMessage]:
        with self._transcript_lock:
            return list(self._transcript)

    def ensure_session(self) -> ChatSessionState:
        """Create the session on first use; later calls reuse it."""
        if self.session is None:
            today_label = format_today_label(self.today_provider())
            self.session = ChatSessionState(
                system_instruction=build_system_instruction(self.task_store.count(), today_label),
            )
            logger.info(f"Created chat session ({self.task_store.count()} existing tasks)")
        return self.session

    def send_message(self, text: str, selected_date: Optional[datetime.date] = None) -> List[ChatMessage]:
        """Run one chat turn; turns are queued and executed one at a time.

        Args:
            text: The user's message
            selected_date: Date used for tool-added tasks that carry none (defaults to today)

        Returns:
            The transcript messages appended by this turn
        """
        future = self._dispatcher.submit(self._run_turn, text, selected_date)
        return future.result()

    def shutdown(self) -> None:
        self._dispatcher.shutdown(wait=True)

    def _run_turn(self, text: str, selected_date: Optional[datetime.date]) -> List[ChatMessage]:
        appended = [self._append(ChatRole.USER, text)]

        try:
            session = self.ensure_session()
            session.history.append({"role": "user", "content": text})

            reply = self.client.chat(session.request_messages(), tools=[ADD_TASKS_TOOL])
            session.history.append(assistant_message_to_dict(reply))

            tool_calls = getattr(reply, "tool_calls", None) or []
            if not tool_calls:
                appended.append(self._append(ChatRole.MODEL, reply.content or CHAT_EMPTY_REPLY_FALLBACK))
                return appended

            result = self._answer_tool_calls(session, tool_calls, selected_date or self.today_provider())
            if result is not None and result.tasks:
                appended.append(self._append(
                    ChatRole.MODEL, f"已添加 {len(result.tasks)} 个任务到日程。", is_system=True
                ))

            follow_up = self.client.chat(session.request_messages(), tools=[ADD_TASKS_TOOL])
            session.history.append(assistant_message_to_dict(follow_up))
            appended.append(self._append(ChatRole.MODEL, follow_up.content or CHAT_TASKS_ADDED_FALLBACK))
            return appended

        except Exception as e:
            log_api_failure(e, "chat turn")
            appended.append(self._append(ChatRole.MODEL, CHAT_ERROR_FALLBACK))
            return appended

    def _answer_tool_calls(
        self,
        session: ChatSessionState,
        tool_calls: List[Any],
        selected_date: datetime.date,
    ) -> Optional[IngestionResult]:
        """Execute the first addTasksToSchedule call and answer every call id.

        The API requires one tool message per tool call, so any extra or
        unknown calls get an explicit "ignored" result, and a failed save
        gets an error result.
        """
        result: Optional[IngestionResult] = None
        handled = False

        for call in tool_calls:
            name = call.function.name
            if name == ADD_TASKS_TOOL_NAME and not handled:
                handled = True
                try:
                    result = self._add_tasks(call.function.arguments, selected_date)
                    payload = self._tool_result_payload(result)
                except Exception as e:
                    logger.error(f"Failed to add tasks from tool call {call.id}: {type(e).__name__}")
                    payload = {"error": "Tasks could not be saved.", "added": 0}
            elif name == ADD_TASKS_TOOL_NAME:
                payload = {"result": "Ignored: only one addTasksToSchedule call is handled per turn."}
            else:
                logger.warning(f"Model called unknown tool {name}")
                payload = {"error": f"Unknown tool '{name}'."}

            session.history.append({
                "role": "tool",
                "tool_call_id": call.id,
                "content": json.dumps(payload, ensure_ascii=False),
            })

        return result

    def _add_tasks(self, arguments: Any, selected_date: datetime.date) -> IngestionResult:
        args = parse_tool_arguments(arguments)
        descriptors = args.get("tasks")
        if not isinstance(descriptors, list):
            logger.warning("addTasksToSchedule call without a tasks list")
            descriptors = []

        result = ingest_descriptors(descriptors, selected_date)
        if result.tasks:
            self.task_store.create_many(result.tasks)
        return result

    @staticmethod
    def _tool_result_payload(result: IngestionResult) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "result": ADD_TASKS_TOOL_RESULT if result.tasks else "No tasks were added.",
            "added": len(result.tasks),
        }
        if result.rejected:
            payload["rejected"] = [
                {"index": rejected.index, "reason": rejected.reason} for rejected in result.rejected
            ]
        return payload
