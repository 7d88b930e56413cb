"""FastAPI web application for strictpm."""

import datetime
import logging
import threading
from typing import List, Optional, Dict

from fastapi import FastAPI, HTTPException, Depends, Query, Response
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field, ValidationError

from strictpm import __version__
from strictpm.database.database import SessionLocal, init_db
from strictpm.database.kv_store import KeyValueStore, SQLKeyValueStore
from strictpm.database.repository import TaskStore
from strictpm.engine.chat import ChatService
from strictpm.engine.errors import (
    TaskNotFoundError,
    SubtaskNotFoundError,
    InvalidTransitionError,
    ImmutableFieldError,
)
from strictpm.engine.lifecycle import start_task, toggle_complete, toggle_subtask, edit_task
from strictpm.engine.news import NewsService, parse_news
from strictpm.engine.review import compute_daily_stats, generate_daily_review
from strictpm.engine.sequencing import RequestSequencer, dated_kind
from strictpm.integrations.openai_client import OpenAIClient
from strictpm.models.chat import ChatMessage, DailyNews
from strictpm.models.constants import DEFAULT_DURATION_MINUTES
from strictpm.models.review import DailyStats, DailyReview
from strictpm.models.task import Task, Subtask, TaskTag
from strictpm.models.task_factory import create_task_base, create_subtask, new_id

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="strictpm API",
    description="Personal task planning with an AI project-manager assistant",
    version=__version__,
)

# Published daily reviews, keyed by reviewed date; only the latest dates are kept
REVIEW_STORE_LIMIT = 31
review_store: Dict[datetime.date, DailyReview] = {}
_review_lock = threading.Lock()

_kv_store: Optional[KeyValueStore] = None
_task_store: Optional[TaskStore] = None
_openai_client: Optional[OpenAIClient] = None
_chat_service: Optional[ChatService] = None
_news_service: Optional[NewsService] = None
_sequencer = RequestSequencer()


# Dependencies (overridden in tests)
def get_kv_store() -> KeyValueStore:
    global _kv_store
    if _kv_store is None:
        init_db()
        _kv_store = SQLKeyValueStore(SessionLocal)
    return _kv_store


def get_task_store(kv_store: KeyValueStore = Depends(get_kv_store)) -> TaskStore:
    global _task_store
    if _task_store is None:
        _task_store = TaskStore(kv_store)
    return _task_store


def get_openai_client() -> OpenAIClient:
    global _openai_client
    if _openai_client is None:
        _openai_client = OpenAIClient()
    return _openai_client


def get_sequencer() -> RequestSequencer:
    return _sequencer


def get_chat_service(
    task_store: TaskStore = Depends(get_task_store),
    client: OpenAIClient = Depends(get_openai_client),
) -> ChatService:
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService(task_store, client)
    return _chat_service


def get_news_service(
    kv_store: KeyValueStore = Depends(get_kv_store),
    client: OpenAIClient = Depends(get_openai_client),
    sequencer: RequestSequencer = Depends(get_sequencer),
) -> NewsService:
    global _news_service
    if _news_service is None:
        _news_service = NewsService(kv_store, client, sequencer)
    return _news_service


# Request models
class SubtaskInput(BaseModel):
    """Subtask as sent by the client; an id keeps an existing subtask."""
    id: Optional[str] = None
    title: str = Field(..., min_length=1)
    duration: Optional[int] = Field(None, description="Duration in minutes; 0 or less means none")
    is_completed: bool = Field(False, alias="isCompleted")

    class Config:
        """Pydantic configuration."""
        populate_by_name = True


class TaskCreateRequest(BaseModel):
    """Request body for manual task creation."""
    title: str = Field(..., min_length=1)
    estimated_duration: int = Field(DEFAULT_DURATION_MINUTES, gt=0, alias="estimatedDuration")
    tag: TaskTag = TaskTag.OTHER
    subtasks: Optional[List[SubtaskInput]] = None

    class Config:
        """Pydantic configuration."""
        populate_by_name = True


class TaskUpdateRequest(BaseModel):
    """Request body for task edits (the owning date cannot be changed)."""
    title: Optional[str] = Field(None, min_length=1)
    estimated_duration: Optional[int] = Field(None, gt=0, alias="estimatedDuration")
    tag: Optional[TaskTag] = None
    subtasks: Optional[List[SubtaskInput]] = None

    class Config:
        """Pydantic configuration."""
        populate_by_name = True


class ChatRequest(BaseModel):
    """One user chat message."""
    text: str = Field(..., min_length=1)
    selected_date: Optional[datetime.date] = Field(None, alias="selectedDate")

    class Config:
        """Pydantic configuration."""
        populate_by_name = True


# Response models
class TaskResponse(BaseModel):
    task: Task


class TaskListResponse(BaseModel):
    tasks: List[Task]
    count: int


class StatsResponse(BaseModel):
    date: datetime.date
    stats: DailyStats


class ChatTurnResponse(BaseModel):
    messages: List[ChatMessage] = Field(..., description="Messages appended by this turn")


class ChatTranscriptResponse(BaseModel):
    messages: List[ChatMessage]


class NewsResponse(BaseModel):
    date: datetime.date
    text: str
    news: DailyNews


def _selected_date(date: Optional[datetime.date]) -> datetime.date:
    return date or datetime.date.today()


def _get_task_or_404(task_store: TaskStore, task_id: str) -> Task:
    task = task_store.get(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return task


def _save(task_store: TaskStore, task: Task) -> Task:
    try:
        return task_store.update(task)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ImmutableFieldError as e:
        raise HTTPException(status_code=409, detail=str(e))


def _publish_review(review: DailyReview) -> None:
    with _review_lock:
        review_store[review.date] = review
        while len(review_store) > REVIEW_STORE_LIMIT:
            del review_store[min(review_store)]


def _build_subtasks(inputs: Optional[List[SubtaskInput]], keep_state: bool) -> Optional[List[Subtask]]:
    """Build subtask records from request input.

    On creation every subtask is new and open; on edits an input id and
    completion flag are kept.
    """
    if not inputs:
        return None
    subtasks = []
    for item in inputs:
        subtask = create_subtask(item.title, item.duration)
        if keep_state:
            subtask = subtask.model_copy(update={
                "id": item.id or new_id(),
                "is_completed": item.is_completed,
            })
        subtasks.append(subtask)
    return subtasks


@app.get("/", response_class=HTMLResponse)
async def root():
    """Root endpoint with basic UI."""
    return INDEX_HTML


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


@app.get("/tasks", response_model=TaskListResponse)
def list_tasks(
    date: Optional[datetime.date] = Query(None, description="Only tasks owned by this date"),
    task_store: TaskStore = Depends(get_task_store),
):
    """List tasks, optionally for one date."""
    tasks = task_store.get_for_date(date) if date else task_store.get_all()
    return TaskListResponse(tasks=tasks, count=len(tasks))


@app.post("/tasks", response_model=TaskResponse, status_code=201)
def create_task(
    request: TaskCreateRequest,
    date: Optional[datetime.date] = Query(None, description="Selected date (defaults to today)"),
    task_store: TaskStore = Depends(get_task_store),
):
    """Create a task owned by the selected date."""
    task = create_task_base(
        title=request.title,
        date=_selected_date(date),
        estimated_duration=request.estimated_duration,
        tag=request.tag,
        subtasks=_build_subtasks(request.subtasks, keep_state=False),
    )
    task_store.create(task)
    return TaskResponse(task=task)


@app.get("/tasks/{task_id}", response_model=TaskResponse)
def get_task(task_id: str, task_store: TaskStore = Depends(get_task_store)):
    """Get a task by id."""
    return TaskResponse(task=_get_task_or_404(task_store, task_id))


@app.put("/tasks/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: str,
    request: TaskUpdateRequest,
    task_store: TaskStore = Depends(get_task_store),
):
    """Edit a task's title, duration, tag or subtasks."""
    task = _get_task_or_404(task_store, task_id)
    try:
        edited = edit_task(
            task,
            title=request.title,
            estimated_duration=request.estimated_duration,
            tag=request.tag,
            subtasks=(_build_subtasks(request.subtasks, keep_state=True) or []) if request.subtasks is not None else None,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Invalid task edit: {e.error_count()} error(s)")
    return TaskResponse(task=_save(task_store, edited))


@app.delete("/tasks/{task_id}", status_code=204)
def delete_task(task_id: str, task_store: TaskStore = Depends(get_task_store)):
    """Delete a task by id."""
    try:
        task_store.delete(task_id)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return Response(status_code=204)


@app.post("/tasks/{task_id}/start", response_model=TaskResponse)
def start(task_id: str, task_store: TaskStore = Depends(get_task_store)):
    """Start a pending task."""
    task = _get_task_or_404(task_store, task_id)
    try:
        started = start_task(task)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return TaskResponse(task=_save(task_store, started))


@app.post("/tasks/{task_id}/toggle-complete", response_model=TaskResponse)
def toggle_task_completion(task_id: str, task_store: TaskStore = Depends(get_task_store)):
    """Mark a task completed, or reopen a completed one."""
    task = _get_task_or_404(task_store, task_id)
    return TaskResponse(task=_save(task_store, toggle_complete(task)))


@app.post("/tasks/{task_id}/subtasks/{subtask_id}/toggle", response_model=TaskResponse)
def toggle_subtask_completion(task_id: str, subtask_id: str, task_store: TaskStore = Depends(get_task_store)):
    """Flip one subtask's completion flag."""
    task = _get_task_or_404(task_store, task_id)
    try:
        updated = toggle_subtask(task, subtask_id)
    except SubtaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return TaskResponse(task=_save(task_store, updated))


@app.get("/stats", response_model=StatsResponse)
def daily_stats(
    date: Optional[datetime.date] = Query(None),
    task_store: TaskStore = Depends(get_task_store),
):
    """Completion statistics for one date."""
    selected = _selected_date(date)
    return StatsResponse(date=selected, stats=compute_daily_stats(task_store.get_for_date(selected)))


@app.post("/review", response_model=DailyReview)
def build_review(
    date: Optional[datetime.date] = Query(None),
    task_store: TaskStore = Depends(get_task_store),
    client: OpenAIClient = Depends(get_openai_client),
    sequencer: RequestSequencer = Depends(get_sequencer),
):
    """Generate the end-of-day review for one date."""
    selected = _selected_date(date)
    kind = dated_kind("review", selected)
    token = sequencer.issue(kind)

    review = generate_daily_review(task_store.get_for_date(selected), selected, client)

    # A slower, older request for the same date must not replace a newer review
    if sequencer.is_current(kind, token):
        _publish_review(review)
    return review


@app.get("/review", response_model=DailyReview)
def view_review(date: Optional[datetime.date] = Query(None)):
    """View the last generated review for one date."""
    selected = _selected_date(date)
    review = review_store.get(selected)
    if review is None:
        raise HTTPException(status_code=404, detail="No review available. Generate one first.")
    return review


@app.get("/news", response_model=NewsResponse)
def daily_news(news_service: NewsService = Depends(get_news_service)):
    """Today's economic news blurb (fetched once per day)."""
    today = datetime.date.today()
    text = news_service.get_daily_news_text(today)
    return NewsResponse(date=today, text=text, news=parse_news(text))


@app.get("/chat/messages", response_model=ChatTranscriptResponse)
def chat_transcript(chat_service: ChatService = Depends(get_chat_service)):
    """The visible chat transcript."""
    return ChatTranscriptResponse(messages=chat_service.get_transcript())


@app.post("/chat/messages", response_model=ChatTurnResponse)
def send_chat_message(request: ChatRequest, chat_service: ChatService = Depends(get_chat_service)):
    """Send one message to CoachPM."""
    if not request.text.strip():
        raise HTTPException(status_code=422, detail="Message text is empty")
    messages = chat_service.send_message(request.text, selected_date=request.selected_date)
    return ChatTurnResponse(messages=messages)


INDEX_HTML = """
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>StrictPM</title>
    <style>
        body { font-family: Arial, sans-serif; max-width: 900px; margin: 40px auto; padding: 20px; }
        button { padding: 6px 14px; margin: 3px; cursor: pointer; }
        .section { margin: 20px 0; padding: 15px; border: 1px solid #ddd; border-radius: 5px; }
        .done { text-decoration: line-through; color: #999; }
        #chat-log { max-height: 300px; overflow-y: auto; white-space: pre-wrap; }
    </style>
</head>
<body>
    <h1>StrictPM</h1>
    <input type="date" id="date" onchange="loadTasks()">
    <button onclick="review()">每日复盘</button>

    <div class="section">
        <h2>今日财经</h2>
        <div id="news"></div>
    </div>

    <div class="section">
        <h2>任务 <span id="progress"></span></h2>
        <div id="tasks"></div>
        <input id="title" placeholder="任务名称">
        <input id="duration" type="number" value="30" min="1"> min
        <select id="tag">
            <option>Work</option><option>Study</option><option>Life</option>
            <option>Health</option><option selected>Other</option>
        </select>
        <button onclick="addTask()">添加</button>
    </div>

    <div class="section">
        <h2>复盘</h2>
        <div id="review"></div>
    </div>

    <div class="section">
        <h2>CoachPM</h2>
        <div id="chat-log"></div>
        <input id="chat-input" style="width: 70%">
        <button id="chat-send" onclick="sendChat()">发送</button>
    </div>

    <script>
        const dateInput = document.getElementById('date');
        dateInput.value = new Date().toISOString().slice(0, 10);

        async function api(method, url, body) {
            const response = await fetch(url, {
                method,
                headers: { 'Content-Type': 'application/json' },
                body: body ? JSON.stringify(body) : undefined,
            });
            if (response.status === 204) return null;
            return response.json();
        }

        async function loadTasks() {
            const date = dateInput.value;
            const data = await api('GET', `/tasks?date=${date}`);
            const stats = await api('GET', `/stats?date=${date}`);
            document.getElementById('progress').textContent = `${stats.stats.completion_rate}%`;
            document.getElementById('tasks').innerHTML = data.tasks.map(t => `
                <div>
                    <span class="${t.status === 'completed' ? 'done' : ''}">[${t.tag}] ${t.title} (${t.estimatedDuration} min)</span>
                    ${t.status === 'pending' ? `<button onclick="act('${t.id}', 'start')">开始</button>` : ''}
                    <button onclick="act('${t.id}', 'toggle-complete')">${t.status === 'completed' ? '撤销' : '完成'}</button>
                    <button onclick="removeTask('${t.id}')">删除</button>
                    ${(t.subtasks || []).map(s => `
                        <div style="margin-left: 20px">
                            <label><input type="checkbox" ${s.isCompleted ? 'checked' : ''}
                                onclick="act('${t.id}', 'subtasks/${s.id}/toggle')"> ${s.title}</label>
                        </div>`).join('')}
                </div>`).join('');
        }

        async function addTask() {
            const title = document.getElementById('title').value.trim();
            if (!title) return;
            await api('POST', `/tasks?date=${dateInput.value}`, {
                title,
                estimatedDuration: Number(document.getElementById('duration').value),
                tag: document.getElementById('tag').value,
            });
            document.getElementById('title').value = '';
            loadTasks();
        }

        async function act(id, action) {
            await api('POST', `/tasks/${id}/${action}`);
            loadTasks();
        }

        async function removeTask(id) {
            await api('DELETE', `/tasks/${id}`);
            loadTasks();
        }

        async function loadNews() {
            const data = await api('GET', '/news');
            document.getElementById('news').innerHTML =
                `<strong>${data.news.headline}</strong><p>${data.news.summary}</p><em>${data.news.insight}</em>`;
        }

        async function review() {
            const div = document.getElementById('review');
            div.textContent = '生成分析中...';
            const data = await api('POST', `/review?date=${dateInput.value}`);
            div.textContent = `${data.stats.completion_rate}% (${data.stats.completed_tasks}/${data.stats.total_tasks})\\n\\n${data.review_text}`;
        }

        function renderChat(messages) {
            const log = document.getElementById('chat-log');
            messages.forEach(m => { log.textContent += `${m.role === 'user' ? '我' : 'CoachPM'}: ${m.text}\\n\\n`; });
            log.scrollTop = log.scrollHeight;
        }

        async function sendChat() {
            const input = document.getElementById('chat-input');
            const button = document.getElementById('chat-send');
            const text = input.value.trim();
            if (!text) return;
            input.value = '';
            button.disabled = true;
            try {
                const data = await api('POST', '/chat/messages', { text, selectedDate: dateInput.value });
                renderChat(data.messages);
                loadTasks();
            } finally {
                button.disabled = false;
            }
        }

        api('GET', '/chat/messages').then(data => renderChat(data.messages));
        loadTasks();
        loadNews();
    </script>
</body>
</html>
"""
