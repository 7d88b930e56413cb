"""Pytest fixtures and configuration for strictpm tests."""

import json
import pytest
import uuid
from datetime import date
from types import SimpleNamespace
from unittest.mock import MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from strictpm.database.database import Base
from strictpm.database.kv_store import InMemoryKeyValueStore, SQLKeyValueStore
from strictpm.database.repository import TaskStore
from strictpm.integrations.openai_client import OpenAIClient
from strictpm.models.task import Task, Subtask, TaskStatus, TaskTag


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture
def selected_date():
    """The date the user has selected in the UI."""
    return date(2024, 5, 1)


@pytest.fixture
def kv_store():
    """Fresh in-memory key-value store."""
    return InMemoryKeyValueStore()


@pytest.fixture(scope="function")
def sql_kv_store():
    """Key-value store backed by a fresh in-memory SQLite database."""
    from strictpm.database import models  # noqa: F401

    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    try:
        yield SQLKeyValueStore(TestingSessionLocal)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def task_store(kv_store):
    """TaskStore over the in-memory key-value store."""
    return TaskStore(kv_store)


@pytest.fixture
def sample_task_base(selected_date):
    """Base task data for creating test tasks.

    Returns a dict with default task attributes that can be overridden.
    """
    return {
        "id": str(uuid.uuid4()),
        "title": "Test Task",
        "estimated_duration": 30,
        "tag": TaskTag.WORK,
        "status": TaskStatus.PENDING,
        "date": selected_date,
        "created_at": 1714550400000,
        "deferred_count": 0,
    }


@pytest.fixture
def sample_task(sample_task_base):
    """Create a sample Task object for testing."""
    return Task(**sample_task_base)


@pytest.fixture
def completed_task(sample_task_base):
    """Create a completed task."""
    return Task(**{
        **sample_task_base,
        "status": TaskStatus.COMPLETED,
        "actual_start_time": 1714550500000,
        "actual_end_time": 1714552300000,
    })


@pytest.fixture
def task_with_subtasks(sample_task_base):
    """Create a task with two open subtasks."""
    return Task(**{
        **sample_task_base,
        "subtasks": [
            Subtask(id="sub-1", title="Outline", duration=15),
            Subtask(id="sub-2", title="Draft"),
        ],
    })


@pytest.fixture
def mock_openai_client():
    """OpenAIClient stand-in; configure generate_text / chat per test."""
    client = MagicMock(spec=OpenAIClient)
    client.is_configured = True
    return client


@pytest.fixture
def make_tool_call():
    """Factory for SDK-shaped tool calls."""
    def _make(arguments, name="addTasksToSchedule", call_id=None):
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        return SimpleNamespace(
            id=call_id or f"call_{uuid.uuid4().hex[:8]}",
            type="function",
            function=SimpleNamespace(name=name, arguments=arguments),
        )
    return _make


@pytest.fixture
def make_reply():
    """Factory for SDK-shaped assistant messages."""
    def _make(content=None, tool_calls=None):
        return SimpleNamespace(role="assistant", content=content, tool_calls=tool_calls)
    return _make


@pytest.fixture
def test_client(kv_store, task_store, mock_openai_client, selected_date):
    """Create a FastAPI test client with overridden storage and AI dependencies."""
    from strictpm.api import app as app_module
    from strictpm.api.app import (
        app,
        get_kv_store,
        get_task_store,
        get_openai_client,
        get_chat_service,
        get_news_service,
        get_sequencer,
    )
    from strictpm.engine.chat import ChatService
    from strictpm.engine.news import NewsService
    from strictpm.engine.sequencing import RequestSequencer

    sequencer = RequestSequencer()
    chat_service = ChatService(task_store, mock_openai_client, today_provider=lambda: selected_date)
    news_service = NewsService(kv_store, mock_openai_client, sequencer)

    app.dependency_overrides[get_kv_store] = lambda: kv_store
    app.dependency_overrides[get_task_store] = lambda: task_store
    app.dependency_overrides[get_openai_client] = lambda: mock_openai_client
    app.dependency_overrides[get_sequencer] = lambda: sequencer
    app.dependency_overrides[get_chat_service] = lambda: chat_service
    app.dependency_overrides[get_news_service] = lambda: news_service
    app_module.review_store.clear()

    with TestClient(app) as client:
        yield client

    # Clean up dependency overrides
    app.dependency_overrides.clear()
    app_module.review_store.clear()
    chat_service.shutdown()
