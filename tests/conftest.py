"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from hybrid_engine.config.settings import Settings
from hybrid_engine.cost.governor import CostGovernor
from hybrid_engine.exceptions import EmbeddingError, SynthesisError
from hybrid_engine.storage.memory_operational_store import InMemoryOperationalStore
from hybrid_engine.storage.memory_usage_store import InMemoryUsageStore
from hybrid_engine.vectorstore.memory_store import InMemoryVectorStore

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
USER = "user-1"
OTHER_USER = "user-2"


class FakeClock:
    """Monotonic clock in seconds that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000


class FakeEmbedder:
    """Returns a fixed vector and counts calls."""

    def __init__(self, vector: list[float] | None = None, fail: bool = False) -> None:
        self.vector = vector or [1.0, 0.0, 0.0]
        self.fail = fail
        self.calls = 0

    @property
    def dimensions(self) -> int:
        return len(self.vector)

    async def embed_query(self, query: str) -> list[float]:
        self.calls += 1
        if self.fail:
            raise EmbeddingError("embedding service unavailable")
        return list(self.vector)


class FakeLLM:
    def __init__(self, response: str = "You have **7 tasks** in project Alpha.", fail: bool = False, delay_s: float = 0.0) -> None:
        self.response = response
        self.fail = fail
        self.delay_s = delay_s
        self.calls = 0
        self.last_prompt: str | None = None
        self.last_system: str | None = None

    async def complete(self, prompt: str, system: str | None = None, max_tokens: int = 800) -> str:
        self.calls += 1
        self.last_prompt = prompt
        self.last_system = system
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.fail:
            raise SynthesisError("model unavailable")
        return self.response


class FailingOperationalStore:
    def __init__(self) -> None:
        self.calls = 0

    async def query(self, collection, filters, order_by=None, limit=None):
        self.calls += 1
        raise ConnectionError("operational store unreachable")


class SlowOperationalStore:
    def __init__(self, delay_s: float) -> None:
        self.delay_s = delay_s

    async def query(self, collection, filters, order_by=None, limit=None):
        await asyncio.sleep(self.delay_s)
        return []


def task(project: str, user_id: str = USER, **fields) -> dict:
    record = {
        "user_id": user_id,
        "project_name": project,
        "text": fields.pop("text", f"Task in {project}"),
        "description": fields.pop("description", ""),
        "notes": fields.pop("notes", ""),
        "completed": fields.pop("completed", False),
        "status": fields.pop("status", "todo"),
        "time_spent": fields.pop("time_spent", 30),
        "created_at": fields.pop("created_at", NOW - timedelta(days=3)),
    }
    record.update(fields)
    return record


def seeded_records() -> dict[str, list[dict]]:
    tasks = [
        # Seven Alpha tasks: 3 completed, 2 in progress, 2 todo
        task("Alpha", text="Build login feature", completed=True, status="completed"),
        task("Alpha", text="Fix signup bug", completed=True, status="completed"),
        task("Alpha", text="Write release notes", completed=True, status="completed"),
        task("Alpha", text="Refactor API client", status="pomodoro"),
        task("Alpha", text="Add dark mode", status="pomodoro", notes="Khanh asked for this"),
        task(
            "Alpha",
            text="Ask Khanh for help with deploy",
            description="Khanh knows the pipeline",
            time_spent=0,
            created_at=NOW - timedelta(days=10),
        ),
        task("Alpha", text="Plan sprint", time_spent=0, created_at=NOW - timedelta(days=20)),
        # Three Beta tasks
        task("Beta", text="Design landing page"),
        task("Beta", text="Review metrics", time_spent=0, created_at=NOW - timedelta(days=9)),
        task("Beta", text="Update docs", completed=True, status="completed"),
        # Another user's Alpha task
        task("Alpha", user_id=OTHER_USER, text="Not mine"),
    ]
    sessions = [
        {"user_id": USER, "project_name": "Alpha", "duration": 120, "start_time": NOW - timedelta(days=1)},
        {"user_id": USER, "project_name": "Alpha", "duration": 60, "start_time": NOW - timedelta(days=2)},
        {"user_id": USER, "project_name": "Beta", "duration": 60, "start_time": NOW - timedelta(days=3)},
        {"user_id": USER, "project_name": "Beta", "duration": 500, "start_time": NOW - timedelta(days=30)},
    ]
    return {"tasks": tasks, "work_sessions": sessions}


@pytest.fixture
def settings():
    """Test settings with temp paths."""
    tmp = tempfile.mkdtemp()
    return Settings(
        openai_api_key="test-key",
        google_api_key="",
        sqlite_usage_db_path=str(Path(tmp) / "test_usage.db"),
        sqlite_trace_db_path=str(Path(tmp) / "test_traces.db"),
    )


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def operational_store():
    return InMemoryOperationalStore(seeded_records())


@pytest.fixture
def vector_store():
    store = InMemoryVectorStore()
    store.add(USER, "Alpha sprint planning notes and login work", [1.0, 0.0, 0.0], "task", doc_id="v1")
    store.add(USER, "Alpha project summary: auth, onboarding", [0.9, 0.1, 0.0], "project_summary", doc_id="v2")
    store.add(USER, "Deep work session on Beta", [0.0, 1.0, 0.0], "session", doc_id="v3")
    store.add(USER, "Unrelated note " * 30, [0.0, 0.0, 1.0], "task", doc_id="v4")
    store.add(OTHER_USER, "Someone else's Alpha task", [1.0, 0.0, 0.0], "task", doc_id="v5")
    return store


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def usage_store():
    return InMemoryUsageStore()


@pytest.fixture
def governor(usage_store, settings):
    return CostGovernor(usage_store, settings, clock=lambda: NOW)
