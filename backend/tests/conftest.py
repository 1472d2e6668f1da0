"""Shared fixtures: a throwaway SQLite database per test, stores, fake providers."""
import os

# Must be set before app.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JOB_WORKER_ENABLED", "false")

import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from app.database import build_engine, build_session_factory, get_db
from app.models import Base
from app.schemas.course import GeneratePathRequest
from app.services.course_store import CourseStore
from app.services.errors import ContentProviderError, VideoProviderError
from app.services.idempotency import IdempotencyRegistry
from app.services.job_store import JobStore
from app.services.job_worker import JobDispatcher
from app.models.job import JOB_TYPE_GENERATE_COURSE
from app.services.pipeline import CoursePipeline
from app.services.providers import (
    CourseContentProvider, MockCourseContentProvider, MockVideoSearchProvider, ProviderSet,
    VideoSearchProvider,
)
from app.services.submission import submit_generate_course


# ── Fake providers ───────────────────────────────────────────────

class ScriptedContentProvider(CourseContentProvider):
    """Delegates to the mock unless told to fail a capability."""

    name = "scripted"

    def __init__(self, fail_skeleton=0, fail_lessons=False, fail_quiz=False, bad_shape=False):
        self._mock = MockCourseContentProvider()
        self.fail_skeleton = fail_skeleton  # number of skeleton calls to fail
        self.fail_lessons = fail_lessons
        self.fail_quiz = fail_quiz
        self.bad_shape = bad_shape
        self.skeleton_calls = 0

    async def _skeleton_payload(self, topic, level, time_per_day):
        self.skeleton_calls += 1
        if self.skeleton_calls <= self.fail_skeleton:
            raise ContentProviderError("LLM unavailable")
        if self.bad_shape:
            return {"topic": topic, "level": level, "modules": []}
        return await self._mock._skeleton_payload(topic, level, time_per_day)

    async def _lessons_payload(self, topic, module, time_per_day):
        if self.fail_lessons:
            raise ContentProviderError("LLM unavailable")
        if self.bad_shape:
            return {"moduleOrder": module.order, "steps": [{"order": 1, "title": "x"}]}
        return await self._mock._lessons_payload(topic, module, time_per_day)

    async def _quiz_payload(self, topic, module):
        if self.fail_quiz:
            raise ContentProviderError("LLM unavailable")
        if self.bad_shape:
            return "not a quiz"
        return await self._mock._quiz_payload(topic, module)


class BrokenContentProvider(CourseContentProvider):
    """Fails every call."""

    name = "broken"

    async def _skeleton_payload(self, topic, level, time_per_day):
        raise ContentProviderError("LLM unavailable")

    async def _lessons_payload(self, topic, module, time_per_day):
        raise ContentProviderError("LLM unavailable")

    async def _quiz_payload(self, topic, module):
        raise ContentProviderError("LLM unavailable")


class BrokenVideoProvider(VideoSearchProvider):
    name = "broken-video"

    def __init__(self):
        self.queries = []

    async def _search(self, query, max_results):
        self.queries.append(query)
        raise VideoProviderError("quota exceeded")


class RecordingJobStore(JobStore):
    """JobStore that remembers every stored progress value."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.progress = []

    async def update_progress(self, job_id, percent, stage, message):
        stored = await super().update_progress(job_id, percent, stage, message)
        self.progress.append(stored)
        return stored


# ── Database ─────────────────────────────────────────────────────

@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def job_store(session_factory):
    return RecordingJobStore(session_factory)


@pytest.fixture
def course_store(session_factory):
    return CourseStore(session_factory)


# ── Pipeline wiring ──────────────────────────────────────────────

@pytest.fixture
def mock_providers():
    return ProviderSet(content=MockCourseContentProvider(), video=MockVideoSearchProvider())


@pytest.fixture
def make_dispatcher(job_store, course_store):
    def _make(providers, poll_interval=0.05, video_results=3):
        pipeline = CoursePipeline(job_store, course_store, providers, video_results_per_module=video_results)
        dispatcher = JobDispatcher(job_store, poll_interval=poll_interval)
        dispatcher.register(JOB_TYPE_GENERATE_COURSE, pipeline.run)
        return dispatcher
    return _make


@pytest.fixture
def submit(session_factory):
    """Submit a course request straight through the service layer."""
    registry = IdempotencyRegistry()

    async def _submit(topic="Docker Containers", time_per_day=20, key=None, **extra):
        body = GeneratePathRequest(
            topic=topic,
            time_per_day=time_per_day,
            idempotency_key=key or str(uuid.uuid4()),
            **extra,
        )
        async with session_factory() as db:
            return await submit_generate_course(db, body, registry)
    return _submit


# ── HTTP ─────────────────────────────────────────────────────────

@pytest.fixture
async def client(session_factory):
    from app.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
