"""End-to-end pipeline runs through the dispatcher against a SQLite database."""
from sqlalchemy import select

from app.models.course import Course
from app.models.job import JobStatus
from app.services.course_store import load_course_tree
from app.services.errors import ErrorCode
from app.services.providers import MockVideoSearchProvider, ProviderSet
from conftest import (
    BrokenContentProvider, BrokenVideoProvider, ScriptedContentProvider,
)

HAPPY_PATH_PROGRESS = [
    10, 20,
    25, 28, 31, 34, 37, 40, 40,
    45, 50, 55, 60, 65, 70, 70,
    75, 79, 83, 87, 91, 95, 95,
    98, 100,
]


async def _run(make_dispatcher, providers, **kwargs):
    dispatcher = make_dispatcher(providers, **kwargs)
    assert await dispatcher.run_once() is True


async def _tree(session_factory, course_id) -> Course:
    async with session_factory() as db:
        return await load_course_tree(db, course_id)


def _warnings(events, code=None):
    return [
        e for e in events
        if e.level == "warn" and (code is None or (e.data or {}).get("errorCode") == code)
    ]


async def test_happy_path_builds_complete_course(submit, make_dispatcher, mock_providers, job_store, session_factory):
    resp = await submit(topic="Python for data analysis", time_per_day=45)
    await _run(make_dispatcher, mock_providers)

    job = await job_store.get_job(resp.job_id)
    assert job.status == JobStatus.SUCCEEDED.value
    assert job.progress_percent == 100
    assert job.error_code is None

    course = await _tree(session_factory, resp.course_id)
    assert course.status == "active"
    assert [m.order for m in course.modules] == [1, 2, 3, 4, 5]
    for module in course.modules:
        assert 3 <= len(module.lessons) <= 10
        assert [lesson.order for lesson in module.lessons] == list(range(1, len(module.lessons) + 1))
        assert module.quiz is not None
        assert 5 <= module.quiz.total_questions <= 15
        assert len(module.quiz.questions) == module.quiz.total_questions
        assert 0 <= len(module.resources) <= 5


async def test_progress_checkpoints(submit, make_dispatcher, mock_providers, job_store):
    await submit()
    await _run(make_dispatcher, mock_providers)

    assert job_store.progress == HAPPY_PATH_PROGRESS
    assert job_store.progress == sorted(job_store.progress)


async def test_events_cover_every_stage(submit, make_dispatcher, mock_providers, job_store):
    resp = await submit()
    await _run(make_dispatcher, mock_providers)

    events = await job_store.list_events(resp.job_id)
    stages = {e.stage for e in events}
    assert {"skeleton", "lessons", "quizzes", "resources", "finalize", "completed"} <= stages
    assert not _warnings(events)
    assert events[-1].message == "Completed"
    activated = [e for e in events if e.message == "Course activated"]
    assert activated[0].data == {"courseId": str(resp.course_id)}


async def test_skeleton_retry_succeeds(submit, make_dispatcher, job_store):
    content = ScriptedContentProvider(fail_skeleton=1)
    resp = await submit()
    await _run(make_dispatcher, ProviderSet(content=content, video=MockVideoSearchProvider()))

    assert content.skeleton_calls == 2
    job = await job_store.get_job(resp.job_id)
    assert job.status == JobStatus.SUCCEEDED.value
    assert 12 in job_store.progress
    events = await job_store.list_events(resp.job_id)
    assert len(_warnings(events, ErrorCode.LLM_PROVIDER_FAILURE)) == 1
    assert any(e.message == "Retry succeeded" for e in events)


async def test_skeleton_falls_back_to_mock_after_two_failures(submit, make_dispatcher, job_store, session_factory):
    content = ScriptedContentProvider(fail_skeleton=2)
    resp = await submit(topic="Rust ownership")
    await _run(make_dispatcher, ProviderSet(content=content, video=MockVideoSearchProvider()))

    assert content.skeleton_calls == 2
    job = await job_store.get_job(resp.job_id)
    assert job.status == JobStatus.SUCCEEDED.value

    events = await job_store.list_events(resp.job_id)
    skeleton_warnings = [e for e in _warnings(events) if e.stage == "skeleton"]
    assert len(skeleton_warnings) >= 2
    assert all(e.data["errorCode"] == ErrorCode.LLM_PROVIDER_FAILURE for e in skeleton_warnings[:2])

    course = await _tree(session_factory, resp.course_id)
    assert len(course.modules) == 5
    assert "Rust ownership" in course.modules[0].title


async def test_skeleton_fails_when_fallback_fails(submit, make_dispatcher, job_store, session_factory):
    providers = ProviderSet(
        content=BrokenContentProvider(),
        video=MockVideoSearchProvider(),
        fallback_content=BrokenContentProvider(),
    )
    resp = await submit()
    await _run(make_dispatcher, providers)

    job = await job_store.get_job(resp.job_id)
    assert job.status == JobStatus.FAILED.value
    assert job.error_code == ErrorCode.LLM_PROVIDER_FAILURE
    assert job.progress_percent == 12

    events = await job_store.list_events(resp.job_id)
    assert events[-1].level == "error"
    assert events[-1].data["errorCode"] == ErrorCode.LLM_PROVIDER_FAILURE

    async with session_factory() as db:
        course = await db.get(Course, resp.course_id)
    assert course.status == "draft"


async def test_invalid_content_shape_is_treated_as_failure(submit, make_dispatcher, job_store, session_factory):
    content = ScriptedContentProvider(bad_shape=True)
    resp = await submit(time_per_day=40)
    await _run(make_dispatcher, ProviderSet(content=content, video=MockVideoSearchProvider()))

    job = await job_store.get_job(resp.job_id)
    assert job.status == JobStatus.SUCCEEDED.value
    events = await job_store.list_events(resp.job_id)
    # Two skeleton attempts, five lesson fallbacks, five quiz fallbacks
    assert len(_warnings(events, ErrorCode.LLM_SCHEMA_INVALID)) == 12

    course = await _tree(session_factory, resp.course_id)
    for module in course.modules:
        assert len(module.lessons) == 4
        assert all(lesson.estimated_minutes == 10 for lesson in module.lessons)
        assert module.quiz.total_questions == 3


async def test_video_failures_are_not_fatal(submit, make_dispatcher, job_store, session_factory):
    video = BrokenVideoProvider()
    resp = await submit(topic="Kubernetes")
    await _run(make_dispatcher, ProviderSet(content=ScriptedContentProvider(), video=video))

    job = await job_store.get_job(resp.job_id)
    assert job.status == JobStatus.SUCCEEDED.value

    events = await job_store.list_events(resp.job_id)
    assert len(_warnings(events, ErrorCode.YOUTUBE_PROVIDER_FAILURE)) == 5

    course = await _tree(session_factory, resp.course_id)
    assert all(len(m.resources) == 0 for m in course.modules)
    assert video.queries[0] == f"Kubernetes {course.modules[0].title} tutorial"


async def test_all_providers_failing_still_produces_course(submit, make_dispatcher, job_store, session_factory):
    providers = ProviderSet(content=BrokenContentProvider(), video=BrokenVideoProvider())
    resp = await submit(topic="Docker Containers", time_per_day=20, key="K1")
    await _run(make_dispatcher, providers)

    job = await job_store.get_job(resp.job_id)
    assert job.status == JobStatus.SUCCEEDED.value
    assert job.progress_percent == 100

    course = await _tree(session_factory, resp.course_id)
    assert course.status == "active"
    assert len(course.modules) == 5
    for module in course.modules:
        assert [lesson.type for lesson in module.lessons] == ["learn", "practice", "learn", "apply"]
        assert all(lesson.estimated_minutes == 5 for lesson in module.lessons)
        assert module.lessons[0].title == f"{module.title} - Part 1"
        assert module.quiz.total_questions == 3
        for question in module.quiz.questions:
            assert question.options == ["Option A", "Option B", "Option C", "Option D"]
            assert question.answer_key == "Option A"
        assert module.resources == []

    assert job_store.progress == sorted(job_store.progress)


async def test_fallback_lesson_minutes_are_clamped(submit, make_dispatcher, session_factory):
    providers = ProviderSet(content=BrokenContentProvider(), video=MockVideoSearchProvider())
    resp = await submit(time_per_day=480)
    await _run(make_dispatcher, providers)

    course = await _tree(session_factory, resp.course_id)
    assert all(lesson.estimated_minutes == 60 for m in course.modules for lesson in m.lessons)


async def test_video_results_are_capped_at_five(submit, make_dispatcher, session_factory):
    resp = await submit()
    providers = ProviderSet(content=ScriptedContentProvider(), video=MockVideoSearchProvider())
    await _run(make_dispatcher, providers, video_results=12)

    course = await _tree(session_factory, resp.course_id)
    assert all(len(m.resources) == 5 for m in course.modules)


async def test_cancellation_stops_between_stages(submit, make_dispatcher, job_store, session_factory):
    resp = await submit()

    class CancellingProvider(ScriptedContentProvider):
        async def _skeleton_payload(self, topic, level, time_per_day):
            await job_store.mark_cancelled(resp.job_id)
            return await super()._skeleton_payload(topic, level, time_per_day)

    await _run(make_dispatcher, ProviderSet(content=CancellingProvider(), video=MockVideoSearchProvider()))

    job = await job_store.get_job(resp.job_id)
    assert job.status == JobStatus.CANCELLED.value

    course = await _tree(session_factory, resp.course_id)
    assert course.status == "draft"
    # Skeleton finished before the check, nothing after it ran
    assert len(course.modules) == 5
    assert all(m.lessons == [] for m in course.modules)

    events = await job_store.list_events(resp.job_id)
    assert events[-1].stage == "cancelled"
    assert not any(e.message == "Completed" for e in events)


async def test_no_course_rows_written_by_pipeline_outside_its_course(submit, make_dispatcher, mock_providers, session_factory):
    await submit(topic="Topic one")
    await submit(topic="Topic two")
    dispatcher = make_dispatcher(mock_providers)
    while await dispatcher.run_once():
        pass

    async with session_factory() as db:
        courses = (await db.execute(select(Course))).scalars().all()
    assert len(courses) == 2
    for course in courses:
        tree = await _tree(session_factory, course.id)
        assert tree.status == "active"
        assert len(tree.modules) == 5
