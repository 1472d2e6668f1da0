"""Course artifact persistence.

The pipeline's write rights over a course are append-only: add modules, add
lessons / a quiz / resources to a module, and mark the course active. Each
append commits on its own so partial results survive a later failure.
"""
import logging
import uuid
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from app.models.course import Course, Lesson, Module, Quiz, QuizQuestion, Resource
from app.schemas.content import LessonStep, ModuleOutline, QuizQuestionPayload, VideoResource
from app.services.errors import CourseNotFoundError, PersistenceWriteError

logger = logging.getLogger(__name__)


class CourseStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_course(self, course_id: uuid.UUID) -> Course:
        async with self._session_factory() as db:
            course = await db.get(Course, course_id)
        if course is None:
            raise CourseNotFoundError(f"Course {course_id} not found")
        return course

    async def append_modules(self, course_id: uuid.UUID, outlines: list[ModuleOutline]) -> list[Module]:
        async with self._session_factory() as db:
            modules = [
                Module(
                    course_id=course_id,
                    order=outline.order,
                    title=outline.title,
                    description=outline.description,
                    outcomes=list(outline.outcomes),
                )
                for outline in outlines
            ]
            db.add_all(modules)
            await db.commit()
            return modules

    async def append_lessons(self, module_id: uuid.UUID, steps: list[LessonStep]) -> int:
        async with self._session_factory() as db:
            db.add_all([
                Lesson(
                    module_id=module_id,
                    order=step.order,
                    title=step.title,
                    type=step.type,
                    estimated_minutes=step.estimated_minutes,
                    content=step.content or "",
                )
                for step in steps
            ])
            await db.commit()
        return len(steps)

    async def append_quiz(self, module_id: uuid.UUID, questions: list[QuizQuestionPayload]) -> uuid.UUID:
        async with self._session_factory() as db:
            quiz = Quiz(module_id=module_id, total_questions=len(questions))
            quiz.questions = [
                QuizQuestion(
                    order=i,
                    type=q.type,
                    question=q.question,
                    options=list(q.options) if q.options is not None else None,
                    answer_key=q.answer_key,
                    explanation=q.explanation,
                    difficulty=q.difficulty,
                    tags=list(q.tags),
                )
                for i, q in enumerate(questions, start=1)
            ]
            db.add(quiz)
            await db.commit()
            return quiz.id

    async def append_resources(
        self, module_id: uuid.UUID, videos: list[VideoResource], provider: str = "youtube",
    ) -> int:
        if not videos:
            return 0
        async with self._session_factory() as db:
            # Continue numbering after anything already attached to the module
            result = await db.execute(
                select(func.coalesce(func.max(Resource.order), 0)).where(Resource.module_id == module_id)
            )
            start = result.scalar_one() + 1
            db.add_all([
                Resource(
                    module_id=module_id,
                    order=start + i,
                    provider=provider,
                    title=video.title,
                    url=str(video.url),
                    channel=video.channel,
                    duration_seconds=video.duration_seconds,
                    thumbnail_url=str(video.thumbnail_url) if video.thumbnail_url else None,
                    reason=video.reason,
                )
                for i, video in enumerate(videos)
            ])
            await db.commit()
        return len(videos)

    async def mark_active(self, course_id: uuid.UUID) -> None:
        async with self._session_factory() as db:
            result = await db.execute(
                update(Course).where(Course.id == course_id).values(status="active")
            )
            await db.commit()
        if result.rowcount != 1:
            raise PersistenceWriteError(f"Course {course_id} could not be activated")


async def load_course_tree(db: AsyncSession, course_id: uuid.UUID) -> Course:
    result = await db.execute(
        select(Course)
        .where(Course.id == course_id)
        .options(
            selectinload(Course.modules).selectinload(Module.lessons),
            selectinload(Course.modules).selectinload(Module.quiz).selectinload(Quiz.questions),
            selectinload(Course.modules).selectinload(Module.resources),
        )
    )
    course: Optional[Course] = result.scalar_one_or_none()
    if course is None:
        raise CourseNotFoundError(f"Course {course_id} not found")
    return course
