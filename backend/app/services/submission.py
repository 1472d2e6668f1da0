"""Request-side operations: course submission, job polling, course and lesson reads.

Everything here runs inside the request's session. Submission writes the
idempotency key, the draft Course and the queued Job in one transaction, so a
rejected or failed request leaves no rows behind.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import desc, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.course import Course, Lesson
from app.models.job import EventLevel, Job, JobEvent, JobStage, JobStatus
from app.schemas.course import GeneratePathRequest, GeneratePathResponse
from app.schemas.job import JobEventResponse, JobStatusResponse
from app.services.course_store import load_course_tree
from app.services.errors import (
    IdempotencyKeyConflictError, JobNotCancellableError, JobNotFoundError, LessonNotFoundError,
    PersistenceWriteError, get_suggested_fix,
)
from app.services.idempotency import IdempotencyRegistry
from app.services.job_store import JobStore

logger = logging.getLogger(__name__)


# ── Submission ───────────────────────────────────────────────────

async def submit_generate_course(
    db: AsyncSession, body: GeneratePathRequest, registry: IdempotencyRegistry,
) -> GeneratePathResponse:
    """Create (or replay) a generate-course job for `body.idempotency_key`."""
    try:
        reservation = await registry.reserve(db, body.idempotency_key)
        if not reservation.created:
            job = await db.get(Job, reservation.job_id)
            if job is None:
                raise IdempotencyKeyConflictError(
                    f"idempotencyKey {body.idempotency_key!r} is mapped to a job that no longer exists"
                )
            logger.info(f"Replayed submission for key={body.idempotency_key!r} -> job {job.id}")
            return GeneratePathResponse(job_id=job.id, course_id=job.course_id, existing=True)

        course = Course(
            id=uuid.uuid4(),
            topic=body.topic,
            level=body.level,
            time_per_day=body.time_per_day,
            time_per_week=body.time_per_week,
            deadline=body.deadline,
            status="draft",
        )
        db.add(course)
        job = JobStore.create_job(db, course.id, job_id=reservation.job_id)
        db.add(JobEvent(
            job_id=job.id,
            stage=JobStage.QUEUED.value,
            level=EventLevel.INFO.value,
            message="Job queued",
            data={"topic": course.topic, "level": course.level},
        ))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Submission failed for key={body.idempotency_key!r}: {e}")
        raise PersistenceWriteError(f"Could not create course generation job: {type(e).__name__}") from e

    logger.info(f"Queued job {job.id} for course {course.id} (topic={course.topic!r})")
    return GeneratePathResponse(job_id=job.id, course_id=course.id, existing=False)


# ── Jobs ─────────────────────────────────────────────────────────

async def get_job_status(db: AsyncSession, job_id: uuid.UUID) -> JobStatusResponse:
    """Polling view: error details only for failed jobs, courseId only for succeeded ones."""
    result = await db.execute(
        select(Job).where(Job.id == job_id).options(selectinload(Job.events))
    )
    job = result.scalar_one_or_none()
    if job is None:
        raise JobNotFoundError(f"Job {job_id} not found")

    failed = job.status == JobStatus.FAILED.value
    succeeded = job.status == JobStatus.SUCCEEDED.value
    return JobStatusResponse(
        id=job.id,
        job_type=job.job_type,
        status=job.status,
        stage=job.stage,
        progress_percent=job.progress_percent,
        current_stage=job.current_stage,
        events=[JobEventResponse.model_validate(e) for e in job.events],
        error_code=job.error_code if failed else None,
        error_message=job.error_message if failed else None,
        suggested_fix=get_suggested_fix(job.error_code) if failed else None,
        course_id=job.course_id if succeeded else None,
        created_at=job.created_at,
        updated_at=job.updated_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
    )


async def list_jobs(
    db: AsyncSession, status: Optional[str] = None, limit: int = 20, offset: int = 0,
) -> list[Job]:
    query = select(Job).order_by(desc(Job.created_at)).limit(limit).offset(offset)
    if status:
        query = query.where(Job.status == status)
    result = await db.execute(query)
    return list(result.scalars().all())


async def cancel_job(db: AsyncSession, job_id: uuid.UUID) -> Job:
    """Cancel a queued or running job. Cancelling an already-cancelled job is a no-op.

    A running job stops at its next stage boundary.
    """
    job = await db.get(Job, job_id)
    if job is None:
        raise JobNotFoundError(f"Job {job_id} not found")
    if job.status == JobStatus.CANCELLED.value:
        return job
    if job.status in (JobStatus.SUCCEEDED.value, JobStatus.FAILED.value):
        raise JobNotCancellableError(f"Cannot cancel job in '{job.status}' state")

    now = datetime.now(timezone.utc)
    result = await db.execute(
        update(Job)
        .where(Job.id == job_id, Job.status.in_([JobStatus.QUEUED.value, JobStatus.RUNNING.value]))
        .values(
            status=JobStatus.CANCELLED.value,
            stage=JobStage.CANCELLED.value,
            current_stage="Cancelled",
            completed_at=now,
            updated_at=now,
        )
    )
    if result.rowcount == 1:
        db.add(JobEvent(
            job_id=job_id,
            stage=JobStage.CANCELLED.value,
            level=EventLevel.WARN.value,
            message="Cancellation requested",
        ))
    await db.commit()
    await db.refresh(job)
    if job.status != JobStatus.CANCELLED.value:
        # Finished between the read and the update
        raise JobNotCancellableError(f"Cannot cancel job in '{job.status}' state")
    logger.info(f"Job {job_id} cancelled")
    return job


# ── Courses / lessons ────────────────────────────────────────────

async def get_course_tree(db: AsyncSession, course_id: uuid.UUID) -> Course:
    return await load_course_tree(db, course_id)


async def get_lesson(db: AsyncSession, lesson_id: uuid.UUID) -> Lesson:
    lesson = await db.get(Lesson, lesson_id)
    if lesson is None:
        raise LessonNotFoundError(f"Lesson {lesson_id} not found")
    return lesson
