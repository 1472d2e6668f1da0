"""Job lifecycle persistence and the append-only job event log.

State machine: queued -> running -> {succeeded, failed, cancelled}.
Terminal transitions are conditional UPDATEs, so repeating one is a no-op.
Every write runs in its own short transaction; the pipeline never holds a
session open across a provider call.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.job import (
    EventLevel, Job, JobEvent, JobStage, JobStatus, JOB_TYPE_GENERATE_COURSE, TERMINAL_STATUSES,
)
from app.services.errors import ErrorCode

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class JobStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ── Creation / reads ─────────────────────────────────────────

    @staticmethod
    def create_job(
        db: AsyncSession, course_id: uuid.UUID, job_id: Optional[uuid.UUID] = None,
        job_type: str = JOB_TYPE_GENERATE_COURSE,
    ) -> Job:
        """Add a queued job to the caller's transaction (committed by the caller)."""
        job = Job(
            id=job_id or uuid.uuid4(),
            job_type=job_type,
            status=JobStatus.QUEUED.value,
            stage=JobStage.QUEUED.value,
            current_stage="Queued",
            progress_percent=0,
            course_id=course_id,
        )
        db.add(job)
        return job

    async def get_job(self, job_id: uuid.UUID) -> Optional[Job]:
        async with self._session_factory() as db:
            return await db.get(Job, job_id)

    async def list_events(self, job_id: uuid.UUID) -> list[JobEvent]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(JobEvent).where(JobEvent.job_id == job_id).order_by(JobEvent.id)
            )
            return list(result.scalars().all())

    async def is_cancelled(self, job_id: uuid.UUID) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(select(Job.status).where(Job.id == job_id))
            return result.scalar_one_or_none() == JobStatus.CANCELLED.value

    # ── Transitions ──────────────────────────────────────────────

    async def claim_next_queued(self) -> Optional[Job]:
        """Claim the oldest queued job and move it to running.

        The UPDATE is conditional on the row still being queued, so a job
        cancelled between the SELECT and the UPDATE is skipped.
        """
        async with self._session_factory() as db:
            while True:
                result = await db.execute(
                    select(Job.id)
                    .where(Job.status == JobStatus.QUEUED.value)
                    .order_by(Job.created_at)
                    .limit(1)
                )
                job_id = result.scalar_one_or_none()
                if job_id is None:
                    return None

                now = _now()
                claimed = await db.execute(
                    update(Job)
                    .where(Job.id == job_id, Job.status == JobStatus.QUEUED.value)
                    .values(
                        status=JobStatus.RUNNING.value,
                        stage=JobStage.STARTING.value,
                        current_stage="Starting",
                        progress_percent=0,
                        started_at=now,
                        updated_at=now,
                    )
                )
                await db.commit()
                if claimed.rowcount == 1:
                    return await db.get(Job, job_id, populate_existing=True)

    async def update_progress(
        self, job_id: uuid.UUID, percent: int, stage: JobStage, message: str,
    ) -> int:
        """Record progress. Percent never goes down; stage and message are last-write-wins.

        Returns the percent actually stored.
        """
        percent = max(0, min(100, int(percent)))
        async with self._session_factory() as db:
            job = await db.get(Job, job_id)
            if job is None:
                return percent
            if job.status in TERMINAL_STATUSES:
                return job.progress_percent
            job.progress_percent = max(job.progress_percent or 0, percent)
            job.stage = stage.value
            job.current_stage = message
            job.updated_at = _now()
            await db.commit()
            return job.progress_percent

    async def _finish(self, job_id: uuid.UUID, **values) -> bool:
        now = _now()
        async with self._session_factory() as db:
            result = await db.execute(
                update(Job)
                .where(Job.id == job_id, Job.status.not_in(TERMINAL_STATUSES))
                .values(completed_at=now, updated_at=now, **values)
            )
            await db.commit()
            return result.rowcount == 1

    async def mark_succeeded(self, job_id: uuid.UUID) -> bool:
        return await self._finish(
            job_id,
            status=JobStatus.SUCCEEDED.value,
            stage=JobStage.COMPLETED.value,
            current_stage="Completed",
            progress_percent=100,
        )

    async def mark_failed(self, job_id: uuid.UUID, error_code: str, message: str) -> bool:
        return await self._finish(
            job_id,
            status=JobStatus.FAILED.value,
            stage=JobStage.FAILED.value,
            current_stage="Failed",
            error_code=error_code,
            error_message=message[:2000],
        )

    async def mark_cancelled(self, job_id: uuid.UUID) -> bool:
        return await self._finish(
            job_id,
            status=JobStatus.CANCELLED.value,
            stage=JobStage.CANCELLED.value,
            current_stage="Cancelled",
        )

    # ── Event log ────────────────────────────────────────────────

    async def append_event(
        self, job_id: uuid.UUID, stage: JobStage | str, level: EventLevel, message: str,
        data: Optional[dict] = None,
    ) -> None:
        """Append an event. Write failures are logged, never raised."""
        stage_label = stage.value if isinstance(stage, JobStage) else stage
        try:
            async with self._session_factory() as db:
                db.add(JobEvent(
                    job_id=job_id,
                    stage=stage_label,
                    level=level.value,
                    message=message,
                    data=data,
                ))
                await db.commit()
        except Exception as e:
            logger.warning(f"Failed to append event for job {job_id} ({stage_label}: {message}): {e}")

    # ── Recovery ─────────────────────────────────────────────────

    async def recover_stale_jobs(self, stale_minutes: int = 15) -> int:
        """Mark jobs stuck in 'running' for longer than `stale_minutes` as failed.

        Call on startup to recover from process crashes that left jobs stranded.
        """
        cutoff = _now() - timedelta(minutes=stale_minutes)
        async with self._session_factory() as db:
            result = await db.execute(
                select(Job).where(
                    and_(
                        Job.status == JobStatus.RUNNING.value,
                        Job.started_at < cutoff,
                    )
                )
            )
            stale_jobs = result.scalars().all()
            for job in stale_jobs:
                job.status = JobStatus.FAILED.value
                job.stage = JobStage.FAILED.value
                job.current_stage = "Failed"
                job.error_code = ErrorCode.JOB_RUNNER_FAILURE
                job.error_message = f"Recovered on startup: job was running for >{stale_minutes} minutes"
                job.completed_at = _now()
                db.add(JobEvent(
                    job_id=job.id,
                    stage=JobStage.FAILED.value,
                    level=EventLevel.ERROR.value,
                    message=job.error_message,
                    data={"errorCode": ErrorCode.JOB_RUNNER_FAILURE},
                ))
                logger.warning(f"Recovered stale job {job.id} (started at {job.started_at})")
            if stale_jobs:
                await db.commit()
                logger.info(f"Recovered {len(stale_jobs)} stale job(s)")
            return len(stale_jobs)
