"""Background job dispatcher.

Polls the jobs table for 'queued' jobs and runs them one at a time, oldest
first. Runs as an asyncio task inside the FastAPI process; the lifespan owns
start() and stop(). Submissions call notify() so a new job is picked up
without waiting out the poll interval.
"""
import asyncio
import logging
import traceback
import uuid
from typing import Awaitable, Callable, Optional

from app.models.job import EventLevel, JobStage
from app.services.errors import classify_error
from app.services.job_store import JobStore

logger = logging.getLogger(__name__)

JobHandler = Callable[[uuid.UUID], Awaitable[Optional[dict]]]


class JobCancelledError(Exception):
    """Raised when a job detects it has been cancelled (cooperative cancellation)."""
    pass


class JobDispatcher:
    def __init__(self, job_store: JobStore, poll_interval: float = 2.0):
        self._jobs = job_store
        self._poll_interval = poll_interval
        self._handlers: dict[str, JobHandler] = {}
        self._task: Optional[asyncio.Task] = None
        self._stopping = False
        self._wake = asyncio.Event()

    def register(self, job_type: str, handler: JobHandler) -> None:
        self._handlers[job_type] = handler

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the polling loop. Calling it while already running is a no-op."""
        if self.running:
            return
        self._stopping = False
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name="job-dispatcher")
        logger.info("Job dispatcher started")

    async def stop(self) -> None:
        """Stop after the current job finishes. Safe to call when not running."""
        if self._task is None:
            return
        self._stopping = True
        self._wake.set()
        task = self._task
        # Stays registered until the loop exits so start() cannot spawn a second one
        await task
        if self._task is task:
            self._task = None
        logger.info("Job dispatcher stopped")

    def notify(self) -> None:
        """Wake the loop early, e.g. after a submission."""
        self._wake.set()

    async def run_once(self) -> bool:
        """Claim and process at most one queued job. Returns False when the queue is empty."""
        job = await self._jobs.claim_next_queued()
        if job is None:
            return False
        await self._process(job.id, job.job_type)
        return True

    async def _process(self, job_id: uuid.UUID, job_type: str) -> None:
        logger.info(f"Processing job {job_id} (type={job_type})")
        try:
            handler = self._handlers.get(job_type)
            if not handler:
                raise ValueError(f"Unknown job type: {job_type}")
            await handler(job_id)

            if await self._jobs.mark_succeeded(job_id):
                await self._jobs.append_event(job_id, JobStage.COMPLETED, EventLevel.INFO, "Completed")
                logger.info(f"Job {job_id} completed")
            else:
                logger.info(f"Job {job_id} reached a terminal state during execution, skipping completed update")

        except JobCancelledError:
            logger.info(f"Job {job_id} cancelled, stopping between stages")
            await self._jobs.append_event(
                job_id, JobStage.CANCELLED, EventLevel.INFO, "Job cancelled; remaining stages skipped",
            )

        except Exception as e:
            code, message = classify_error(e)
            logger.error(f"Job {job_id} failed: [{code}] {message}")
            logger.error(traceback.format_exc())
            await self._mark_failed(job_id, code, message)
            await self._jobs.append_event(
                job_id, JobStage.FAILED, EventLevel.ERROR, "Failed",
                {"errorCode": code, "error": message, "traceback": traceback.format_exc()[-4000:]},
            )

    async def _mark_failed(self, job_id: uuid.UUID, code: str, message: str) -> None:
        # Retry so a transient DB error doesn't leave the job stuck in "running"
        for attempt in range(3):
            try:
                await self._jobs.mark_failed(job_id, code, message)
                return
            except Exception as db_err:
                logger.error(
                    f"Failed to mark job {job_id} as failed "
                    f"(attempt {attempt + 1}/3): {db_err}"
                )
                if attempt < 2:
                    await asyncio.sleep(1)

    async def _loop(self) -> None:
        while not self._stopping:
            try:
                # Drain the queue before sleeping
                while not self._stopping and await self.run_once():
                    pass
            except Exception as e:
                logger.error(f"Job dispatcher loop error: {e}")

            if self._stopping:
                break
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
