"""Generate-course pipeline: drives one job through five stages.

Stages run strictly in order against the job's Course:
  1. skeleton : exactly 5 modules; retried once, then the mock provider; fatal if all fail
  2. lessons  : per module; fallback lessons on failure
  3. quizzes  : per module; fallback quiz on failure
  4. resources: per module; zero resources on failure
  5. finalize : mark the course active; fatal on failure

Every stage boundary and every fallback is written to the job event log, and
results are committed as soon as each module's step finishes.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from app.models.course import Module
from app.models.job import EventLevel, JobStage
from app.schemas.content import CourseSkeleton, ModuleOutline
from app.services.course_store import CourseStore
from app.services.errors import ErrorCode, JobNotFoundError, classify_error
from app.services.job_store import JobStore
from app.services.job_worker import JobCancelledError
from app.services.pipeline import progress as P
from app.services.pipeline.fallbacks import fallback_lessons, fallback_quiz
from app.services.providers.factory import ProviderSet

logger = logging.getLogger(__name__)


@dataclass
class _RunContext:
    job_id: uuid.UUID
    course_id: uuid.UUID
    topic: str
    level: str
    time_per_day: int


def _outline(module: Module) -> ModuleOutline:
    return ModuleOutline(
        order=module.order,
        title=module.title,
        description=module.description,
        outcomes=list(module.outcomes or []),
    )


class CoursePipeline:
    def __init__(
        self,
        job_store: JobStore,
        course_store: CourseStore,
        providers: ProviderSet,
        video_results_per_module: int = 3,
    ):
        self._jobs = job_store
        self._courses = course_store
        self._providers = providers
        self._video_results = video_results_per_module

    async def run(self, job_id: uuid.UUID) -> dict:
        """Execute all stages for `job_id`. Raises on fatal failure or cancellation."""
        job = await self._jobs.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        course = await self._courses.get_course(job.course_id)
        ctx = _RunContext(
            job_id=job.id,
            course_id=course.id,
            topic=course.topic,
            level=course.level,
            time_per_day=course.time_per_day,
        )

        await self._raise_if_cancelled(ctx)
        modules = await self._stage_skeleton(ctx)
        await self._raise_if_cancelled(ctx)
        await self._stage_lessons(ctx, modules)
        await self._raise_if_cancelled(ctx)
        await self._stage_quizzes(ctx, modules)
        await self._raise_if_cancelled(ctx)
        await self._stage_resources(ctx, modules)
        await self._raise_if_cancelled(ctx)
        await self._stage_finalize(ctx)

        return {"courseId": str(ctx.course_id), "modules": len(modules)}

    # ── Helpers ──────────────────────────────────────────────────

    async def _progress(self, ctx: _RunContext, percent: int, stage: JobStage, message: str) -> None:
        await self._jobs.update_progress(ctx.job_id, percent, stage, message)

    async def _event(
        self, ctx: _RunContext, stage: JobStage, level: EventLevel, message: str,
        data: Optional[dict] = None,
    ) -> None:
        await self._jobs.append_event(ctx.job_id, stage, level, message, data)

    async def _raise_if_cancelled(self, ctx: _RunContext) -> None:
        if await self._jobs.is_cancelled(ctx.job_id):
            raise JobCancelledError(f"Job {ctx.job_id} was cancelled")

    @staticmethod
    def _failure_data(e: BaseException, **extra) -> dict:
        code, message = classify_error(e)
        return {"error": message, "errorCode": code, **extra}

    # ── Stage 1: skeleton ────────────────────────────────────────

    async def _stage_skeleton(self, ctx: _RunContext) -> list[Module]:
        span = P.SKELETON
        content = self._providers.content
        await self._progress(ctx, span.begin, span.stage, f"{span.label}: Generating course skeleton")
        await self._event(ctx, span.stage, EventLevel.INFO, "Starting course skeleton generation",
                          {"provider": content.name})

        skeleton = await self._generate_skeleton(ctx)

        modules = await self._courses.append_modules(ctx.course_id, skeleton.modules)
        await self._progress(ctx, span.end, span.stage, f"{span.label}: Complete")
        await self._event(ctx, span.stage, EventLevel.INFO, "Course modules saved",
                          {"modules": len(modules)})
        return modules

    async def _generate_skeleton(self, ctx: _RunContext) -> CourseSkeleton:
        """Two attempts on the configured provider, then one on the mock."""
        span = P.SKELETON
        content = self._providers.content
        args = (ctx.topic, ctx.level, ctx.time_per_day)

        try:
            skeleton = await content.generate_skeleton(*args)
            await self._event(ctx, span.stage, EventLevel.INFO, "Course skeleton generated",
                              {"modules": len(skeleton.modules)})
            return skeleton
        except Exception as e:
            logger.warning(f"Job {ctx.job_id}: skeleton attempt 1 failed: {e}")
            await self._event(ctx, span.stage, EventLevel.WARN, "Skeleton generation failed, retrying",
                              self._failure_data(e, attempt=1))

        await self._progress(ctx, P.SKELETON_RETRY, span.stage, f"{span.label}: Retrying skeleton generation")
        try:
            skeleton = await content.generate_skeleton(*args)
            await self._event(ctx, span.stage, EventLevel.INFO, "Retry succeeded",
                              {"modules": len(skeleton.modules)})
            return skeleton
        except Exception as e:
            logger.warning(f"Job {ctx.job_id}: skeleton attempt 2 failed: {e}")
            await self._event(ctx, span.stage, EventLevel.WARN, "Retry failed, using fallback generator",
                              self._failure_data(e, attempt=2))

        fallback = self._providers.fallback_content
        try:
            skeleton = await fallback.generate_skeleton(*args)
        except Exception as e:
            await self._event(ctx, span.stage, EventLevel.ERROR,
                              "Fallback generator failed; course skeleton is required",
                              self._failure_data(e, provider=fallback.name))
            raise
        await self._event(ctx, span.stage, EventLevel.WARN, "Course skeleton generated by fallback generator",
                          {"modules": len(skeleton.modules), "provider": fallback.name})
        return skeleton

    # ── Stage 2: lessons ─────────────────────────────────────────

    async def _stage_lessons(self, ctx: _RunContext, modules: list[Module]) -> None:
        span = P.LESSONS
        await self._progress(ctx, span.begin, span.stage, f"{span.label}: Generating lessons")
        await self._event(ctx, span.stage, EventLevel.INFO, "Starting lesson generation for all modules")

        for i, module in enumerate(modules):
            try:
                lessons = await self._providers.content.generate_lessons(
                    ctx.topic, _outline(module), ctx.time_per_day,
                )
                count = await self._courses.append_lessons(module.id, lessons.steps)
                await self._event(ctx, span.stage, EventLevel.INFO, f"Module {module.order} lessons created",
                                  {"count": count})
            except Exception as e:
                logger.warning(f"Job {ctx.job_id}: module {module.order} lessons failed: {e}")
                await self._event(ctx, span.stage, EventLevel.WARN,
                                  f"Module {module.order} lessons failed, using fallback",
                                  self._failure_data(e, moduleOrder=module.order))
                await self._courses.append_lessons(module.id, fallback_lessons(module.title, ctx.time_per_day))

            await self._progress(ctx, span.after_item(i, len(modules)), span.stage,
                                 f"{span.label}: Module {module.order} lessons")

        await self._progress(ctx, span.end, span.stage, f"{span.label}: Complete")

    # ── Stage 3: quizzes ─────────────────────────────────────────

    async def _stage_quizzes(self, ctx: _RunContext, modules: list[Module]) -> None:
        span = P.QUIZZES
        await self._progress(ctx, span.begin, span.stage, f"{span.label}: Generating quizzes")
        await self._event(ctx, span.stage, EventLevel.INFO, "Starting quiz generation for all modules")

        for i, module in enumerate(modules):
            try:
                quiz = await self._providers.content.generate_quiz(ctx.topic, _outline(module))
                await self._courses.append_quiz(module.id, quiz.questions)
                await self._event(ctx, span.stage, EventLevel.INFO, f"Module {module.order} quiz created",
                                  {"questions": len(quiz.questions)})
            except Exception as e:
                logger.warning(f"Job {ctx.job_id}: module {module.order} quiz failed: {e}")
                await self._event(ctx, span.stage, EventLevel.WARN,
                                  f"Module {module.order} quiz failed, using fallback",
                                  self._failure_data(e, moduleOrder=module.order))
                await self._courses.append_quiz(module.id, fallback_quiz(module.title))

            await self._progress(ctx, span.after_item(i, len(modules)), span.stage,
                                 f"{span.label}: Module {module.order} quiz")

        await self._progress(ctx, span.end, span.stage, f"{span.label}: Complete")

    # ── Stage 4: resources ───────────────────────────────────────

    async def _stage_resources(self, ctx: _RunContext, modules: list[Module]) -> None:
        span = P.RESOURCES
        video = self._providers.video
        await self._progress(ctx, span.begin, span.stage, f"{span.label}: Finding video resources")
        await self._event(ctx, span.stage, EventLevel.INFO, "Starting video resource search",
                          {"provider": video.name})

        for i, module in enumerate(modules):
            query = f"{ctx.topic} {module.title} tutorial"
            try:
                videos = await video.search(query, self._video_results)
                count = await self._courses.append_resources(module.id, videos, provider=video.name)
                await self._event(ctx, span.stage, EventLevel.INFO, f"Module {module.order} resources added",
                                  {"count": count, "query": query})
            except Exception as e:
                # Non-fatal: the module simply has no resources
                logger.warning(f"Job {ctx.job_id}: module {module.order} resources failed: {e}")
                _, message = classify_error(e)
                await self._event(ctx, span.stage, EventLevel.WARN,
                                  f"Module {module.order} resources failed (non-fatal)",
                                  {"error": message, "errorCode": ErrorCode.YOUTUBE_PROVIDER_FAILURE,
                                   "moduleOrder": module.order, "query": query})

            await self._progress(ctx, span.after_item(i, len(modules)), span.stage,
                                 f"{span.label}: Module {module.order} resources")

        await self._progress(ctx, span.end, span.stage, f"{span.label}: Complete")

    # ── Stage 5: finalize ────────────────────────────────────────

    async def _stage_finalize(self, ctx: _RunContext) -> None:
        span = P.FINALIZE
        await self._progress(ctx, span.begin, span.stage, f"{span.label}: Finalizing")
        await self._event(ctx, span.stage, EventLevel.INFO, "Finalizing course")

        try:
            await self._courses.mark_active(ctx.course_id)
        except Exception as e:
            await self._event(ctx, span.stage, EventLevel.ERROR, "Course activation failed",
                              self._failure_data(e))
            raise

        await self._progress(ctx, span.end, span.stage, f"{span.label}: Complete")
        await self._event(ctx, span.stage, EventLevel.INFO, "Course activated",
                          {"courseId": str(ctx.course_id)})
