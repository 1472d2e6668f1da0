"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.config import settings
from app.database import async_session, engine, get_db
from app.models import Base
from app.models.job import JOB_TYPE_GENERATE_COURSE
from app.routes.errors import course_gen_exception_handler, request_validation_exception_handler
from app.services.course_store import CourseStore
from app.services.errors import CourseGenError
from app.services.job_store import JobStore
from app.services.job_worker import JobDispatcher
from app.services.pipeline import CoursePipeline
from app.services.providers import build_providers

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, recover stale jobs, start the job dispatcher."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    job_store = JobStore(async_session)
    course_store = CourseStore(async_session)

    # Jobs stuck in "running" from a previous crash
    await job_store.recover_stale_jobs(settings.STALE_JOB_MINUTES)

    pipeline = CoursePipeline(
        job_store,
        course_store,
        build_providers(settings),
        video_results_per_module=settings.VIDEO_RESULTS_PER_MODULE,
    )
    dispatcher = JobDispatcher(job_store, poll_interval=settings.JOB_POLL_INTERVAL)
    dispatcher.register(JOB_TYPE_GENERATE_COURSE, pipeline.run)
    app.state.dispatcher = dispatcher

    if settings.JOB_WORKER_ENABLED:
        dispatcher.start()
    else:
        logger.info("JOB_WORKER_ENABLED is false; jobs will stay queued")

    yield

    # Cleanup
    await dispatcher.stop()
    await engine.dispose()


app = FastAPI(
    title="Learning Path Generator API",
    version="1.0.0",
    description="Generates structured learning paths as background jobs.",
    lifespan=lifespan,
)

app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(CourseGenError, course_gen_exception_handler)

# CORS
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/health")
async def health_check():
    """Verify API and database connectivity."""
    try:
        async for db in get_db():
            await db.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected"}
    except Exception as e:
        return {"status": "error", "database": str(e)}


# Register routers
from app.routes.courses import router as courses_router
from app.routes.jobs import router as jobs_router
from app.routes.lessons import router as lessons_router
app.include_router(courses_router)
app.include_router(jobs_router)
app.include_router(lessons_router)
