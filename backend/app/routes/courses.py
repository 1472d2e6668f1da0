"""Courses API - submit a generation request, read the generated course tree."""
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.course import CourseResponse, GeneratePathRequest, GeneratePathResponse
from app.services.idempotency import IdempotencyRegistry
from app.services import submission

router = APIRouter(prefix="/api/courses", tags=["courses"])

_registry = IdempotencyRegistry()


@router.post("/generate", response_model=GeneratePathResponse, status_code=202)
async def generate_course(
    body: GeneratePathRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """Queue course generation. Replaying an idempotencyKey returns the first job with 200."""
    result = await submission.submit_generate_course(db, body, _registry)
    if result.existing:
        response.status_code = 200
    else:
        dispatcher = getattr(request.app.state, "dispatcher", None)
        if dispatcher is not None:
            dispatcher.notify()
    return result


@router.get("/{course_id}", response_model=CourseResponse)
async def get_course(course_id: UUID, db: AsyncSession = Depends(get_db)):
    """Full course tree: modules, lessons, quiz and resources."""
    return await submission.get_course_tree(db, course_id)
