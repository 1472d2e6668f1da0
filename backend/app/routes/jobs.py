"""Jobs API - list, poll status, cancel course generation jobs."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.job import JobStatusResponse, JobSummaryResponse
from app.services import submission

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.get("", response_model=list[JobSummaryResponse])
async def list_jobs(
    status: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """List jobs, newest first, optionally filtered by status."""
    return await submission.list_jobs(db, status=status, limit=limit, offset=offset)


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job(job_id: UUID, db: AsyncSession = Depends(get_db)):
    """Get job status, progress and event log."""
    return await submission.get_job_status(db, job_id)


@router.post("/{job_id}/cancel")
async def cancel_job(job_id: UUID, db: AsyncSession = Depends(get_db)):
    """Cancel a queued or running job."""
    job = await submission.cancel_job(db, job_id)
    return {"id": str(job.id), "status": job.status}
