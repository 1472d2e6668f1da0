"""Job request/response schemas."""
import uuid
from typing import Optional
from datetime import datetime
from app.schemas.base import CamelModel, CamelORMModel


class JobEventResponse(CamelORMModel):
    id: int
    stage: str
    level: str
    message: str
    data: Optional[dict] = None
    created_at: datetime


class JobSummaryResponse(CamelORMModel):
    id: uuid.UUID
    job_type: str
    status: str
    stage: str
    progress_percent: int
    current_stage: str
    course_id: uuid.UUID
    error_code: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class JobStatusResponse(CamelModel):
    """Polling view. Error trio only on failure, courseId only on success."""
    id: uuid.UUID
    job_type: str
    status: str
    stage: str
    progress_percent: int
    current_stage: str
    events: list[JobEventResponse] = []
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    suggested_fix: Optional[str] = None
    course_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ErrorResponse(CamelModel):
    error_code: str
    error_message: str
    suggested_fix: str
    details: Optional[list] = None
