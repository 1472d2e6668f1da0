"""Course request/response schemas."""
import uuid
from typing import Literal, Optional
from datetime import datetime
from pydantic import Field, field_validator
from app.schemas.base import CamelModel, CamelORMModel


class GeneratePathRequest(CamelModel):
    topic: str = Field(min_length=3, max_length=200)
    level: Literal["beginner", "intermediate", "advanced"] = "beginner"
    time_per_day: int = Field(default=30, ge=5, le=480)
    time_per_week: Optional[int] = Field(default=None, ge=10, le=3360)
    deadline: Optional[datetime] = None
    # Opaque client token; UUIDs are expected but not required
    idempotency_key: str = Field(min_length=1, max_length=255)

    @field_validator("topic", mode="before")
    @classmethod
    def strip_topic(cls, v):
        # Length limits apply to the trimmed topic
        return v.strip() if isinstance(v, str) else v


class GeneratePathResponse(CamelModel):
    job_id: uuid.UUID
    course_id: uuid.UUID
    existing: bool = False


class LessonResponse(CamelORMModel):
    id: uuid.UUID
    module_id: uuid.UUID
    order: int
    title: str
    type: str
    estimated_minutes: int
    content: str = ""


class QuizQuestionResponse(CamelORMModel):
    id: uuid.UUID
    order: int
    type: str
    question: str
    options: Optional[list[str]] = None
    answer_key: str
    explanation: str = ""
    difficulty: str = "medium"
    tags: list[str] = []


class QuizResponse(CamelORMModel):
    id: uuid.UUID
    total_questions: int
    questions: list[QuizQuestionResponse] = []


class ResourceResponse(CamelORMModel):
    id: uuid.UUID
    order: int
    provider: str
    title: str
    url: str
    channel: Optional[str] = None
    duration_seconds: Optional[int] = None
    thumbnail_url: Optional[str] = None
    reason: Optional[str] = None


class ModuleResponse(CamelORMModel):
    id: uuid.UUID
    order: int
    title: str
    description: str
    outcomes: list[str] = []
    lessons: list[LessonResponse] = []
    quiz: Optional[QuizResponse] = None
    resources: list[ResourceResponse] = []


class CourseResponse(CamelORMModel):
    id: uuid.UUID
    topic: str
    level: str
    time_per_day: int
    time_per_week: Optional[int] = None
    deadline: Optional[datetime] = None
    status: str
    created_at: datetime
    updated_at: datetime
    modules: list[ModuleResponse] = []
