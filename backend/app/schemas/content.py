"""Structural schemas for provider output.

Everything a content or video provider returns is validated against these
before the pipeline accepts it. A ValidationError here is treated exactly
like a provider failure.
"""
from typing import Literal, Optional
from pydantic import Field, HttpUrl, model_validator
from app.schemas.base import CamelModel

MODULES_PER_COURSE = 5
MAX_RESOURCES_PER_MODULE = 5

LessonType = Literal["learn", "practice", "apply"]
QuestionType = Literal["mcq", "short", "code"]
Difficulty = Literal["easy", "medium", "hard"]


# ── Skeleton ─────────────────────────────────────────────────────

class ModuleOutline(CamelModel):
    order: int = Field(ge=1, le=MODULES_PER_COURSE)
    title: str = Field(min_length=5, max_length=100)
    description: str = Field(min_length=10, max_length=500)
    outcomes: list[str] = Field(min_length=2, max_length=6)


class CourseSkeleton(CamelModel):
    topic: str
    level: str
    modules: list[ModuleOutline] = Field(min_length=MODULES_PER_COURSE, max_length=MODULES_PER_COURSE)

    @model_validator(mode="after")
    def check_module_orders(self):
        orders = sorted(m.order for m in self.modules)
        if orders != list(range(1, MODULES_PER_COURSE + 1)):
            raise ValueError(f"module orders must be 1..{MODULES_PER_COURSE}, got {orders}")
        self.modules.sort(key=lambda m: m.order)
        return self


# ── Lessons ──────────────────────────────────────────────────────

class LessonStep(CamelModel):
    order: int = Field(ge=1)
    title: str = Field(min_length=5, max_length=150)
    type: LessonType
    estimated_minutes: int = Field(ge=1, le=60)
    content: Optional[str] = None


class ModuleLessons(CamelModel):
    module_order: int = Field(ge=1, le=MODULES_PER_COURSE)
    steps: list[LessonStep] = Field(min_length=3, max_length=10)


# ── Quizzes ──────────────────────────────────────────────────────

class QuizQuestionPayload(CamelModel):
    type: QuestionType
    question: str = Field(min_length=10)
    options: Optional[list[str]] = None
    answer_key: str
    explanation: str = Field(min_length=10)
    difficulty: Difficulty = "medium"
    tags: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_mcq(self):
        if self.type == "mcq":
            if not self.options or len(self.options) < 2:
                raise ValueError("mcq questions need at least 2 options")
            if self.answer_key not in self.options:
                raise ValueError("mcq answerKey must be one of the options")
        return self


class ModuleQuiz(CamelModel):
    module_order: int = Field(ge=1, le=MODULES_PER_COURSE)
    questions: list[QuizQuestionPayload] = Field(min_length=5, max_length=15)


# ── Video resources ──────────────────────────────────────────────

class VideoResource(CamelModel):
    title: str = Field(min_length=1)
    url: HttpUrl
    channel: Optional[str] = None
    duration_seconds: Optional[int] = Field(default=None, ge=0)
    thumbnail_url: Optional[HttpUrl] = None
    reason: Optional[str] = None

