"""Import all models so SQLAlchemy metadata knows about them."""
from app.models.base import Base
from app.models.course import Course, Module, Lesson, Quiz, QuizQuestion, Resource
from app.models.job import Job, JobEvent, IdempotencyRecord

__all__ = [
    "Base",
    "Course", "Module", "Lesson", "Quiz", "QuizQuestion", "Resource",
    "Job", "JobEvent", "IdempotencyRecord",
]
