"""Generate-course pipeline stages, progress checkpoints and fallbacks."""
from app.services.pipeline.orchestrator import CoursePipeline

__all__ = ["CoursePipeline"]
