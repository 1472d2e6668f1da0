"""Global progress checkpoints for the generate-course pipeline.

Clients poll on these numbers, so they are fixed: each stage owns a range
and per-module progress is interpolated with integer floor division.
"""
from dataclasses import dataclass

from app.models.job import JobStage


@dataclass(frozen=True)
class StageSpan:
    stage: JobStage
    begin: int   # reported when the stage starts
    end: int     # reported when the stage completes
    label: str

    def after_item(self, index: int, total: int) -> int:
        """Progress after finishing item `index` (0-based) of `total`."""
        if total <= 0:
            return self.end
        return self.begin + ((index + 1) * (self.end - self.begin)) // total


SKELETON = StageSpan(JobStage.SKELETON, 10, 20, "Stage 1")
SKELETON_RETRY = 12
LESSONS = StageSpan(JobStage.LESSONS, 25, 40, "Stage 2")
QUIZZES = StageSpan(JobStage.QUIZZES, 45, 70, "Stage 3")
RESOURCES = StageSpan(JobStage.RESOURCES, 75, 95, "Stage 4")
FINALIZE = StageSpan(JobStage.FINALIZE, 98, 100, "Stage 5")
