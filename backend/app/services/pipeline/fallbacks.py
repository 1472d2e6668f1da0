"""Locally synthesized substitutes for failed lesson and quiz generation."""
from app.schemas.content import LessonStep, QuizQuestionPayload

FALLBACK_LESSON_COUNT = 4
FALLBACK_QUIZ_QUESTIONS = 3
FALLBACK_OPTIONS = ["Option A", "Option B", "Option C", "Option D"]


def fallback_lessons(module_title: str, time_per_day: int) -> list[LessonStep]:
    """Four lessons splitting the daily study time evenly: learn, practice, learn, apply."""
    minutes = max(1, min(60, time_per_day // FALLBACK_LESSON_COUNT))
    steps = []
    for j in range(1, FALLBACK_LESSON_COUNT + 1):
        if j == FALLBACK_LESSON_COUNT:
            lesson_type = "apply"
        elif j % 2 == 0:
            lesson_type = "practice"
        else:
            lesson_type = "learn"
        steps.append(LessonStep(
            order=j,
            title=f"{module_title} - Part {j}",
            type=lesson_type,
            estimated_minutes=minutes,
        ))
    return steps


def fallback_quiz(module_title: str) -> list[QuizQuestionPayload]:
    return [
        QuizQuestionPayload(
            type="mcq",
            question=f"Question {j} about {module_title}?",
            options=list(FALLBACK_OPTIONS),
            answer_key=FALLBACK_OPTIONS[0],
            explanation="Explanation for this question.",
            difficulty="medium",
            tags=[],
        )
        for j in range(1, FALLBACK_QUIZ_QUESTIONS + 1)
    ]
