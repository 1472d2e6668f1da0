"""Course content providers: skeleton, lessons and quizzes.

CourseContentProvider validates every payload before returning it, so
subclasses only produce raw dicts. An invalid shape surfaces as
ContentSchemaInvalidError, the same way the pipeline sees any other provider
failure.
"""
import logging
from abc import ABC, abstractmethod
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from app.schemas.content import CourseSkeleton, ModuleLessons, ModuleOutline, ModuleQuiz
from app.services.errors import (
    ContentProviderError, ContentSchemaInvalidError, CourseGenError, safe_error_message,
)
from app.services.providers.llm_base import BaseLLMProvider
from app.services.providers.prompts import (
    LESSONS_PROMPT, QUIZ_PROMPT, SKELETON_PROMPT, SYSTEM_PROMPT, format_outcomes,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def validate_payload(model: type[T], payload, what: str) -> T:
    """Validate a provider payload, raising ContentSchemaInvalidError on any mismatch."""
    if not isinstance(payload, dict):
        raise ContentSchemaInvalidError(f"{what}: expected a JSON object, got {type(payload).__name__}")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(p) for p in first.get("loc", ()))
        raise ContentSchemaInvalidError(
            f"{what} failed validation ({e.error_count()} error(s)); first: {location}: {first.get('msg')}"
        ) from e


class CourseContentProvider(ABC):
    """Capability: generate structured course content."""

    name: str = "content"

    async def generate_skeleton(self, topic: str, level: str, time_per_day: int) -> CourseSkeleton:
        payload = await self._skeleton_payload(topic, level, time_per_day)
        return validate_payload(CourseSkeleton, payload, "Course skeleton")

    async def generate_lessons(self, topic: str, module: ModuleOutline, time_per_day: int) -> ModuleLessons:
        payload = await self._lessons_payload(topic, module, time_per_day)
        lessons = validate_payload(ModuleLessons, payload, f"Module {module.order} lessons")
        lessons.steps.sort(key=lambda s: s.order)
        return lessons

    async def generate_quiz(self, topic: str, module: ModuleOutline) -> ModuleQuiz:
        payload = await self._quiz_payload(topic, module)
        return validate_payload(ModuleQuiz, payload, f"Module {module.order} quiz")

    @abstractmethod
    async def _skeleton_payload(self, topic: str, level: str, time_per_day: int) -> dict:
        pass

    @abstractmethod
    async def _lessons_payload(self, topic: str, module: ModuleOutline, time_per_day: int) -> dict:
        pass

    @abstractmethod
    async def _quiz_payload(self, topic: str, module: ModuleOutline) -> dict:
        pass


class LLMCourseContentProvider(CourseContentProvider):
    """Content generated by a real LLM (Gemini or OpenAI)."""

    def __init__(self, llm: BaseLLMProvider):
        self._llm = llm
        self.name = f"llm:{type(llm).__name__}:{llm.model_name}"

    async def _ask(self, prompt: str, what: str) -> dict:
        try:
            return await self._llm.generate_json(prompt, system_prompt=SYSTEM_PROMPT)
        except CourseGenError:
            raise
        except ValueError as e:
            # Unrecoverable JSON from the model
            raise ContentSchemaInvalidError(f"{what}: {e}") from e
        except Exception as e:
            logger.warning("LLM call for %s failed: %s", what, e)
            raise ContentProviderError(f"{what}: {safe_error_message(e, 'LLM call failed')}") from e

    async def _skeleton_payload(self, topic, level, time_per_day):
        prompt = SKELETON_PROMPT.format(topic=topic, level=level, time_per_day=time_per_day)
        return await self._ask(prompt, "Course skeleton")

    async def _lessons_payload(self, topic, module, time_per_day):
        prompt = LESSONS_PROMPT.format(
            topic=topic,
            order=module.order,
            title=module.title,
            description=module.description,
            outcomes=format_outcomes(module.outcomes),
            time_per_day=time_per_day,
        )
        return await self._ask(prompt, f"Module {module.order} lessons")

    async def _quiz_payload(self, topic, module):
        prompt = QUIZ_PROMPT.format(
            topic=topic, order=module.order, title=module.title, description=module.description,
        )
        return await self._ask(prompt, f"Module {module.order} quiz")


# ── Deterministic mock ───────────────────────────────────────────

_MODULE_TEMPLATES = [
    ("Foundations of {t}", "Get oriented: what {t} is, why it matters and the vocabulary you will keep using.",
     ["Explain what {t} is used for", "Recognise the core terminology", "Set up a working environment"]),
    ("Core Concepts of {t}", "The building blocks of {t} and how they fit together.",
     ["Describe the main building blocks", "Connect concepts to simple examples", "Avoid common beginner mistakes"]),
    ("Hands-on {t} Practice", "Guided exercises that turn the concepts into muscle memory.",
     ["Complete guided exercises", "Debug typical problems", "Build small working examples"]),
    ("Applying {t} in Real Projects", "Use {t} inside a realistic project from start to finish.",
     ["Plan a small project", "Apply {t} end to end", "Review and improve your own work"]),
    ("Advanced {t} and Next Steps", "Deeper topics, best practices and where to go next with {t}.",
     ["Evaluate advanced techniques", "Follow established best practices", "Plan further learning"]),
]


def _short_topic(topic: str, limit: int = 60) -> str:
    topic = " ".join(topic.split())
    return topic if len(topic) <= limit else topic[:limit].rstrip()


class MockCourseContentProvider(CourseContentProvider):
    """Deterministic local content. Used when no LLM is configured and as the stage 1 fallback."""

    name = "mock"

    async def _skeleton_payload(self, topic, level, time_per_day):
        t = _short_topic(topic)
        return {
            "topic": topic,
            "level": level,
            "modules": [
                {
                    "order": i,
                    "title": title.format(t=t),
                    "description": description.format(t=t),
                    "outcomes": [o.format(t=t) for o in outcomes],
                }
                for i, (title, description, outcomes) in enumerate(_MODULE_TEMPLATES, start=1)
            ],
        }

    async def _lessons_payload(self, topic, module, time_per_day):
        kinds = ["learn", "learn", "practice", "practice", "apply"]
        minutes = max(1, min(60, time_per_day // len(kinds)))
        labels = ["Overview", "Key ideas", "Guided exercise", "Independent exercise", "Mini project"]
        return {
            "moduleOrder": module.order,
            "steps": [
                {
                    "order": i,
                    "title": f"{module.title}: {label}",
                    "type": kind,
                    "estimatedMinutes": minutes,
                    "content": f"{label} for {module.title}. {module.description}",
                }
                for i, (kind, label) in enumerate(zip(kinds, labels), start=1)
            ],
        }

    async def _quiz_payload(self, topic, module):
        outcomes = list(module.outcomes) or [module.title]
        questions = []
        for i in range(5):
            outcome = outcomes[i % len(outcomes)]
            options = [
                outcome,
                f"Skipping {module.title} entirely",
                "Memorising without practice",
                "None of the above",
            ]
            questions.append({
                "type": "mcq",
                "question": f"Which of these is a goal of '{module.title}'? ({i + 1})",
                "options": options,
                "answerKey": outcome,
                "explanation": f"'{outcome}' is one of the stated outcomes of this module.",
                "difficulty": "easy" if i < 2 else "medium",
                "tags": [_short_topic(topic, 40)],
            })
        return {"moduleOrder": module.order, "questions": questions}
