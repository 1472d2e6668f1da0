import time

import pytest

from app.config import Settings
from app.schemas.content import ModuleOutline
from app.services.errors import ContentProviderError, ContentSchemaInvalidError, VideoProviderError
from app.services.providers import (
    LLMCourseContentProvider, MockCourseContentProvider, MockVideoSearchProvider, VideoSearchProvider,
    build_providers,
)
from app.services.providers.llm_base import BaseLLMProvider, LLMTimeoutError
from app.services.providers.response_parser import parse_json_response
from app.services.providers.video import parse_iso8601_duration

OUTLINE = ModuleOutline(
    order=2,
    title="Core Concepts",
    description="The building blocks and how they fit together.",
    outcomes=["Describe the building blocks", "Connect concepts to examples"],
)


class FakeLLM(BaseLLMProvider):
    def __init__(self, reply=None, error=None):
        super().__init__(api_key="test", model_name="fake-model")
        self.reply = reply
        self.error = error
        self.prompts = []

    async def generate_json(self, prompt, system_prompt=None, **kwargs):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.reply


# ── JSON recovery ────────────────────────────────────────────────

def test_parse_plain_json():
    assert parse_json_response('{"a": 1}') == {"a": 1}


def test_parse_fenced_json():
    assert parse_json_response('```json\n{"a": [1, 2]}\n```') == {"a": [1, 2]}


def test_parse_json_surrounded_by_prose():
    text = 'Here is the course:\n{"topic": "Go", "note": "uses {braces}"}\nHope this helps!'
    assert parse_json_response(text) == {"topic": "Go", "note": "uses {braces}"}


def test_parse_truncated_json():
    assert parse_json_response('{"modules": [{"title": "Intro", "outcomes": ["a", "b') == {
        "modules": [{"title": "Intro", "outcomes": ["a", "b"]}]
    }


def test_parse_garbage_raises_value_error():
    with pytest.raises(ValueError):
        parse_json_response("no json here")


# ── Video duration ───────────────────────────────────────────────

@pytest.mark.parametrize("value, expected", [
    ("PT1H2M3S", 3723),
    ("PT15M", 900),
    ("PT45S", 45),
    ("P1DT1H", 90000),
    ("", None),
    (None, None),
    ("garbage", None),
])
def test_parse_iso8601_duration(value, expected):
    assert parse_iso8601_duration(value) == expected


# ── Mock content ─────────────────────────────────────────────────

async def test_mock_content_is_valid():
    provider = MockCourseContentProvider()
    skeleton = await provider.generate_skeleton("Docker Containers", "beginner", 30)
    assert [m.order for m in skeleton.modules] == [1, 2, 3, 4, 5]

    lessons = await provider.generate_lessons("Docker Containers", skeleton.modules[0], 30)
    assert 3 <= len(lessons.steps) <= 10
    assert lessons.steps[-1].type == "apply"
    assert all(step.estimated_minutes == 6 for step in lessons.steps)

    quiz = await provider.generate_quiz("Docker Containers", skeleton.modules[0])
    assert 5 <= len(quiz.questions) <= 15
    assert all(q.answer_key in q.options for q in quiz.questions)


async def test_mock_skeleton_handles_long_topics():
    skeleton = await MockCourseContentProvider().generate_skeleton("x" * 200, "advanced", 5)
    assert all(len(m.title) <= 100 for m in skeleton.modules)


# ── LLM content ──────────────────────────────────────────────────

async def test_llm_provider_validates_payload():
    reply = {
        "moduleOrder": 2,
        "steps": [
            {"order": 3, "title": "Build a thing", "type": "apply", "estimatedMinutes": 20},
            {"order": 1, "title": "Read about it", "type": "learn", "estimatedMinutes": 10},
            {"order": 2, "title": "Try it out", "type": "practice", "estimatedMinutes": 15},
        ],
    }
    llm = FakeLLM(reply=reply)
    lessons = await LLMCourseContentProvider(llm).generate_lessons("Go", OUTLINE, 45)

    assert [s.order for s in lessons.steps] == [1, 2, 3]
    assert "Core Concepts" in llm.prompts[0]
    assert "- Describe the building blocks" in llm.prompts[0]


async def test_llm_schema_mismatch_raises_schema_invalid():
    llm = FakeLLM(reply={"topic": "Go", "level": "beginner", "modules": [{"order": 1}]})
    with pytest.raises(ContentSchemaInvalidError):
        await LLMCourseContentProvider(llm).generate_skeleton("Go", "beginner", 30)


async def test_llm_mcq_answer_must_be_an_option():
    question = {
        "type": "mcq",
        "question": "Which keyword starts a goroutine?",
        "options": ["go", "async"],
        "answerKey": "spawn",
        "explanation": "The go keyword starts a goroutine.",
    }
    llm = FakeLLM(reply={"moduleOrder": 2, "questions": [question] * 5})
    with pytest.raises(ContentSchemaInvalidError):
        await LLMCourseContentProvider(llm).generate_quiz("Go", OUTLINE)


async def test_llm_unparseable_reply_raises_schema_invalid():
    llm = FakeLLM(error=ValueError("Invalid JSON in response"))
    with pytest.raises(ContentSchemaInvalidError):
        await LLMCourseContentProvider(llm).generate_quiz("Go", OUTLINE)


async def test_llm_transport_error_raises_provider_failure():
    llm = FakeLLM(error=ConnectionError("connection reset"))
    with pytest.raises(ContentProviderError):
        await LLMCourseContentProvider(llm).generate_skeleton("Go", "beginner", 30)


# ── Video search ─────────────────────────────────────────────────

async def test_video_search_caps_results():
    provider = MockVideoSearchProvider()
    assert len(await provider.search("go tutorial", max_results=9)) == 5
    assert await provider.search("go tutorial", max_results=0) == []


async def test_video_search_rejects_invalid_results():
    class BadVideo(VideoSearchProvider):
        async def _search(self, query, max_results):
            return [{"title": "No url"}]

    with pytest.raises(VideoProviderError):
        await BadVideo().search("go tutorial")


async def test_video_search_skips_only_the_malformed_item():
    class MixedVideo(VideoSearchProvider):
        async def _search(self, query, max_results):
            return [
                {"title": "Go in 100 Seconds", "url": "https://www.youtube.com/watch?v=abc123",
                 "channel": "Fireship", "durationSeconds": 100},
                {"title": "Broken", "url": "not a url"},
            ]

    videos = await MixedVideo().search("go tutorial", max_results=3)

    assert [v.title for v in videos] == ["Go in 100 Seconds"]


async def test_video_search_empty_result_is_not_an_error():
    class EmptyVideo(VideoSearchProvider):
        async def _search(self, query, max_results):
            return []

    assert await EmptyVideo().search("go tutorial") == []


# ── Factory ──────────────────────────────────────────────────────

def test_factory_uses_mocks_without_credentials():
    settings = Settings(
        _env_file=None,
        GEMINI_API_KEY="",
        GEMINI_SERVICE_ACCOUNT_PATH="",
        OPENAI_API_KEY="",
        YOUTUBE_API_KEY="",
        GOOGLE_API_KEY="",
    )
    providers = build_providers(settings)
    assert providers.content.name == "mock"
    assert providers.video.name == "mock"
    assert providers.fallback_content.name == "mock"


def test_factory_prefers_youtube_when_keyed():
    settings = Settings(_env_file=None, GEMINI_API_KEY="", OPENAI_API_KEY="", YOUTUBE_API_KEY="yt-key")
    providers = build_providers(settings)
    assert providers.video.name == "youtube"


def test_factory_applies_llm_timeout():
    settings = Settings(
        _env_file=None, DEFAULT_LLM_PROVIDER="openai", OPENAI_API_KEY="sk-test",
        OPENAI_MODEL="gpt-4o-mini", LLM_TIMEOUT_SECONDS=12,
    )
    providers = build_providers(settings)
    assert providers.content.name == "llm:OpenAIProvider:gpt-4o-mini"
    assert providers.content._llm.timeout == 12


# ── LLM timeout ──────────────────────────────────────────────────

class SlowLLM(BaseLLMProvider):
    def __init__(self, delay):
        super().__init__(api_key="test", model_name="slow-model")
        self.delay = delay

    def _sync_generate_json(self, prompt, system_prompt):
        time.sleep(self.delay)
        return {"ok": True}

    async def generate_json(self, prompt, system_prompt=None, **kwargs):
        return await self._call(self._sync_generate_json, prompt, system_prompt, label="generate_json")


async def test_slow_llm_call_times_out():
    llm = SlowLLM(delay=0.5)
    llm.set_timeout(0.05)
    with pytest.raises(LLMTimeoutError):
        await llm.generate_json("hello")


async def test_llm_call_within_timeout_returns_payload():
    llm = SlowLLM(delay=0)
    assert await llm.generate_json("hello") == {"ok": True}


def test_llm_timeout_must_be_positive():
    with pytest.raises(ValueError):
        SlowLLM(delay=0).set_timeout(0)
