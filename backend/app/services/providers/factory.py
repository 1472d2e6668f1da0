"""Provider selection.

build_providers() runs once at process start. Each capability resolves to a
real implementation when its credentials are configured, otherwise to the
deterministic mock. The choice is never re-evaluated per call.
"""
import logging
import os
from dataclasses import dataclass, field

from app.config import Settings
from app.services.providers.content import (
    CourseContentProvider, LLMCourseContentProvider, MockCourseContentProvider,
)
from app.services.providers.llm_base import BaseLLMProvider, create_llm_provider
from app.services.providers.video import (
    MockVideoSearchProvider, VideoSearchProvider, YouTubeSearchProvider,
)

logger = logging.getLogger(__name__)


@dataclass
class ProviderSet:
    content: CourseContentProvider
    video: VideoSearchProvider
    # Stage 1 falls back to this after the primary content provider fails twice
    fallback_content: CourseContentProvider = field(default_factory=MockCourseContentProvider)


def _detect_service_account_path(settings: Settings) -> str:
    """Returns the configured service account path if the file exists, else ''."""
    sa_path = settings.GEMINI_SERVICE_ACCOUNT_PATH
    if sa_path and os.path.isfile(sa_path):
        return sa_path
    return ""


def _wrap(llm: BaseLLMProvider, settings: Settings) -> CourseContentProvider:
    llm.set_timeout(settings.LLM_TIMEOUT_SECONDS)
    return LLMCourseContentProvider(llm)


def build_content_provider(settings: Settings) -> CourseContentProvider:
    provider = settings.DEFAULT_LLM_PROVIDER.lower()
    if provider == "openai" and settings.OPENAI_API_KEY:
        llm = create_llm_provider(
            "openai", api_key=settings.OPENAI_API_KEY,
            model_name=settings.OPENAI_MODEL, temperature=settings.LLM_TEMPERATURE,
        )
        return _wrap(llm, settings)

    if provider == "gemini":
        sa_path = _detect_service_account_path(settings)
        if settings.GEMINI_API_KEY or sa_path:
            llm = create_llm_provider(
                "gemini", api_key=settings.GEMINI_API_KEY,
                model_name=settings.GEMINI_MODEL, temperature=settings.LLM_TEMPERATURE,
                service_account_path=sa_path,
            )
            return _wrap(llm, settings)

    logger.warning(f"No credentials for LLM provider '{provider}'; using mock content generator")
    return MockCourseContentProvider()


def build_video_provider(settings: Settings) -> VideoSearchProvider:
    api_key = settings.YOUTUBE_API_KEY or settings.GOOGLE_API_KEY
    if api_key:
        return YouTubeSearchProvider(api_key)
    logger.warning("No YOUTUBE_API_KEY; using mock video search")
    return MockVideoSearchProvider()


def build_providers(settings: Settings) -> ProviderSet:
    providers = ProviderSet(
        content=build_content_provider(settings),
        video=build_video_provider(settings),
    )
    logger.info(f"Providers: content={providers.content.name} video={providers.video.name}")
    return providers
