"""External content providers: LLM course content and video search."""
from app.services.providers.content import (
    CourseContentProvider, LLMCourseContentProvider, MockCourseContentProvider,
)
from app.services.providers.factory import ProviderSet, build_providers
from app.services.providers.video import (
    MockVideoSearchProvider, VideoSearchProvider, YouTubeSearchProvider,
)

__all__ = [
    "CourseContentProvider", "LLMCourseContentProvider", "MockCourseContentProvider",
    "VideoSearchProvider", "YouTubeSearchProvider", "MockVideoSearchProvider",
    "ProviderSet", "build_providers",
]
