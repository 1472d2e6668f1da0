"""Video search providers for module resources."""
import asyncio
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import quote_plus

import aiohttp
from pydantic import ValidationError

from app.schemas.content import MAX_RESOURCES_PER_MODULE, VideoResource
from app.services.errors import VideoProviderError

logger = logging.getLogger(__name__)


class VideoSearchProvider(ABC):
    """Capability: search for tutorial videos."""

    name: str = "video"

    async def search(self, query: str, max_results: int = 3) -> list[VideoResource]:
        max_results = max(0, min(max_results, MAX_RESOURCES_PER_MODULE))
        if max_results == 0:
            return []
        raw = (await self._search(query, max_results))[:max_results]
        videos = []
        last_error: Optional[ValidationError] = None
        for item in raw:
            try:
                videos.append(VideoResource.model_validate(item))
            except ValidationError as e:
                last_error = e
                logger.warning(f"Skipping invalid {self.name} result for {query!r}: {e.error_count()} error(s)")
        if raw and not videos:
            raise VideoProviderError(
                f"Video search returned no valid results ({len(raw)} invalid)"
            ) from last_error
        return videos

    @abstractmethod
    async def _search(self, query: str, max_results: int) -> list[dict]:
        pass


_DURATION_RE = re.compile(r"^P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")


def parse_iso8601_duration(value: Optional[str]) -> Optional[int]:
    """'PT1H2M3S' -> 3723. Returns None for missing or unparseable values."""
    if not value:
        return None
    match = _DURATION_RE.match(value)
    if not match:
        return None
    days, hours, minutes, seconds = (int(g) if g else 0 for g in match.groups())
    return ((days * 24 + hours) * 60 + minutes) * 60 + seconds


class YouTubeSearchProvider(VideoSearchProvider):
    """YouTube Data API v3: search.list for ids, videos.list for durations."""

    name = "youtube"
    BASE_URL = "https://www.googleapis.com/youtube/v3"

    def __init__(self, api_key: str, timeout: float = 15):
        if not api_key:
            raise ValueError("YOUTUBE_API_KEY not set")
        self._api_key = api_key
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def _get_json(self, session: aiohttp.ClientSession, path: str, params: dict) -> dict:
        url = f"{self.BASE_URL}/{path}"
        async with session.get(url, params={**params, "key": self._api_key}) as resp:
            if resp.status != 200:
                body = await resp.text()
                raise VideoProviderError(f"HTTP {resp.status} from YouTube {path}: {body[:300]}")
            return await resp.json()

    async def _search(self, query: str, max_results: int) -> list[dict]:
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                search = await self._get_json(session, "search", {
                    "part": "snippet",
                    "type": "video",
                    "q": query,
                    "maxResults": max_results,
                    "safeSearch": "strict",
                    "videoEmbeddable": "true",
                })
                items = [i for i in search.get("items", []) if i.get("id", {}).get("videoId")]
                if not items:
                    return []

                ids = [i["id"]["videoId"] for i in items]
                details = await self._get_json(session, "videos", {
                    "part": "contentDetails",
                    "id": ",".join(ids),
                })
        except aiohttp.ClientError as e:
            raise VideoProviderError(f"YouTube request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise VideoProviderError("YouTube request timed out") from e

        durations = {
            d.get("id"): parse_iso8601_duration(d.get("contentDetails", {}).get("duration"))
            for d in details.get("items", [])
        }

        results = []
        for item in items:
            video_id = item["id"]["videoId"]
            snippet = item.get("snippet", {})
            thumbnails = snippet.get("thumbnails", {})
            thumb = (thumbnails.get("high") or thumbnails.get("medium") or thumbnails.get("default") or {}).get("url")
            results.append({
                "title": snippet.get("title") or video_id,
                "url": f"https://www.youtube.com/watch?v={video_id}",
                "channel": snippet.get("channelTitle"),
                "durationSeconds": durations.get(video_id),
                "thumbnailUrl": thumb,
                "reason": f"Top match for \"{query}\"",
            })
        return results


class MockVideoSearchProvider(VideoSearchProvider):
    """Deterministic results pointing at YouTube search pages. Used when no API key is configured."""

    name = "mock"

    async def _search(self, query: str, max_results: int) -> list[dict]:
        return [
            {
                "title": f"{query} (part {i})",
                "url": f"https://www.youtube.com/results?search_query={quote_plus(query)}&page={i}",
                "channel": "YouTube search",
                "durationSeconds": None,
                "thumbnailUrl": None,
                "reason": "Search link: no video API key configured",
            }
            for i in range(1, max_results + 1)
        ]
