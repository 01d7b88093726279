from __future__ import annotations

import httpx

from answer_engine.config import settings
from answer_engine.exceptions import ProviderUnavailable
from answer_engine.models.hits import VideoHit
from answer_engine.tools.web_utils import http_session

YOUTUBE_SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"


async def search(
    query: str,
    *,
    max_results: int = 8,
    client: httpx.AsyncClient | None = None,
) -> list[VideoHit]:
    if not settings.youtube_api_key:
        raise ProviderUnavailable("youtube", "YOUTUBE_API_KEY is not configured")

    params = {
        "part": "snippet",
        "maxResults": max_results,
        "q": query,
        "type": "video",
        "key": settings.youtube_api_key,
    }
    async with http_session(client, timeout=settings.provider_timeout_seconds) as session:
        response = await session.get(YOUTUBE_SEARCH_URL, params=params)
        response.raise_for_status()
        payload = response.json()

    hits: list[VideoHit] = []
    for item in payload.get("items", []) or []:
        video_id = (item.get("id") or {}).get("videoId")
        if not video_id:
            continue
        snippet = item.get("snippet") or {}
        hits.append(
            VideoHit(
                title=snippet.get("title", "") or "",
                url=f"https://www.youtube.com/watch?v={video_id}",
                snippet=snippet.get("description", "") or "",
                date=snippet.get("publishedAt"),
                channel=snippet.get("channelTitle", "") or "",
            )
        )
    return hits
