from __future__ import annotations

from typing import Any

from tavily import AsyncTavilyClient

from answer_engine.config import settings
from answer_engine.exceptions import ProviderUnavailable
from answer_engine.models.hits import WebHit


async def search(
    query: str,
    *,
    search_depth: str = "basic",
    max_results: int = 10,
    topic: str = "general",
    time_range: str | None = None,
) -> list[WebHit]:
    """Execute a Tavily web search and return normalized hits."""
    if not settings.tavily_api_key:
        raise ProviderUnavailable("tavily", "TAVILY_API_KEY is not configured")
    client = AsyncTavilyClient(api_key=settings.tavily_api_key)

    kwargs: dict[str, Any] = {
        "query": query,
        "search_depth": search_depth,
        "max_results": max_results,
        "topic": topic,
    }
    if time_range:
        kwargs["time_range"] = time_range

    response = await client.search(**kwargs)

    return [
        WebHit(
            title=r.get("title", ""),
            url=r.get("url", ""),
            snippet=r.get("content", ""),
            date=r.get("published_date"),
            engine="tavily",
        )
        for r in response.get("results", [])
        if r.get("url")
    ]
