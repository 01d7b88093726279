from __future__ import annotations

from typing import Any

import httpx

from answer_engine.config import settings
from answer_engine.exceptions import ProviderUnavailable
from answer_engine.models.hits import NewsHit, WebHit
from answer_engine.tools.web_utils import http_session

SERPAPI_URL = "https://serpapi.com/search"


async def _query(
    engine: str,
    query: str,
    *,
    client: httpx.AsyncClient | None = None,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    if not settings.serpapi_api_key:
        raise ProviderUnavailable("serpapi", "SERPAPI_API_KEY is not configured")

    params: dict[str, Any] = {
        "engine": engine,
        "q": query,
        "api_key": settings.serpapi_api_key,
        **(extra or {}),
    }
    async with http_session(client, timeout=settings.provider_timeout_seconds) as session:
        response = await session.get(SERPAPI_URL, params=params)
        response.raise_for_status()
        return response.json()


async def search(
    query: str,
    *,
    engine: str = "google",
    max_results: int = 10,
    client: httpx.AsyncClient | None = None,
) -> list[WebHit]:
    """Organic results from one SerpAPI engine (google, bing, duckduckgo)."""
    extra = {"num": max_results} if engine == "google" else None
    payload = await _query(engine, query, client=client, extra=extra)
    hits: list[WebHit] = []
    for item in payload.get("organic_results", []) or []:
        url = item.get("link") or ""
        if not url:
            continue
        hits.append(
            WebHit(
                title=item.get("title", "") or "",
                url=url,
                snippet=item.get("snippet", "") or "",
                date=item.get("date"),
                engine=engine,
            )
        )
    return hits[:max_results]


async def search_news(
    query: str,
    *,
    max_results: int = 12,
    client: httpx.AsyncClient | None = None,
) -> list[NewsHit]:
    payload = await _query("google_news", query, client=client)
    hits: list[NewsHit] = []
    for item in payload.get("news_results", []) or []:
        url = item.get("link") or ""
        if not url:
            continue
        source = item.get("source")
        outlet = source.get("name", "") if isinstance(source, dict) else (source or "")
        hits.append(
            NewsHit(
                title=item.get("title", "") or "",
                url=url,
                snippet=item.get("snippet", "") or "",
                date=item.get("date"),
                outlet=outlet,
            )
        )
    return hits[:max_results]
