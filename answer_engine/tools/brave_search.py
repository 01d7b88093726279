from __future__ import annotations

from typing import Any

import httpx

from answer_engine.config import settings
from answer_engine.exceptions import ProviderUnavailable
from answer_engine.models.hits import WebHit
from answer_engine.tools.web_utils import http_session

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"

FRESHNESS_MAP = {
    "day": "pd",
    "week": "pw",
    "month": "pm",
    "year": "py",
}


async def search(
    query: str,
    *,
    max_results: int = 10,
    time_range: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> list[WebHit]:
    """Execute a Brave web search and normalize results."""
    if not settings.brave_api_key:
        raise ProviderUnavailable("brave", "BRAVE_API_KEY is not configured")

    params: dict[str, Any] = {
        "q": query,
        "count": max_results,
    }
    if time_range and time_range in FRESHNESS_MAP:
        params["freshness"] = FRESHNESS_MAP[time_range]

    async with http_session(client, timeout=settings.provider_timeout_seconds) as session:
        response = await session.get(
            BRAVE_SEARCH_URL,
            params=params,
            headers={
                "Accept": "application/json",
                "X-Subscription-Token": settings.brave_api_key,
            },
        )
        response.raise_for_status()
        payload = response.json()

    mapped: list[WebHit] = []
    for item in payload.get("web", {}).get("results", []):
        snippets = item.get("extra_snippets", []) or []
        description = item.get("description", "") or ""
        mapped.append(
            WebHit(
                title=item.get("title", ""),
                url=item.get("url", ""),
                snippet=description.strip() or " ".join(snippets).strip(),
                date=item.get("age"),
                engine="brave",
            )
        )
    return [hit for hit in mapped if hit.url]
