from __future__ import annotations

from urllib.parse import quote

import httpx
from bs4 import BeautifulSoup

from answer_engine.config import settings
from answer_engine.models.hits import WikiHit
from answer_engine.tools.web_utils import http_session

WIKIPEDIA_API_URL = "https://en.wikipedia.org/w/api.php"


def _strip_markup(snippet: str) -> str:
    # search snippets carry <span class="searchmatch"> highlighting
    return BeautifulSoup(snippet or "", "html.parser").get_text()


async def search(
    query: str,
    *,
    max_results: int = 10,
    client: httpx.AsyncClient | None = None,
) -> list[WikiHit]:
    """MediaWiki full-text search. Needs no credentials."""
    params = {
        "action": "query",
        "list": "search",
        "srsearch": query,
        "format": "json",
        "srlimit": max_results,
    }
    async with http_session(client, timeout=settings.provider_timeout_seconds) as session:
        response = await session.get(
            WIKIPEDIA_API_URL,
            params=params,
            headers={"User-Agent": settings.http_user_agent},
        )
        response.raise_for_status()
        payload = response.json()

    return [
        WikiHit(
            title=item.get("title", ""),
            url=f"https://en.wikipedia.org/wiki/{quote(item.get('title', '').replace(' ', '_'))}",
            snippet=_strip_markup(item.get("snippet", "")),
            date=item.get("timestamp"),
        )
        for item in (payload.get("query", {}) or {}).get("search", [])
        if item.get("title")
    ]
