"""Reddit search.

Uses the app-only OAuth API when client credentials are configured and the
public ``search.json`` endpoint otherwise.
"""
from __future__ import annotations

from typing import Any

import httpx

from answer_engine.config import settings
from answer_engine.models.hits import RedditHit
from answer_engine.services.token_manager import TokenManager
from answer_engine.tools.web_utils import http_session

PUBLIC_SEARCH_URL = "https://www.reddit.com/search.json"
OAUTH_SEARCH_URL = "https://oauth.reddit.com/search"
TOKEN_URL = "https://www.reddit.com/api/v1/access_token"

_token_manager: TokenManager | None = None


async def _fetch_token() -> tuple[str, float]:
    async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as session:
        response = await session.post(
            TOKEN_URL,
            data={"grant_type": "client_credentials"},
            auth=(settings.reddit_client_id, settings.reddit_client_secret),
            headers={"User-Agent": settings.reddit_user_agent},
        )
        response.raise_for_status()
        payload = response.json()
    return payload["access_token"], float(payload.get("expires_in", 3600))


def token_manager() -> TokenManager:
    global _token_manager
    if _token_manager is None:
        _token_manager = TokenManager("reddit", _fetch_token)
    return _token_manager


def _oauth_enabled() -> bool:
    return bool(settings.reddit_client_id and settings.reddit_client_secret)


def _to_hit(post: dict[str, Any]) -> RedditHit | None:
    permalink = post.get("permalink")
    if not permalink:
        return None
    title = post.get("title", "") or ""
    body = (post.get("selftext") or "")[:400]
    created = post.get("created_utc")
    return RedditHit(
        title=title,
        url=f"https://www.reddit.com{permalink}",
        snippet=body or title,
        date=str(int(created)) if isinstance(created, (int, float)) else None,
        subreddit=post.get("subreddit", "") or "",
        author=post.get("author", "") or "",
    )


async def search(
    query: str,
    *,
    max_results: int = 10,
    client: httpx.AsyncClient | None = None,
) -> list[RedditHit]:
    params = {"q": query, "limit": max_results, "sort": "relevance"}
    headers = {"User-Agent": settings.reddit_user_agent}
    url = PUBLIC_SEARCH_URL
    if _oauth_enabled():
        headers["Authorization"] = f"Bearer {await token_manager().get_token()}"
        url = OAUTH_SEARCH_URL

    async with http_session(client, timeout=settings.provider_timeout_seconds) as session:
        response = await session.get(url, params=params, headers=headers)
        if response.status_code == 401 and _oauth_enabled():
            token_manager().invalidate()
        response.raise_for_status()
        payload = response.json()

    children = (payload.get("data", {}) or {}).get("children", []) or []
    hits = [_to_hit(child.get("data", {}) or {}) for child in children]
    return [hit for hit in hits if hit is not None]
