from __future__ import annotations

import httpx

from answer_engine.config import settings
from answer_engine.exceptions import ProviderUnavailable
from answer_engine.models.hits import TweetHit
from answer_engine.tools.web_utils import http_session

RECENT_SEARCH_URL = "https://api.x.com/2/tweets/search/recent"


async def search(
    query: str,
    *,
    max_results: int = 10,
    client: httpx.AsyncClient | None = None,
) -> list[TweetHit]:
    """X API v2 recent search. The API accepts max_results in [10, 100]."""
    if not settings.twitter_bearer_token:
        raise ProviderUnavailable("twitter", "TWITTER_BEARER_TOKEN is not configured")

    params = {
        "query": query,
        "max_results": min(100, max(10, max_results)),
        "tweet.fields": "created_at,lang,author_id",
    }
    async with http_session(client, timeout=settings.provider_timeout_seconds) as session:
        response = await session.get(
            RECENT_SEARCH_URL,
            params=params,
            headers={"Authorization": f"Bearer {settings.twitter_bearer_token}"},
        )
        response.raise_for_status()
        payload = response.json()

    hits: list[TweetHit] = []
    for tweet in payload.get("data", []) or []:
        tweet_id = str(tweet.get("id", ""))
        if not tweet_id:
            continue
        author_id = str(tweet.get("author_id", ""))
        created_at = tweet.get("created_at")
        hits.append(
            TweetHit(
                title=f"Tweet by {author_id} ({created_at})",
                url=f"https://x.com/i/web/status/{tweet_id}",
                snippet=tweet.get("text", "") or "",
                date=created_at,
                tweet_id=tweet_id,
                author_id=author_id,
            )
        )
    return hits[:max_results]
