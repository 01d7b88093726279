from __future__ import annotations

import re

import httpx
from bs4 import BeautifulSoup

from answer_engine.config import settings
from answer_engine.exceptions import ProviderUnavailable
from answer_engine.models.hits import InstagramHit
from answer_engine.tools.web_utils import http_session

OEMBED_URL = "https://graph.facebook.com/v17.0/instagram_oembed"
INSTAGRAM_URL_RE = re.compile(r"https?://(?:www\.)?instagram\.com/\S+", re.IGNORECASE)


async def search(
    query: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> list[InstagramHit]:
    """oEmbed lookup for an Instagram URL inside the query; anything else yields []."""
    match = INSTAGRAM_URL_RE.search(query)
    if not match:
        return []
    post_url = match.group(0)
    if not settings.instagram_access_token:
        raise ProviderUnavailable("instagram", "INSTAGRAM_ACCESS_TOKEN is not configured")

    params = {"url": post_url, "omitscript": "true", "access_token": settings.instagram_access_token}
    async with http_session(client, timeout=settings.provider_timeout_seconds) as session:
        response = await session.get(OEMBED_URL, params=params)
        response.raise_for_status()
        payload = response.json()

    if not payload:
        return []
    caption = payload.get("title") or ""
    if not caption and payload.get("html"):
        caption = BeautifulSoup(payload["html"], "html.parser").get_text(" ")[:300]
    return [
        InstagramHit(
            title=payload.get("author_name") or "Instagram post",
            url=post_url,
            snippet=caption.strip(),
            author=payload.get("author_name") or "",
        )
    ]
