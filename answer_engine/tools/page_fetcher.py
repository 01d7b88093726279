"""Fetch a web page and reduce it to readable text.

``fetch_page`` never raises: every failure mode (non-2xx, network, timeout,
non-HTML, empty extraction) is logged and returns ``None``.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import asdict

import httpx
from loguru import logger

from answer_engine.config import settings
from answer_engine.models.hits import Hit, Page
from answer_engine.services import cache as cache_service
from answer_engine.tools.content_extractor import extract_main_content
from answer_engine.tools.web_utils import http_session, is_valid_url, normalize_url

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
BROWSER_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}
TEXTUAL_TYPES = ("text/html", "application/xhtml", "text/plain")


def _timeout(fast: bool) -> float:
    return settings.fetch_timeout_fast_seconds if fast else settings.fetch_timeout_seconds


async def fetch_page(
    url: str,
    *,
    fast: bool = False,
    client: httpx.AsyncClient | None = None,
) -> Page | None:
    if not is_valid_url(url):
        return None

    key = normalize_url(url)
    cached = cache_service.page_cache.get(key)
    if cached is not None:
        return Page(**cached)

    t0 = time.monotonic()
    timeout = _timeout(fast)
    try:
        async with http_session(client, timeout=timeout) as session:
            response = await session.get(url, headers=BROWSER_HEADERS, timeout=timeout)
        if response.status_code < 200 or response.status_code >= 300:
            logger.debug(f"Fetch {url} returned HTTP {response.status_code}")
            return None
        content_type = response.headers.get("content-type", "text/html").lower()
        if not any(t in content_type for t in TEXTUAL_TYPES):
            logger.debug(f"Fetch {url} skipped non-text content-type {content_type}")
            return None
        extracted = await asyncio.to_thread(extract_main_content, url, response.text)
    except Exception as e:
        logger.debug(f"Fetch {url} failed after {int((time.monotonic() - t0) * 1000)}ms: {e!r}")
        return None

    if not extracted.text.strip():
        return None

    page = Page(
        url=url,
        title=extracted.title,
        text=extracted.text,
        author=extracted.author,
    )
    cache_service.page_cache.set(key, asdict(page))
    logger.debug(
        f"Fetched {url} via {extracted.method} ({len(page.text)} chars, "
        f"{int((time.monotonic() - t0) * 1000)}ms)"
    )
    return page


async def fetch_pages(
    hits: list[Hit],
    *,
    fast: bool = False,
    limit: int | None = None,
    client: httpx.AsyncClient | None = None,
) -> list[tuple[Hit, Page]]:
    """Fetch hit URLs concurrently; keeps hit order, drops failures."""
    limit = limit if limit is not None else settings.max_fetch_pages
    seen: set[str] = set()
    targets: list[Hit] = []
    for hit in hits:
        if not is_valid_url(hit.url):
            continue
        key = normalize_url(hit.url)
        if key in seen:
            continue
        seen.add(key)
        targets.append(hit)
        if len(targets) >= limit:
            break

    semaphore = asyncio.Semaphore(max(1, settings.fetch_max_parallel))

    async def _one(hit: Hit) -> Page | None:
        async with semaphore:
            return await fetch_page(hit.url, fast=fast, client=client)

    pages = await asyncio.gather(*[_one(hit) for hit in targets])
    return [(hit, page) for hit, page in zip(targets, pages) if page is not None]
