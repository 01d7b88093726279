from __future__ import annotations

import re

import httpx
from bs4 import BeautifulSoup

from answer_engine.config import settings
from answer_engine.models.hits import PaperHit
from answer_engine.tools.web_utils import http_session

ARXIV_API_URL = "https://export.arxiv.org/api/query"


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def parse_feed(xml: str, *, max_results: int = 10) -> list[PaperHit]:
    """Parse an arXiv Atom feed into paper hits."""
    soup = BeautifulSoup(xml, "xml")
    hits: list[PaperHit] = []
    for entry in soup.find_all("entry"):
        url = _clean(entry.id.get_text()) if entry.id else ""
        title = _clean(entry.title.get_text()) if entry.title else ""
        if not url or not title:
            continue
        summary = _clean(entry.summary.get_text()) if entry.summary else ""
        published = _clean(entry.published.get_text()) if entry.published else None
        authors = [_clean(a.get_text()) for a in entry.find_all("name")]
        year = int(published[:4]) if published and published[:4].isdigit() else None
        hits.append(
            PaperHit(
                title=title,
                url=url,
                snippet=summary[:600],
                date=published,
                authors=", ".join(authors[:5]),
                year=year,
            )
        )
        if len(hits) >= max_results:
            break
    return hits


async def search(
    query: str,
    *,
    max_results: int = 10,
    client: httpx.AsyncClient | None = None,
) -> list[PaperHit]:
    params = {
        "search_query": f"all:{query}",
        "start": 0,
        "max_results": max_results,
        "sortBy": "relevance",
    }
    async with http_session(client, timeout=settings.provider_timeout_seconds) as session:
        response = await session.get(ARXIV_API_URL, params=params)
        response.raise_for_status()
        return parse_feed(response.text, max_results=max_results)
