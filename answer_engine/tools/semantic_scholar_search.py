from __future__ import annotations

import httpx

from answer_engine.config import settings
from answer_engine.models.hits import ScholarHit
from answer_engine.tools.web_utils import http_session

PAPER_SEARCH_URL = "https://api.semanticscholar.org/graph/v1/paper/search"


async def search(
    query: str,
    *,
    max_results: int = 10,
    client: httpx.AsyncClient | None = None,
) -> list[ScholarHit]:
    """Graph API paper search. Works unauthenticated at a lower rate limit."""
    params = {
        "query": query,
        "limit": max_results,
        "fields": "title,externalIds,url,abstract,citationCount,year,authors",
    }
    headers = {}
    if settings.semantic_scholar_api_key:
        headers["x-api-key"] = settings.semantic_scholar_api_key

    async with http_session(client, timeout=settings.provider_timeout_seconds) as session:
        response = await session.get(PAPER_SEARCH_URL, params=params, headers=headers)
        response.raise_for_status()
        payload = response.json()

    hits: list[ScholarHit] = []
    for paper in payload.get("data", []) or []:
        doi = (paper.get("externalIds") or {}).get("DOI")
        url = paper.get("url") or (f"https://doi.org/{doi}" if doi else "")
        if not url:
            continue
        year = paper.get("year")
        authors = [a.get("name", "") for a in paper.get("authors") or [] if a.get("name")]
        hits.append(
            ScholarHit(
                title=paper.get("title", "") or "",
                url=url,
                snippet=paper.get("abstract") or "",
                date=str(year) if year else None,
                authors=", ".join(authors[:5]),
                year=year,
                citation_count=paper.get("citationCount"),
            )
        )
    return hits
