from __future__ import annotations

from dataclasses import dataclass

from answer_engine.config import settings
from answer_engine.models.hits import WebHit
from answer_engine.tools import brave_search, serpapi_search, tavily_search


@dataclass
class SearchResponse:
    results: list[WebHit]
    provider: str
    fallback_from: str | None = None
    fallback_reason: str | None = None


async def _primary(provider: str, query: str, max_results: int) -> list[WebHit]:
    if provider == "serpapi":
        return await serpapi_search.search(query, engine="google", max_results=max_results)
    return await brave_search.search(query, max_results=max_results)


async def search(query: str, *, max_results: int = 10) -> SearchResponse:
    """Web search through the configured backend, falling back to tavily."""
    provider = settings.search_provider.lower().strip()
    use_fallback = settings.search_fallback_to_tavily and bool(settings.tavily_api_key)

    if provider == "tavily":
        results = await tavily_search.search(query=query, max_results=max_results)
        return SearchResponse(results=results, provider="tavily")

    if provider not in ("serpapi", "brave"):
        raise ValueError(f"Unsupported SEARCH_PROVIDER: {settings.search_provider}")

    try:
        results = await _primary(provider, query, max_results)
        if results or not use_fallback:
            return SearchResponse(results=results, provider=provider)

        fallback_results = await tavily_search.search(query=query, max_results=max_results)
        return SearchResponse(
            results=fallback_results,
            provider="tavily",
            fallback_from=provider,
            fallback_reason=f"{provider} returned zero results",
        )
    except Exception as e:
        if not use_fallback:
            raise
        fallback_results = await tavily_search.search(query=query, max_results=max_results)
        return SearchResponse(
            results=fallback_results,
            provider="tavily",
            fallback_from=provider,
            fallback_reason=str(e) or type(e).__name__,
        )
