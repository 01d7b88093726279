"""Multi-source collection with confidence-driven query rounds."""
from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Awaitable, Callable

from loguru import logger

from answer_engine.config import settings
from answer_engine.exceptions import ProviderUnavailable
from answer_engine.models.hits import Hit, SourceType, hit_from_record, hit_to_record
from answer_engine.research_core.confidence import check_confidence, strong_entity_match
from answer_engine.research_core.deadline import Deadline
from answer_engine.services import cache as cache_service
from answer_engine.services import logger as log_service
from answer_engine.tools import (
    arxiv_search,
    instagram_lookup,
    reddit_search,
    search_provider,
    semantic_scholar_search,
    serpapi_search,
    twitter_search,
    web_utils,
    wikipedia_search,
    youtube_search,
)

DEFAULT_SOURCES = [SourceType.WEB, SourceType.NEWS, SourceType.WIKI]
EXTRA_ENGINE_MERGE_LIMIT = 5
# Decorations added by expand_queries, stripped again for on-topic checks.
VARIANT_SUFFIX_RE = re.compile(r"\s+(?:site:\S+|filetype:\S+|\d{4}|explained)$", re.IGNORECASE)

# A category counts toward diversity only above its threshold.
DIVERSITY_MINIMUMS = {SourceType.WEB: 3, SourceType.NEWS: 2}

Provider = Callable[[str, int], Awaitable[list[Hit]]]
RoundCallback = Callable[[int, "CollectResult"], Awaitable[None]]


@dataclass
class CollectResult:
    hits: list[Hit] = field(default_factory=list)
    by_source: dict[SourceType, list[Hit]] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    rounds: int = 0
    confidence: float = 0.0

    def diversity(self) -> int:
        return sum(
            1
            for source, hits in self.by_source.items()
            if len(hits) > DIVERSITY_MINIMUMS.get(source, 0)
        )

    def counts(self) -> dict[str, int]:
        return {source.value: len(hits) for source, hits in self.by_source.items()}

    def merge(self, other: "CollectResult") -> "CollectResult":
        """Union keeping first occurrence per normalized URL."""
        merged = CollectResult(
            errors={**self.errors, **other.errors},
            rounds=self.rounds,
            confidence=self.confidence,
        )
        seen: set[str] = set()
        for hit in [*self.hits, *other.hits]:
            key = web_utils.normalize_url(hit.url)
            if key in seen:
                continue
            seen.add(key)
            merged.hits.append(hit)
            merged.by_source.setdefault(hit.source_type, []).append(hit)
        for source in [*self.by_source, *other.by_source]:
            merged.by_source.setdefault(source, [])
        return merged


def expand_queries(base: str, year: int | None = None) -> list[str]:
    year = year or date.today().year
    return [
        base,
        f'"{base}"',
        f"{base} site:wikipedia.org",
        f"{base} site:arxiv.org",
        f"{base} filetype:pdf",
        f"{base} {year}",
        f"{base} explained",
    ]


def topic_of(variant: str) -> str:
    text = variant.strip()
    if len(text) > 2 and text.startswith('"') and text.endswith('"'):
        return text[1:-1]
    return VARIANT_SUFFIX_RE.sub("", text)


async def _extra_engine_hits(query: str) -> list[Hit]:
    engines = settings.extra_engine_list
    if not engines:
        return []
    results = await asyncio.gather(
        *(serpapi_search.search(query, engine=engine) for engine in engines),
        return_exceptions=True,
    )
    merged: list[Hit] = []
    for engine, item in zip(engines, results):
        if isinstance(item, ProviderUnavailable):
            return []
        if isinstance(item, Exception):
            log_service.log_provider_call(f"serpapi:{engine}", query, error=str(item))
            continue
        merged.extend(item[:EXTRA_ENGINE_MERGE_LIMIT])
    return merged


async def _web(query: str, max_results: int) -> list[Hit]:
    response = await search_provider.search(query, max_results=max_results)
    if response.fallback_from:
        logger.info(
            f"Web search fell back from {response.fallback_from} to {response.provider}: "
            f"{response.fallback_reason}"
        )
    hits: list[Hit] = list(response.results)
    topic = topic_of(query)
    if len(hits) < settings.extra_engines_min_results or not strong_entity_match(topic, hits):
        hits.extend(await _extra_engine_hits(query))
    return hits


PROVIDERS: dict[SourceType, Provider] = {
    SourceType.WEB: _web,
    SourceType.NEWS: lambda q, n: serpapi_search.search_news(q, max_results=12),
    SourceType.WIKI: lambda q, n: wikipedia_search.search(q, max_results=10),
    SourceType.REDDIT: lambda q, n: reddit_search.search(q, max_results=10),
    SourceType.TWITTER: lambda q, n: twitter_search.search(q, max_results=10),
    SourceType.YOUTUBE: lambda q, n: youtube_search.search(q, max_results=8),
    SourceType.ARXIV: lambda q, n: arxiv_search.search(q, max_results=10),
    SourceType.SEMANTICSCHOLAR: lambda q, n: semantic_scholar_search.search(q, max_results=10),
    SourceType.INSTAGRAM: lambda q, n: instagram_lookup.search(q),
}


async def _cached_search(source: SourceType, query: str, max_results: int) -> list[Hit]:
    key = f"{source.value}|{query}|{max_results}"
    cached = cache_service.search_cache.get(key)
    if cached is not None:
        return [hit_from_record(record) for record in cached]
    hits = await PROVIDERS[source](query, max_results)
    if hits:
        cache_service.search_cache.set(key, [hit_to_record(hit) for hit in hits])
    return hits


async def collect(
    query: str,
    sources: list[SourceType] | None = None,
    *,
    max_web: int = 8,
    fast: bool = False,
    deadline: Deadline | None = None,
) -> CollectResult:
    """Query every requested source concurrently; a failing source contributes nothing."""
    selected = list(dict.fromkeys(sources or DEFAULT_SOURCES))
    timeout = settings.provider_timeout_seconds / 2 if fast else settings.provider_timeout_seconds
    if deadline is not None:
        timeout = deadline.bound(timeout)

    async def branch(source: SourceType) -> list[Hit]:
        t0 = time.monotonic()
        try:
            hits = await asyncio.wait_for(_cached_search(source, query, max_web), timeout=timeout)
        except ProviderUnavailable as e:
            logger.debug(f"Source {source.value} skipped: {e}")
            return []
        log_service.log_provider_call(
            source.value,
            query,
            results=len(hits),
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return hits

    raw_results = await asyncio.gather(
        *(branch(source) for source in selected),
        return_exceptions=True,
    )

    result = CollectResult()
    seen: set[str] = set()
    for source, item in zip(selected, raw_results):
        result.by_source.setdefault(source, [])
        if isinstance(item, BaseException):
            reason = str(item) or type(item).__name__
            result.errors[source.value] = reason
            log_service.log_provider_call(source.value, query, error=reason)
            continue
        for hit in item:
            if not web_utils.is_valid_url(hit.url):
                continue
            key = web_utils.normalize_url(hit.url)
            if key in seen:
                continue
            seen.add(key)
            result.hits.append(hit)
            result.by_source.setdefault(hit.source_type, []).append(hit)
    return result


async def collect_rounds(
    query: str,
    sources: list[SourceType] | None = None,
    *,
    max_web: int = 8,
    fast: bool = False,
    deadline: Deadline | None = None,
    year: int | None = None,
    max_rounds: int | None = None,
    on_round: RoundCallback | None = None,
) -> CollectResult:
    """Collect with query variants until confident and diverse, out of rounds, or out of time.

    The first round always runs; later rounds need ``min_round_budget_seconds`` left.
    """
    max_rounds = max_rounds if max_rounds is not None else settings.max_rounds
    merged = CollectResult()
    for variant in expand_queries(query, year)[: max(1, max_rounds)]:
        if merged.rounds and deadline is not None and not deadline.has(
            settings.min_round_budget_seconds
        ):
            logger.info(f"Stopping collection after {merged.rounds} round(s): deadline")
            break

        round_result = await collect(variant, sources, max_web=max_web, fast=fast, deadline=deadline)
        merged = merged.merge(round_result)
        merged.rounds += 1
        merged.confidence = check_confidence(merged.hits, query)
        if on_round is not None:
            await on_round(merged.rounds, merged)

        if (
            merged.confidence >= settings.confidence_threshold
            and merged.diversity() >= settings.diversity_threshold
        ):
            break
    return merged
