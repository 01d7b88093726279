from __future__ import annotations

import pytest

from answer_engine.agents import collector
from answer_engine.exceptions import ProviderUnavailable
from answer_engine.models.hits import NewsHit, SourceType, WebHit, WikiHit
from answer_engine.research_core.deadline import Deadline
from answer_engine.tools import search_provider


def _provider(hits=None, error: Exception | None = None, calls: list | None = None):
    async def _search(query, max_results):
        if calls is not None:
            calls.append(query)
        if error is not None:
            raise error
        return list(hits or [])

    return _search


@pytest.fixture
def providers(monkeypatch):
    def _install(mapping):
        for source, fn in mapping.items():
            monkeypatch.setitem(collector.PROVIDERS, source, fn)

    return _install


@pytest.mark.asyncio
async def test_collect_tolerates_failing_and_unconfigured_sources(providers):
    providers(
        {
            SourceType.WEB: _provider([WebHit(title="Paris", url="https://example.com/paris")]),
            SourceType.NEWS: _provider(error=RuntimeError("news backend down")),
            SourceType.REDDIT: _provider(error=ProviderUnavailable("reddit")),
        }
    )

    result = await collector.collect("paris", [SourceType.WEB, SourceType.NEWS, SourceType.REDDIT])

    assert [h.url for h in result.hits] == ["https://example.com/paris"]
    assert result.errors == {"news": "news backend down"}
    assert result.counts() == {"web": 1, "news": 0, "reddit": 0}


@pytest.mark.asyncio
async def test_collect_dedupes_across_sources_and_drops_invalid_urls(providers):
    providers(
        {
            SourceType.WEB: _provider(
                [
                    WebHit(title="A", url="https://Example.com/a#top"),
                    WebHit(title="bad", url="javascript:void(0)"),
                ]
            ),
            SourceType.WIKI: _provider([WikiHit(title="A again", url="https://example.com/a")]),
        }
    )

    result = await collector.collect("a", [SourceType.WEB, SourceType.WIKI])

    assert [h.title for h in result.hits] == ["A"]


@pytest.mark.asyncio
async def test_collect_serves_repeat_queries_from_cache(providers):
    calls: list[str] = []
    providers({SourceType.WEB: _provider([WebHit(title="A", url="https://example.com/a")], calls=calls)})

    first = await collector.collect("a", [SourceType.WEB])
    second = await collector.collect("a", [SourceType.WEB])

    assert calls == ["a"]
    assert [h.url for h in second.hits] == [h.url for h in first.hits]
    assert isinstance(second.hits[0], WebHit)


def test_diversity_counts_sources_above_minimums():
    result = collector.CollectResult(
        by_source={
            SourceType.WEB: [WebHit(title=str(i), url=f"https://w/{i}") for i in range(4)],
            SourceType.NEWS: [NewsHit(title=str(i), url=f"https://n/{i}") for i in range(2)],
            SourceType.WIKI: [WikiHit(title="w", url="https://wiki/1")],
        }
    )

    # web 4 > 3 counts, news 2 is not > 2, wiki 1 > 0 counts
    assert result.diversity() == 2


def test_expand_queries_variants():
    variants = collector.expand_queries("fusion power", year=2025)

    assert variants[0] == "fusion power"
    assert '"fusion power"' in variants
    assert "fusion power site:wikipedia.org" in variants
    assert "fusion power 2025" in variants


@pytest.mark.asyncio
async def test_collect_rounds_stops_when_confident_and_diverse(providers, monkeypatch):
    monkeypatch.setattr(collector.settings, "diversity_threshold", 1)
    calls: list[str] = []
    hits = [WebHit(title=f"Paris fact {i}", url=f"https://example.com/{i}") for i in range(5)]
    providers({SourceType.WEB: _provider(hits, calls=calls)})

    result = await collector.collect_rounds("paris", [SourceType.WEB], max_rounds=3)

    assert result.rounds == 1
    assert result.confidence == 1.0
    assert calls == ["paris"]


@pytest.mark.asyncio
async def test_collect_rounds_runs_query_variants_until_max_rounds(providers):
    calls: list[str] = []
    rounds_seen: list[int] = []
    providers({SourceType.WEB: _provider([], calls=calls)})

    async def on_round(round_no, merged):
        rounds_seen.append(round_no)

    result = await collector.collect_rounds(
        "obscure thing", [SourceType.WEB], max_rounds=3, year=2025, on_round=on_round
    )

    assert result.rounds == 3
    assert rounds_seen == [1, 2, 3]
    assert calls == ["obscure thing", '"obscure thing"', "obscure thing site:wikipedia.org"]


@pytest.mark.asyncio
async def test_collect_rounds_stops_when_deadline_is_spent(providers):
    now = [0.0]
    deadline = Deadline(60, clock=lambda: now[0])
    providers({SourceType.WEB: _provider([])})

    async def on_round(round_no, merged):
        now[0] = 59.5

    result = await collector.collect_rounds(
        "obscure thing", [SourceType.WEB], deadline=deadline, max_rounds=3, on_round=on_round
    )

    assert result.rounds == 1


@pytest.fixture
def web_backends(monkeypatch):
    """Primary results per call plus a record of extra-engine queries."""
    engine_calls: list[tuple[str, str]] = []
    primary: list[WebHit] = []

    async def primary_search(query, *, max_results=10):
        return search_provider.SearchResponse(results=list(primary), provider="serpapi")

    async def engine_search(query, *, engine="google", max_results=10, client=None):
        engine_calls.append((engine, query))
        return [
            WebHit(title=f"{engine} {i}", url=f"https://{engine}.example.com/{i}", engine=engine)
            for i in range(7)
        ]

    monkeypatch.setattr(collector.search_provider, "search", primary_search)
    monkeypatch.setattr(collector.serpapi_search, "search", engine_search)
    monkeypatch.setattr(collector.settings, "extra_engines", "bing,duckduckgo")
    monkeypatch.setattr(collector.settings, "extra_engines_min_results", 5)
    return primary, engine_calls


def _fusion_hits(count: int, title: str = "Fusion power update") -> list[WebHit]:
    return [WebHit(title=f"{title} {i}", url=f"https://news.example.com/{i}") for i in range(count)]


@pytest.mark.asyncio
async def test_sparse_web_results_pull_in_extra_engines(web_backends):
    primary, engine_calls = web_backends
    primary.extend(_fusion_hits(2))

    hits = await collector._web("fusion power", 8)

    assert [engine for engine, _ in engine_calls] == ["bing", "duckduckgo"]
    assert len(hits) == 2 + 2 * collector.EXTRA_ENGINE_MERGE_LIMIT
    assert sum(1 for h in hits if h.engine == "bing") == collector.EXTRA_ENGINE_MERGE_LIMIT


@pytest.mark.asyncio
async def test_off_topic_web_results_pull_in_extra_engines(web_backends):
    primary, engine_calls = web_backends
    primary.extend(_fusion_hits(6, title="Garden hose review"))

    hits = await collector._web("fusion power", 8)

    assert len(engine_calls) == 2
    assert len(hits) == 6 + 2 * collector.EXTRA_ENGINE_MERGE_LIMIT


@pytest.mark.asyncio
async def test_on_topic_variant_rounds_skip_extra_engines(web_backends):
    primary, engine_calls = web_backends
    primary.extend(_fusion_hits(6))

    for variant in collector.expand_queries("fusion power", year=2025):
        hits = await collector._web(variant, 8)
        assert len(hits) == 6

    assert engine_calls == []


def test_topic_of_strips_round_decorations():
    assert collector.topic_of('"fusion power"') == "fusion power"
    assert collector.topic_of("fusion power site:wikipedia.org") == "fusion power"
    assert collector.topic_of("fusion power filetype:pdf") == "fusion power"
    assert collector.topic_of("fusion power 2025") == "fusion power"
    assert collector.topic_of("fusion power explained") == "fusion power"
    assert collector.topic_of("fusion power") == "fusion power"
