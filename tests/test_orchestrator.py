from __future__ import annotations

import json
from datetime import date
from unittest.mock import AsyncMock

import pytest

from answer_engine.agents import collector, orchestrator
from answer_engine.agents.orchestrator import (
    DEGRADED_NOTE,
    EXCERPT_NOTE,
    FACTS_ONLY_NOTE,
    INSUFFICIENT_CONTENT,
    AnswerOrchestrator,
    PipelineOptions,
    PipelineResult,
    TaskOutcome,
    compose,
    trim_excerpt,
    verify_news_items,
    verify_transcript_coverage,
)
from answer_engine.exceptions import GenerationError, InvalidRequestError
from answer_engine.llm_client import GenerationResult
from answer_engine.models.chunks import Chunk, ChunkSource, ScoredChunk
from answer_engine.models.events import EventType
from answer_engine.models.hits import Page, SourceType, WebHit
from answer_engine.models.plan import SubTask, TaskKind
from answer_engine.models.schemas import SearchRequest
from answer_engine.services.embeddings import HashedEmbeddingService

PARIS_URL = "https://en.wikipedia.org/wiki/Paris"
PARIS_TEXT = (
    "Paris is the capital and most populous city of France.\n"
    "The city has been a major centre of finance, diplomacy and commerce for centuries."
)
ANSWER = f"Paris is the capital of France [S1].\n\nSources\n- [Paris - Wikipedia]({PARIS_URL})"


class _FakeLLM:
    def __init__(self, answer: str = ANSWER, verification: dict | None = None, fail_synthesis: bool = False):
        self.answer = answer
        self.verification = verification or {"confidence": 0.9}
        self.fail_synthesis = fail_synthesis
        self.synthesis_calls = 0
        self.verify_calls = 0

    async def generate(self, prompt, *, caller="generate", **kwargs):
        if caller == "verify":
            self.verify_calls += 1
            return GenerationResult(text=json.dumps(self.verification), model="m")
        return GenerationResult(text="None", model="m")

    async def generate_with_fallback(self, prompt, *, models, **kwargs):
        self.synthesis_calls += 1
        if self.fail_synthesis:
            raise GenerationError("All candidate models failed", ["m: down"])
        return GenerationResult(text=self.answer, model=models[0])


async def _no_rerank(query, documents, top_n):
    raise RuntimeError("no reranker in tests")


def _engine(llm=None) -> AnswerOrchestrator:
    return AnswerOrchestrator(
        llm=llm or _FakeLLM(),
        embedder=HashedEmbeddingService(dim=128),
        reranker=_no_rerank,
        today=date(2025, 8, 19),
    )


@pytest.fixture
def paris_web(monkeypatch):
    hit = WebHit(title="Paris - Wikipedia", url=PARIS_URL, snippet="Paris is the capital of France")

    async def web(query, max_results):
        return [hit]

    monkeypatch.setitem(collector.PROVIDERS, SourceType.WEB, web)
    fetch = AsyncMock(return_value=[(hit, Page(url=PARIS_URL, title="Paris - Wikipedia", text=PARIS_TEXT))])
    monkeypatch.setattr(orchestrator.page_fetcher, "fetch_pages", fetch)
    return fetch


@pytest.fixture
def all_sources_down(monkeypatch):
    async def down(query, max_results):
        raise RuntimeError("provider outage")

    for source in SourceType:
        monkeypatch.setitem(collector.PROVIDERS, source, down)


@pytest.mark.asyncio
async def test_answer_capital_of_france(paris_web):
    request = SearchRequest(query="What is the capital of France?", sources=[SourceType.WEB], verify=False)

    response = await _engine().answer(request)

    assert "Paris" in response.formatted_answer
    assert [s.url for s in response.sources] == [PARIS_URL]
    assert response.sources[0].title == "Paris - Wikipedia"
    assert response.verification is None
    assert len(response.plan) == 1
    assert response.meta.pages_fetched == 1
    assert response.meta.chunks_ranked >= 1
    assert response.last_fetched


@pytest.mark.asyncio
async def test_answer_with_all_providers_down_is_insufficient(all_sources_down):
    response = await _engine().answer(SearchRequest(query="What is the capital of France?"))

    assert response.formatted_answer == INSUFFICIENT_CONTENT
    assert response.sources == []


@pytest.mark.asyncio
async def test_answer_rejects_blank_query():
    with pytest.raises(InvalidRequestError):
        await _engine().answer(SearchRequest(query="   "))


@pytest.mark.asyncio
async def test_generation_failure_returns_collected_facts(paris_web):
    llm = _FakeLLM(fail_synthesis=True)
    request = SearchRequest(query="What is the capital of France?", sources=[SourceType.WEB])

    response = await _engine(llm).answer(request)

    assert FACTS_ONLY_NOTE in response.formatted_answer
    assert "- Paris is the capital and most populous city of France. [S1]" in response.formatted_answer
    assert [s.url for s in response.sources] == [PARIS_URL]
    assert response.verification is None


@pytest.mark.asyncio
async def test_low_confidence_verification_retries_once(paris_web):
    llm = _FakeLLM(verification={"confidence": 0.2, "needs_retry": True, "refinements": ["Paris capital history"]})
    request = SearchRequest(query="What is the capital of France?", sources=[SourceType.WEB])

    response = await _engine(llm).answer(request)

    assert llm.synthesis_calls == 2
    assert response.verification["needs_retry"] is True
    assert response.verification["refinements"] == ["Paris capital history"]
    assert paris_web.await_count == 2


@pytest.mark.asyncio
async def test_fast_mode_skips_verification(paris_web):
    llm = _FakeLLM(verification={"confidence": 0.2, "needs_retry": True, "refinements": ["Paris capital history"]})
    request = SearchRequest(query="What is the capital of France?", sources=[SourceType.WEB], fast=True)

    response = await _engine(llm).answer(request)

    assert "Paris" in response.formatted_answer
    assert llm.verify_calls == 0
    assert llm.synthesis_calls == 1
    assert response.verification is None


@pytest.mark.asyncio
async def test_news_and_transcript_lines_become_two_sections(monkeypatch):
    async def provider(query, max_results):
        slug = "india" if "India" in query else "iphone"
        return [WebHit(title=f"{slug} coverage", url=f"https://{slug}.example.com/story", snippet=query)]

    async def fetch_pages(hits, *, fast=False, limit=None):
        return [
            (
                hit,
                Page(
                    url=hit.url,
                    title=hit.title,
                    text=f"The {hit.title} page reports several verified details.\n"
                    f"Readers of {hit.title} get a full account of the events described.",
                ),
            )
            for hit in hits
        ]

    for source in SourceType:
        monkeypatch.setitem(collector.PROVIDERS, source, provider)
    monkeypatch.setattr(orchestrator.page_fetcher, "fetch_pages", fetch_pages)

    response = await _engine().answer(
        SearchRequest(
            query="latest news in India today\nfull transcript of Steve Jobs 2007 iPhone launch",
            verify=False,
        )
    )

    assert [task["kind"] for task in response.plan] == ["news", "transcript"]
    answer = response.formatted_answer
    assert answer.startswith("# Answer")
    assert answer.count("\n## ") == 2
    assert "## Latest News — India (2025-08-19)" in answer
    assert "## Steve Jobs introduces iPhone (Macworld) — Transcript (2007)" in answer
    assert answer.index("Latest News") < answer.index("Transcript (2007)")


@pytest.mark.asyncio
async def test_failed_subtask_degrades_to_note(monkeypatch):
    async def run_pipeline(self, query, options, deadline, emit=None, *, task_id=None, sources=None):
        if "president" in query:
            raise RuntimeError("boom")
        return PipelineResult(answer="Paris [S1].", sources=[{"title": "Paris", "url": PARIS_URL}])

    monkeypatch.setattr(AnswerOrchestrator, "run_pipeline", run_pipeline)

    response = await _engine().answer(
        SearchRequest(query="What is the capital of France and who is the president of France")
    )

    assert response.formatted_answer.startswith("# Answer")
    assert "## Result — What is the capital of France" in response.formatted_answer
    assert "## Result — who is the president of France" in response.formatted_answer
    assert DEGRADED_NOTE in response.formatted_answer
    assert response.meta.subtasks == 2
    assert [s.url for s in response.sources] == [PARIS_URL]


@pytest.mark.asyncio
async def test_stream_emits_progress_then_answer_and_done(paris_web):
    request = SearchRequest(query="What is the capital of France?", sources=[SourceType.WEB], verify=False)

    events = [event async for event in _engine().stream(request)]
    kinds = [e.event for e in events]

    assert kinds[0] == EventType.START
    assert EventType.STAGE in kinds
    assert EventType.METRICS in kinds
    assert kinds[-2:] == [EventType.ANSWER, EventType.DONE]
    stages = [e.data["stage"] for e in events if e.event == EventType.STAGE]
    assert stages[:2] == ["plan", "collect"]
    assert "writing" in stages
    assert "Paris" in events[-2].data["formatted_answer"]


@pytest.mark.asyncio
async def test_stream_blank_query_is_single_error():
    events = [event async for event in _engine().stream(SearchRequest(query=""))]

    assert [e.event for e in events] == [EventType.ERROR]


@pytest.mark.asyncio
async def test_stream_pipeline_crash_ends_with_error(monkeypatch):
    def broken_plan(*args, **kwargs):
        raise RuntimeError("planner bug")

    monkeypatch.setattr(orchestrator.planner, "plan_query", broken_plan)

    events = [event async for event in _engine().stream(SearchRequest(query="anything"))]

    assert events[-1].event == EventType.ERROR
    assert events[-1].data["message"] == "planner bug"


def _news_chunk(text: str, date_value: str | None, title: str = "") -> ScoredChunk:
    metadata = {"date": date_value} if date_value else {}
    source = ChunkSource(type=SourceType.NEWS, url="https://news.example.com", title=title, metadata=metadata)
    return ScoredChunk(chunk=Chunk(text=text, source=source), score=1.0)


def test_verify_news_items_filters_by_month_and_place():
    items = [
        _news_chunk("Flood relief in Mainpuri", "08/19/2025, 07:00 AM"),
        _news_chunk("Mainpuri fair opens", "2025-08-02"),
        _news_chunk("Road works", "2025-08-05", title="Mainpuri district roads"),
        _news_chunk("Mainpuri old story", "2025-07-30"),
        _news_chunk("Agra news", "2025-08-10"),
    ]

    ok, kept = verify_news_items(items, place="Mainpuri", month="2025-08")

    assert ok is True
    assert len(kept) == 3

    ok, kept = verify_news_items(items[:2], place="Mainpuri", month="2025-08")
    assert ok is False


def test_transcript_coverage_thresholds():
    assert verify_transcript_coverage("x" * 18000, must_be_full=True) == (True, 1.0)
    ok, coverage = verify_transcript_coverage("x" * 9000, must_be_full=True)
    assert (ok, coverage) == (False, 0.5)
    assert verify_transcript_coverage("x" * 9000)[0] is True


def test_trim_excerpt():
    assert trim_excerpt("short") == "short"
    trimmed = trim_excerpt("y" * 1500)
    assert trimmed.startswith("y" * 1200)
    assert trimmed.endswith(EXCERPT_NOTE)


def test_compose_single_and_multiple_outcomes():
    news = SubTask(id="1", kind=TaskKind.NEWS, query="q", scope="country", place="India", date="2025-08-19")
    generic = SubTask(id="2", kind=TaskKind.GENERIC, query="capital of France")
    sources = [{"title": f"S{i}", "url": f"https://s{i}.example.com"} for i in range(10)]

    single = TaskOutcome(task=generic, result=PipelineResult(answer="Paris [S1].", sources=sources))
    assert compose([single]) == "Paris [S1]."

    body = compose([TaskOutcome(task=news, ok=False, note=DEGRADED_NOTE), single])
    lines = body.splitlines()
    assert lines[0] == "# Answer"
    assert "## Latest News — India (2025-08-19)" in lines
    assert "## Result — capital of France" in lines
    source_line = next(line for line in lines if line.startswith("**Sources:**"))
    assert source_line.count(" · ") == 7
    assert body.index("India") < body.index("capital of France")


def test_keep_n_by_depth():
    assert PipelineOptions(depth="concise").keep_n == 12
    assert PipelineOptions(depth="detailed").keep_n == 24
    assert PipelineOptions(depth="phd").keep_n == 36
    assert PipelineOptions(depth="phd", top_chunks=5).keep_n == 5
