"""Plan, research and compose an answer.

Each sub-task runs the same pipeline: collect (confidence-driven rounds),
fetch, chunk, rank, fuse, synthesize and optionally verify with one retry.
Sub-tasks run concurrently; a failed one becomes a degraded note in the
composed answer instead of failing the request.
"""
from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import StrEnum
from typing import Any, AsyncGenerator, Awaitable, Callable
from uuid import uuid4

from loguru import logger

from answer_engine.agents import collector, planner
from answer_engine.agents.synthesizer import SynthesisAgent, SynthesisResult
from answer_engine.agents.verification_agent import VerificationAgent
from answer_engine.config import settings
from answer_engine.exceptions import GenerationError, InvalidRequestError, ProviderUnavailable
from answer_engine.llm_client import LLMClient, client as llm_client
from answer_engine.models.chunks import Chunk, ScoredChunk
from answer_engine.models.events import SSEEvent
from answer_engine.models.fusion import FusionResult
from answer_engine.models.hits import SourceType
from answer_engine.models.plan import SubTask, TaskKind
from answer_engine.models.schemas import ResponseMeta, SearchRequest, SearchResponse, SourceRef
from answer_engine.models.verification import VerificationResult
from answer_engine.research_core import chunker, fusion, ranker
from answer_engine.research_core.markdown import extract_citations
from answer_engine.research_core.deadline import Deadline, clamp_budget
from answer_engine.services import logger as log_service
from answer_engine.services import streaming
from answer_engine.tools import page_fetcher
from answer_engine.tools.web_utils import extract_domain, normalize_url

Emit = Callable[[SSEEvent], Awaitable[None]]

KEEP_N_BY_DEPTH = {"phd": 36, "detailed": 24, "concise": 12}
FETCHABLE = {SourceType.WEB, SourceType.NEWS, SourceType.WIKI}
MAX_RESPONSE_SOURCES = 12
MAX_RESPONSE_IMAGES = 8
MAX_SECTION_SOURCES = 8
MIN_VERIFIED_NEWS_ITEMS = 3
TRANSCRIPT_FULL_CHARS = 18000
EXCERPT_CHARS = 1200

INSUFFICIENT_CONTENT = (
    "I couldn't find enough content in the available sources to answer this question. "
    "Try rephrasing it or enabling more sources."
)
DEGRADED_NOTE = "Not enough verified items were found — try deep mode."
NEWS_NOTE = "*Note:* Results were filtered by place and date. " + DEGRADED_NOTE
TRANSCRIPT_NOTE = (
    "*Note:* Full coverage could not be confirmed. "
    "Use the linked sources for the complete video or transcript."
)
EXCERPT_NOTE = "*Excerpt shown. See the full transcript or video via the sources below.*"
FACTS_ONLY_NOTE = "*Note:* The answer could not be written; the collected facts are listed instead."


class Stage(StrEnum):
    INIT = "init"
    PLANNING = "planning"
    COLLECTING = "collecting"
    CONFIDENCE_CHECK = "confidence_check"
    FETCHING = "fetching"
    RANKING = "ranking"
    FUSING = "fusing"
    SYNTHESIZING = "synthesizing"
    VERIFYING = "verifying"
    RETRY = "retry"
    COMPOSING = "composing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineOptions:
    max_web: int = 8
    top_chunks: int | None = None
    fast: bool = False
    verify: bool = True
    depth: str = "concise"
    sources: list[SourceType] | None = None

    @classmethod
    def from_request(cls, request: SearchRequest) -> "PipelineOptions":
        return cls(
            max_web=request.max_web,
            top_chunks=request.top_chunks,
            fast=request.fast,
            verify=request.verify,
            depth=request.depth,
            sources=request.sources,
        )

    @property
    def keep_n(self) -> int:
        return self.top_chunks or KEEP_N_BY_DEPTH.get(self.depth, 12)


@dataclass
class PipelineResult:
    answer: str
    sources: list[dict[str, str]] = field(default_factory=list)
    images: list[str] = field(default_factory=list)
    top_chunks: list[ScoredChunk] = field(default_factory=list)
    verification: VerificationResult | None = None
    by_source: dict[str, int] = field(default_factory=dict)
    rounds: int = 0
    pages_fetched: int = 0
    chunks_ranked: int = 0
    insufficient: bool = False


@dataclass
class TaskOutcome:
    task: SubTask
    result: PipelineResult | None = None
    ok: bool = True
    note: str | None = None

    @property
    def body(self) -> str:
        answer = self.result.answer if self.result else ""
        parts = [p for p in (answer.strip(), self.note) if p]
        return "\n\n".join(parts)

    @property
    def sources(self) -> list[dict[str, str]]:
        return self.result.sources if self.result else []


# --- Post-verifiers ---


def _chunk_date(chunk: Chunk) -> str:
    raw = chunk.source.metadata.get("date") if chunk.source else None
    return (planner.to_iso_date(str(raw)) or "") if raw else ""


def verify_news_items(
    items: list[ScoredChunk],
    *,
    place: str | None = None,
    month: str | None = None,
) -> tuple[bool, list[ScoredChunk]]:
    """Drop items outside ``month`` (``yyyy-mm``) or not mentioning ``place``; ok with 3+ left."""
    kept: list[ScoredChunk] = []
    for item in items:
        chunk = item.chunk
        if month and not (_chunk_date(chunk) or "").startswith(month):
            continue
        title = chunk.source.title if chunk.source else ""
        if place and not re.search(rf"\b{re.escape(place)}\b", f"{title}\n{chunk.text}", re.IGNORECASE):
            continue
        kept.append(item)
    return len(kept) >= MIN_VERIFIED_NEWS_ITEMS, kept


def verify_transcript_coverage(text: str, must_be_full: bool = False) -> tuple[bool, float]:
    collapsed = re.sub(r"\s+", " ", text or "")
    coverage = min(1.0, len(collapsed) / TRANSCRIPT_FULL_CHARS)
    return coverage >= (0.8 if must_be_full else 0.4), coverage


def trim_excerpt(text: str, max_chars: int = EXCERPT_CHARS) -> str:
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars]}\n\n{EXCERPT_NOTE}"


# --- Composition ---


def _source_link(source: dict[str, str]) -> str:
    title = source.get("title") or extract_domain(source["url"])
    return f"[{title}]({source['url']})"


def compose(outcomes: list[TaskOutcome]) -> str:
    """One outcome is returned as-is; several become titled sections in plan order."""
    if len(outcomes) == 1:
        return outcomes[0].body
    lines = ["# Answer"]
    for outcome in outcomes:
        lines.append(f"\n## {planner.section_title(outcome.task)}\n")
        lines.append(outcome.body)
        if outcome.sources:
            links = " · ".join(_source_link(s) for s in outcome.sources[:MAX_SECTION_SOURCES])
            lines.append(f"\n**Sources:** {links}")
    return "\n".join(lines)


def _merge_sources(outcomes: list[TaskOutcome]) -> list[dict[str, str]]:
    merged: list[dict[str, str]] = []
    seen: set[str] = set()
    for outcome in outcomes:
        for source in outcome.sources:
            key = normalize_url(source["url"])
            if key in seen:
                continue
            seen.add(key)
            merged.append(source)
    return merged[:MAX_RESPONSE_SOURCES]


def _merge_top_chunks(first: list[ScoredChunk], second: list[ScoredChunk]) -> list[ScoredChunk]:
    seen: set[str] = set()
    merged: list[ScoredChunk] = []
    for scored in [*first, *second]:
        if scored.chunk.id in seen:
            continue
        seen.add(scored.chunk.id)
        merged.append(scored)
    return merged


def _facts_only_answer(fused: FusionResult) -> str:
    return f"{fused.fused_text}\n\n{FACTS_ONLY_NOTE}"


class AnswerOrchestrator:
    """Entry point for one answer request."""

    def __init__(
        self,
        *,
        llm: LLMClient | None = None,
        embedder: ranker.Embedder | None = None,
        reranker: ranker.Reranker | None = None,
        today: date | None = None,
    ):
        self._llm = llm
        self.embedder = embedder
        self.reranker = reranker
        self.today = today
        self.synthesizer = SynthesisAgent(llm)
        self.verifier = VerificationAgent(llm)

    def _optional_llm(self) -> LLMClient | None:
        if self._llm is not None:
            return self._llm
        try:
            return llm_client()
        except ProviderUnavailable as e:
            logger.warning(f"Generation disabled: {e}")
            return None

    @staticmethod
    async def _emit(emit: Emit | None, event: SSEEvent) -> None:
        if emit is not None:
            await emit(event)

    # --- One sub-task pass ---

    async def _gather_chunks(
        self,
        query: str,
        options: PipelineOptions,
        deadline: Deadline,
        emit: Emit | None,
        *,
        task_id: str | None,
        sources: list[SourceType] | None,
        max_rounds: int | None = None,
    ) -> tuple[collector.CollectResult, list[Chunk], int]:
        step_id = task_id or "single"

        async def on_round(round_no: int, merged: collector.CollectResult) -> None:
            log_service.log_research_step(
                step_id, Stage.CONFIDENCE_CHECK, "round", {"round": round_no, "confidence": merged.confidence}
            )
            await self._emit(
                emit,
                streaming.metrics(
                    merged.counts(),
                    rounds=round_no,
                    task_id=task_id,
                    confidence=round(merged.confidence, 3),
                ),
            )

        collected = await collector.collect_rounds(
            query,
            sources,
            max_web=options.max_web,
            fast=options.fast,
            deadline=deadline,
            max_rounds=max_rounds,
            on_round=on_round,
        )

        log_service.log_research_step(step_id, Stage.FETCHING, "started", {"hits": len(collected.hits)})
        await self._emit(emit, streaming.stage("reading", task_id=task_id, hits=len(collected.hits)))
        limit = max(1, settings.max_fetch_pages // 2) if options.fast else settings.max_fetch_pages
        fetch_candidates = [hit for hit in collected.hits if hit.source_type in FETCHABLE]
        fetched = await page_fetcher.fetch_pages(fetch_candidates, fast=options.fast, limit=limit)
        fetched_urls = {normalize_url(hit.url) for hit, _ in fetched}

        chunks: list[Chunk] = []
        for hit, page in fetched:
            chunks.extend(chunker.chunk_page(hit, page))
        for hit in collected.hits:
            if normalize_url(hit.url) in fetched_urls:
                continue
            chunk = chunker.chunk_hit(hit)
            if chunk is not None:
                chunks.append(chunk)

        await self._emit(
            emit,
            streaming.metrics(
                collected.counts(),
                pages_fetched=len(fetched),
                rounds=collected.rounds,
                task_id=task_id,
            ),
        )
        return collected, chunks, len(fetched)

    async def _fuse(self, query: str, top: list[ScoredChunk], options: PipelineOptions) -> FusionResult:
        fused = fusion.fuse(query, top)
        llm = None if options.fast else self._optional_llm()
        if llm is not None:
            fused.contradictions = await fusion.detect_contradictions(fused.fused_text, llm)
        return fused

    async def _write(
        self, query: str, fused: FusionResult, top: list[ScoredChunk], options: PipelineOptions
    ) -> tuple[SynthesisResult, bool]:
        """Synthesized answer and whether generation succeeded."""
        try:
            return (
                await self.synthesizer.synthesize(query, fused, depth=options.depth, top_chunks=top),
                True,
            )
        except (GenerationError, ProviderUnavailable) as e:
            logger.error(f"Synthesis failed, returning collected facts: {e}")
            return (
                SynthesisResult(
                    answer=_facts_only_answer(fused),
                    sources=extract_citations("", top),
                ),
                False,
            )

    async def run_pipeline(
        self,
        query: str,
        options: PipelineOptions,
        deadline: Deadline,
        emit: Emit | None = None,
        *,
        task_id: str | None = None,
        sources: list[SourceType] | None = None,
    ) -> PipelineResult:
        request_id = task_id or uuid4().hex[:12]
        sources = sources or options.sources

        log_service.log_research_step(request_id, Stage.COLLECTING, "started", {"query": query})
        await self._emit(emit, streaming.stage("collect", task_id=task_id, query=query))
        collected, chunks, pages = await self._gather_chunks(
            query, options, deadline, emit, task_id=task_id, sources=sources
        )
        result = PipelineResult(
            answer=INSUFFICIENT_CONTENT,
            by_source=collected.counts(),
            rounds=collected.rounds,
            pages_fetched=pages,
        )
        if not chunks:
            log_service.log_research_step(request_id, Stage.DONE, "insufficient_content")
            result.insufficient = True
            return result

        log_service.log_research_step(request_id, Stage.RANKING, "started", {"chunks": len(chunks)})
        await self._emit(emit, streaming.stage("ranking", task_id=task_id, chunks=len(chunks)))
        top = await ranker.rank(
            query,
            chunks,
            top_k=options.keep_n,
            fast=options.fast,
            embedder=self.embedder,
            reranker=self.reranker,
        )
        result.chunks_ranked = len(chunks)

        log_service.log_research_step(request_id, Stage.FUSING, "started", {"top_chunks": len(top)})
        fused = await self._fuse(query, top, options)
        if fused.is_empty:
            log_service.log_research_step(request_id, Stage.DONE, "insufficient_content")
            result.insufficient = True
            return result

        log_service.log_research_step(request_id, Stage.SYNTHESIZING, "started", {"facts": len(fused.facts)})
        await self._emit(emit, streaming.stage("writing", task_id=task_id, top_chunks=len(top)))
        synthesis, generated = await self._write(query, fused, top, options)

        if options.verify and not options.fast and generated:
            log_service.log_research_step(request_id, Stage.VERIFYING, "started")
            await self._emit(emit, streaming.stage("verifying", task_id=task_id))
            verification = await self.verifier.verify(query, synthesis.answer, fused, synthesis.sources)
            result.verification = verification

            if verification.needs_retry and verification.refinements and not deadline.expired():
                log_service.log_research_step(
                    request_id, Stage.RETRY, "started", {"query": verification.refinements[0]}
                )
                top, fused, synthesis, extra_pages, extra_chunks = await self._retry(
                    verification.refinements[0], query, top, options, deadline, emit,
                    task_id=task_id, sources=sources,
                )
                result.pages_fetched += extra_pages
                result.chunks_ranked += extra_chunks

        result.answer = synthesis.answer or INSUFFICIENT_CONTENT
        result.sources = synthesis.sources
        result.images = synthesis.images
        result.top_chunks = top
        log_service.log_research_step(request_id, Stage.DONE, "completed", {"sources": len(result.sources)})
        return result

    async def _retry(
        self,
        refinement: str,
        query: str,
        top: list[ScoredChunk],
        options: PipelineOptions,
        deadline: Deadline,
        emit: Emit | None,
        *,
        task_id: str | None,
        sources: list[SourceType] | None,
    ) -> tuple[list[ScoredChunk], FusionResult, SynthesisResult, int, int]:
        """One extra collect/rank pass; the answer is regenerated once and not re-verified."""
        await self._emit(emit, streaming.stage("collect", task_id=task_id, query=refinement, retry=True))
        _, chunks, pages = await self._gather_chunks(
            refinement, options, deadline, emit, task_id=task_id, sources=sources, max_rounds=1
        )
        extra_top = await ranker.rank(
            query,
            chunks,
            top_k=options.keep_n,
            fast=options.fast,
            embedder=self.embedder,
            reranker=self.reranker,
        ) if chunks else []
        merged = _merge_top_chunks(top, extra_top)
        fused = await self._fuse(query, merged, options)
        await self._emit(emit, streaming.stage("writing", task_id=task_id, top_chunks=len(merged), retry=True))
        synthesis, _ = await self._write(query, fused, merged, options)
        return merged, fused, synthesis, pages, len(chunks)

    # --- Sub-tasks ---

    async def _run_task(
        self,
        task: SubTask,
        options: PipelineOptions,
        deadline: Deadline,
        emit: Emit | None,
    ) -> TaskOutcome:
        query = planner.subtask_query(task, self.today)
        sources = options.sources or planner.sources_for(task)

        result = await self.run_pipeline(
            query, options, deadline, emit, task_id=task.id, sources=sources
        )
        outcome = TaskOutcome(task=task, result=result)
        if result.insufficient:
            outcome.ok = False
            return outcome

        if task.kind == TaskKind.NEWS:
            ok, _ = verify_news_items(result.top_chunks, place=task.place, month=task.month)
            if not ok:
                outcome.ok = False
                outcome.note = NEWS_NOTE
        elif task.kind == TaskKind.TRANSCRIPT:
            ok, coverage = verify_transcript_coverage(result.answer, task.must_be_full)
            result.answer = trim_excerpt(result.answer)
            if not ok:
                outcome.ok = False
                outcome.note = TRANSCRIPT_NOTE
            logger.debug(f"Transcript coverage for {task.id}: {coverage:.2f}")
        return outcome

    async def answer(self, request: SearchRequest, emit: Emit | None = None) -> SearchResponse:
        query = (request.query or "").strip()
        if not query:
            raise InvalidRequestError("Missing query")

        started = time.monotonic()
        request_id = uuid4().hex[:12]
        options = PipelineOptions.from_request(request)
        deadline = Deadline(clamp_budget(request.max_time, settings.request_budget_seconds))

        log_service.log_research_step(request_id, Stage.INIT, "accepted", {"depth": options.depth, "fast": options.fast})
        log_service.log_research_step(request_id, Stage.PLANNING, "started", {"query": query})
        plan = planner.plan_query(query, self.today)
        await self._emit(
            emit,
            streaming.start(query, request_id, plan, depth=options.depth, rounds=settings.max_rounds),
        )
        await self._emit(emit, streaming.stage("plan", subtasks=len(plan)))

        raw = await asyncio.gather(
            *(self._run_task(task, options, deadline, emit) for task in plan),
            return_exceptions=True,
        )
        outcomes: list[TaskOutcome] = []
        for task, item in zip(plan, raw):
            if isinstance(item, Exception):
                logger.error(f"Sub-task {task.id} ({task.kind}) failed: {item!r}")
                log_service.log_research_step(request_id, Stage.FAILED, "subtask_failed", {"task_id": task.id})
                outcomes.append(TaskOutcome(task=task, ok=False, note=DEGRADED_NOTE))
                continue
            outcomes.append(item)

        log_service.log_research_step(request_id, Stage.COMPOSING, "started", {"subtasks": len(outcomes)})
        results = [o.result for o in outcomes if o.result is not None]
        images: list[str] = []
        for r in results:
            images.extend(i for i in r.images if i not in images)

        verification: dict[str, Any] | None = None
        if len(outcomes) == 1 and results and results[0].verification is not None:
            verification = results[0].verification.to_dict()
        elif any(r.verification is not None for r in results):
            verification = {
                "subtasks": {
                    o.task.id: o.result.verification.to_dict()
                    for o in outcomes
                    if o.result is not None and o.result.verification is not None
                }
            }

        runtime_ms = int((time.monotonic() - started) * 1000)
        log_service.log_research_step(request_id, Stage.DONE, "completed", {"runtime_ms": runtime_ms})
        return SearchResponse(
            formatted_answer=compose(outcomes),
            sources=[SourceRef(title=s.get("title", ""), url=s["url"]) for s in _merge_sources(outcomes)],
            images=images[:MAX_RESPONSE_IMAGES],
            verification=verification,
            plan=[task.model_dump(mode="json") for task in plan],
            last_fetched=datetime.now(timezone.utc).isoformat(),
            meta=ResponseMeta(
                rounds_executed=sum(r.rounds for r in results),
                pages_fetched=sum(r.pages_fetched for r in results),
                chunks_ranked=sum(r.chunks_ranked for r in results),
                subtasks=len(plan),
                runtime_ms=runtime_ms,
            ),
        )

    async def stream(self, request: SearchRequest) -> AsyncGenerator[SSEEvent, None]:
        """Pipeline progress as events, ending with ``answer`` then ``done``, or ``error``."""
        if not (request.query or "").strip():
            yield streaming.error("Missing query")
            return

        started = time.monotonic()
        queue: asyncio.Queue[SSEEvent | None] = asyncio.Queue()

        async def emit(event: SSEEvent) -> None:
            await queue.put(event)

        async def run() -> SearchResponse:
            try:
                return await self.answer(request, emit=emit)
            finally:
                await queue.put(None)

        task = asyncio.create_task(run())
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
            response = await task
        except Exception as e:
            logger.exception("Streaming pipeline failed")
            yield streaming.error(str(e) or "Answer pipeline failed")
            return
        finally:
            if not task.done():
                task.cancel()

        yield streaming.answer(response.model_dump(mode="json"))
        yield streaming.done(runtime_ms=int((time.monotonic() - started) * 1000))
