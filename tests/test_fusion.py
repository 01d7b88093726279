from __future__ import annotations

import pytest

from answer_engine.llm_client import GenerationResult
from answer_engine.models.chunks import Chunk, ChunkSource, ScoredChunk
from answer_engine.models.hits import SourceType
from answer_engine.research_core import fusion

CAPITAL = "Paris is the capital and most populous city of France."
RIVER = "The city stands on the river Seine in the north of the country."


def _scored(text: str, url: str, kind: SourceType = SourceType.WEB, **metadata) -> ScoredChunk:
    source = ChunkSource(type=kind, url=url, title=f"Title of {url}", metadata=metadata)
    return ScoredChunk(chunk=Chunk(text=text, source=source), score=1.0)


def test_fuse_merges_duplicate_sentences_into_one_bullet():
    chunks = [
        _scored(f"{CAPITAL} {RIVER}", "https://a.example.com"),
        _scored(f"“{CAPITAL.upper()}”", "https://b.example.com"),
    ]

    result = fusion.fuse("capital of France", chunks)

    assert len(result.facts) == 2
    assert result.facts[0].supporting == [0, 1]
    assert f"- {CAPITAL} [S1, S2]" in result.fused_text.splitlines()
    assert f"- {RIVER} [S1]" in result.fused_text.splitlines()


def test_fuse_drops_short_and_symbol_only_sentences():
    chunks = [_scored("Too short. ---- ==== **** ____ ---- ==== **** ____ ----. " + CAPITAL, "https://a.example.com")]

    result = fusion.fuse("q", chunks)

    assert [f.text for f in result.facts] == [CAPITAL]


def test_fuse_limits_sentences_per_chunk_and_total_bullets():
    sentences = [f"Sentence number {i} describes a distinct fact about the city." for i in range(6)]
    chunks = [_scored(" ".join(sentences), "https://a.example.com")]

    assert len(fusion.fuse("q", chunks, per_chunk=3).facts) == 3
    assert len(fusion.fuse("q", chunks, per_chunk=6, max_bullets=2).facts) == 2


def test_fuse_empty_input_is_empty_result():
    result = fusion.fuse("q", [])

    assert result.is_empty
    assert result.fused_text == ""


def test_source_map_labels_by_source_type():
    chunks = [
        _scored("x", "https://twitter.com/i/web/status/9", SourceType.TWITTER, tweet_id="9"),
        _scored("x", "https://reddit.com/r/paris/1", SourceType.REDDIT, subreddit="paris"),
        _scored("x", "https://youtube.com/watch?v=1", SourceType.YOUTUBE),
        _scored("x", "https://example.com/page"),
    ]

    lines = fusion.render_source_map(chunks).splitlines()

    assert lines == [
        "S1 : Twitter (9)",
        "S2 : Reddit (paris) — https://reddit.com/r/paris/1",
        "S3 : YouTube — https://youtube.com/watch?v=1",
        "S4 : Title of https://example.com/page — https://example.com/page",
    ]


class _FakeLLM:
    def __init__(self, text: str | None = None, error: Exception | None = None):
        self.text = text
        self.error = error

    async def generate(self, prompt, **kwargs):
        if self.error is not None:
            raise self.error
        return GenerationResult(text=self.text, model="test-model")


@pytest.mark.asyncio
async def test_detect_contradictions_parses_lines():
    llm = _FakeLLM(text="1. S1 says 2.1M people, S3 says 2.2M\n- S2 and S4 disagree on the founding year")

    found = await fusion.detect_contradictions("- fact [S1]", llm)

    assert found == ["S1 says 2.1M people, S3 says 2.2M", "S2 and S4 disagree on the founding year"]


@pytest.mark.asyncio
async def test_detect_contradictions_none_and_failures_are_empty():
    assert await fusion.detect_contradictions("- fact [S1]", _FakeLLM(text="None.")) == []
    assert await fusion.detect_contradictions("- fact [S1]", _FakeLLM(error=RuntimeError("down"))) == []
    assert await fusion.detect_contradictions("   ", _FakeLLM(text="anything")) == []
