from __future__ import annotations

import re
from dataclasses import dataclass, field

from answer_engine.agents.base import BaseAgent
from answer_engine.config import settings
from answer_engine.models.chunks import ScoredChunk
from answer_engine.models.fusion import FusionResult
from answer_engine.research_core.markdown import extract_citations, extract_images
from answer_engine.services.prompt_store import PromptPolicy

DEEP_CUES = re.compile(
    r"\b(latest|recent|recently|today|current|currently|news|this (?:week|month|year)|"
    r"20\d{2}|analy[sz]e|analysis|compare|comparison|versus|vs\.?|pros and cons|"
    r"impact|implications|trade-?offs?|why)\b",
    re.IGNORECASE,
)
CREATIVE_CUES = re.compile(
    r"\b(story|stories|poem|poetry|haiku|limerick|lyrics|song|ad copy|advert(?:isement)?|"
    r"slogan|tagline|jingle|script)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ModelProfile:
    name: str
    model: str
    temperature: float
    length: str


@dataclass
class SynthesisResult:
    answer: str
    sources: list[dict[str, str]] = field(default_factory=list)
    images: list[str] = field(default_factory=list)
    model: str = ""


def select_profile(query: str, depth: str = "concise") -> ModelProfile:
    """Creative form requests win; recency, analysis, comparison or a non-concise depth mean deep."""
    if CREATIVE_CUES.search(query or ""):
        return ModelProfile(
            name="creative",
            model=settings.creative_model or settings.default_model,
            temperature=0.9,
            length="medium",
        )
    if depth != "concise" or DEEP_CUES.search(query or ""):
        return ModelProfile(
            name="deep",
            model=settings.deep_model or settings.default_model,
            temperature=0.4,
            length="long" if depth != "concise" else "medium",
        )
    return ModelProfile(
        name="simple",
        model=settings.simple_model or settings.default_model,
        temperature=0.3,
        length="short",
    )


def max_tokens_for(depth: str) -> int:
    return 2048 if depth == "phd" else 1400


class SynthesisAgent(BaseAgent):
    """Writes the cited Markdown answer from fused facts."""

    name = "synthesizer"

    async def synthesize(
        self,
        query: str,
        fused: FusionResult,
        *,
        depth: str = "concise",
        top_chunks: list[ScoredChunk] | None = None,
    ) -> SynthesisResult:
        profile = select_profile(query, depth)
        policy = PromptPolicy.for_request(
            depth=depth,
            length=profile.length,
            creative=profile.name == "creative",
        )
        prompt = policy.render(
            query=query,
            context=fused.fused_text or "(no facts)",
            source_map=fused.source_map or "(no sources)",
            contradictions="\n".join(fused.contradictions) or "None",
        )
        result = await self.llm.generate_with_fallback(
            prompt,
            models=[profile.model, settings.fallback_model],
            temperature=profile.temperature,
            max_tokens=max_tokens_for(depth),
            caller=f"synthesize.{profile.name}",
        )
        return SynthesisResult(
            answer=result.text,
            sources=extract_citations(result.text, top_chunks),
            images=extract_images(result.text),
            model=result.model,
        )
