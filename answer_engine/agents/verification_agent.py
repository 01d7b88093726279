from __future__ import annotations

from typing import Any

from loguru import logger

from answer_engine.agents.base import BaseAgent
from answer_engine.config import settings
from answer_engine.models.fusion import FusionResult
from answer_engine.models.verification import DEFAULT_CONFIDENCE, MissingCitation, VerificationResult
from answer_engine.research_core.markdown import INLINE_CITATION_RE, LINK_RE, count_inline_citations
from answer_engine.services.prompt_store import render_prompt
from answer_engine.tools.web_utils import normalize_url

MIN_DISTINCT_SOURCES = 2
FEW_SOURCES_CAP = 0.5
LINES_PER_CITATION = 4
SPARSE_CITATION_CAP = 0.58
RETRY_BELOW = 0.55


class VerificationAgent(BaseAgent):
    """Self-critique of a generated answer, with heuristic overrides applied on top."""

    name = "verification"

    async def verify(
        self,
        query: str,
        answer: str,
        fused: FusionResult,
        sources: list[dict[str, str]],
    ) -> VerificationResult:
        try:
            generation = await self.llm.generate(
                render_prompt(
                    "verification.check",
                    query=query,
                    fused_text=fused.fused_text or "(no facts)",
                    answer=answer,
                ),
                model=settings.default_model,
                temperature=0.0,
                max_tokens=600,
                caller="verify",
            )
            result = self._from_payload(self.extract_json_object(generation.text))
        except Exception as e:
            logger.warning(f"Verification fell back to defaults: {e}")
            result = VerificationResult()
        return apply_overrides(result, query=query, answer=answer, sources=sources)

    def _from_payload(self, payload: dict[str, Any]) -> VerificationResult:
        confidence = payload.get("confidence", DEFAULT_CONFIDENCE)
        try:
            confidence = max(0.0, min(1.0, float(confidence)))
        except (TypeError, ValueError):
            confidence = DEFAULT_CONFIDENCE

        missing: list[MissingCitation] = []
        for item in payload.get("missing_citations") or []:
            if isinstance(item, dict) and isinstance(item.get("snippet"), str):
                missing.append(
                    MissingCitation(
                        snippet=item["snippet"].strip(),
                        suggestion=str(item.get("suggestion") or "").strip(),
                    )
                )
            elif isinstance(item, str) and item.strip():
                missing.append(MissingCitation(snippet=item.strip()))

        return VerificationResult(
            contradictions=self.normalize_text_list(payload.get("contradictions"), max_items=6),
            missing_citations=missing[:8],
            confidence=confidence,
            needs_retry=bool(payload.get("needs_retry", False)),
            refinements=self.normalize_text_list(payload.get("refinements"), max_items=3, min_len=3),
        )


def _uncited_line(lines: list[str]) -> str:
    for line in lines:
        if not line.startswith("#") and not INLINE_CITATION_RE.search(line) and not LINK_RE.search(line):
            return line[:200]
    return lines[0][:200]


def apply_overrides(
    result: VerificationResult,
    *,
    query: str,
    answer: str,
    sources: list[dict[str, str]],
) -> VerificationResult:
    distinct = {normalize_url(s["url"]) for s in sources if s.get("url")}
    if len(distinct) < MIN_DISTINCT_SOURCES:
        result.confidence = min(result.confidence, FEW_SOURCES_CAP)

    lines = [line.strip() for line in (answer or "").splitlines() if line.strip()]
    if lines and count_inline_citations(answer) * LINES_PER_CITATION < len(lines):
        result.missing_citations.append(
            MissingCitation(
                snippet=_uncited_line(lines),
                suggestion="Add inline [S#] citations; fewer than one per four lines.",
            )
        )
        result.confidence = min(result.confidence, SPARSE_CITATION_CAP)

    if result.confidence < RETRY_BELOW:
        if not result.refinements:
            result.refinements = [
                f"{query} site:wikipedia.org",
                f"{query} site:reuters.com OR filetype:pdf",
            ]
        result.needs_retry = True
    return result
