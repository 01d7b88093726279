from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_CONFIDENCE = 0.6


@dataclass(slots=True)
class MissingCitation:
    snippet: str
    suggestion: str = ""


@dataclass(slots=True)
class VerificationResult:
    contradictions: list[str] = field(default_factory=list)
    missing_citations: list[MissingCitation] = field(default_factory=list)
    confidence: float = DEFAULT_CONFIDENCE
    needs_retry: bool = False
    refinements: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "contradictions": list(self.contradictions),
            "missing_citations": [
                {"snippet": m.snippet, "suggestion": m.suggestion}
                for m in self.missing_citations
            ],
            "confidence": self.confidence,
            "needs_retry": self.needs_retry,
            "refinements": list(self.refinements),
        }
