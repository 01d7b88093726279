from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class FusedFact:
    key: str
    text: str
    # 0-based indexes into the ranked chunk list, in first-contribution order.
    supporting: list[int] = field(default_factory=list)

    def add_support(self, index: int) -> None:
        if index not in self.supporting:
            self.supporting.append(index)

    def render(self) -> str:
        refs = ", ".join(f"S{i + 1}" for i in self.supporting)
        return f"- {self.text} [{refs}]"


@dataclass(slots=True)
class FusionResult:
    fused_text: str
    source_map: str
    facts: list[FusedFact] = field(default_factory=list)
    contradictions: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.facts
