"""Prompt templates loaded from ``prompts/prompts.json``.

Keys are dotted paths into the catalog (``fusion.contradictions``); values are
``string.Template`` bodies. The file is re-read when its mtime changes.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from string import Template
from typing import Any

PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"


class PromptCatalog:
    def __init__(self, path: Path):
        self.path = path
        self._payload: dict[str, Any] | None = None
        self._mtime_ns: int | None = None

    def _payload_now(self) -> dict[str, Any]:
        mtime_ns = self.path.stat().st_mtime_ns
        if self._payload is None or self._mtime_ns != mtime_ns:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(payload, dict):
                raise ValueError(f"{self.path.name} must hold a JSON object")
            self._payload, self._mtime_ns = payload, mtime_ns
        return self._payload

    def entry(self, key: str) -> str:
        node: Any = self._payload_now()
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                raise KeyError(f"Unknown prompt: {key}")
            node = node[part]
        if not isinstance(node, str):
            raise TypeError(f"Prompt {key} is a section, not a template")
        return node

    def render(self, key: str, **values: Any) -> str:
        try:
            return Template(self.entry(key)).substitute(**values)
        except KeyError as exc:
            if str(exc.args[0]).startswith("Unknown prompt"):
                raise
            raise KeyError(f"Prompt {key} needs a value for '{exc.args[0]}'") from exc

    def clear(self) -> None:
        self._payload = None
        self._mtime_ns = None


catalog = PromptCatalog(PROMPTS_PATH)


def render_prompt(key: str, **values: Any) -> str:
    return catalog.render(key, **values)


def clear_prompt_cache() -> None:
    catalog.clear()


@dataclass(frozen=True)
class PromptPolicy:
    """Base synthesis prompt plus the modifiers chosen for one request.

    Built once per request; rendering never mutates it.
    """

    base: str
    modifiers: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def for_request(cls, *, depth: str, length: str, creative: bool = False) -> "PromptPolicy":
        modifiers = [f"synthesis.length_{length}", f"synthesis.depth_{depth}"]
        if creative:
            modifiers.append("synthesis.creative")
        return cls(base="synthesis.base", modifiers=tuple(modifiers))

    def render(self, **values: Any) -> str:
        rules = "\n".join(catalog.entry(key) for key in self.modifiers)
        return render_prompt(self.base, style_rules=rules, **values)
