from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping

from schemas import CompleteResponse


@dataclass(frozen=True)
class ScoringContext:
    mode: str
    leading_penalty_total: int = 0
    abandonment_count: int = 0
    learner_turns: int = 0
    kb_mode: str = "mixed"
    rqs_avg: float = 0.5


@dataclass(frozen=True)
class ScorePackage:
    """Strategy output in the shape both API generations understand."""

    fields: Dict[str, Any]

    def complete(self, **extra: Any) -> CompleteResponse:
        return CompleteResponse(**self.fields, **extra)


class ScoringStrategy:
    version: str = ""

    def parse_raw(self, payload: Mapping[str, Any] | None) -> Any:
        raise NotImplementedError

    def score(self, raw: Any, context: ScoringContext) -> ScorePackage:
        raise NotImplementedError

    def criteria(self, mode: str) -> str:
        raise NotImplementedError

    def output_format(self, persona_name: str) -> str:
        raise NotImplementedError
