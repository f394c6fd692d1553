"""Pydantic schemas for per-turn signals, score packages and turn outcomes."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

__all__ = [
    "TeachingModeName",
    "QuestionState",
    "KBMode",
    "Turn",
    "Persona",
    "RQSSignals",
    "RQSResult",
    "KBSignals",
    "KBResult",
    "KBRecord",
    "StateTransition",
    "LegacyDimensions",
    "PenaltyBreakdown",
    "LegacyScore",
    "SoloDimensions",
    "SoloScore",
    "LegacyCompatScore",
    "ContinueResponse",
    "CompleteResponse",
    "QuitResponse",
    "INITIAL_RATING",
    "SkillRating",
    "SkillRatingChange",
    "extract_structured_block",
]

TeachingModeName = Literal["whynot", "vocabulary", "concept", "procedure"]
QuestionState = Literal["ORIENT", "CLARIFY", "PROBE_DEPTH", "PROBE_BREADTH", "INTEGRATE", "CHALLENGE"]
KBMode = Literal["building", "telling", "mixed"]

INITIAL_RATING = 1200

_ROLE_ALIASES = {
    "learner": "learner",
    "user": "learner",
    "agent": "agent",
    "ai": "agent",
    "assistant": "agent",
}


class Turn(BaseModel):
    role: Literal["learner", "agent"]
    text: str

    model_config = {"frozen": True}

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _ROLE_ALIASES.get(value.strip().lower(), value)
        return value


class Persona(BaseModel):
    """Character strings used only to flavour generator instructions."""

    name: str = "Mio"
    emoji: str = "⭐"
    personality: str = "Cheerful and endlessly curious"
    speaking_style: str = "Casual, lots of exclamation marks and little interjections."
    praise: str = "\"Whoa, that totally clicked for me!!\""
    struggle: str = "\"Umm... could you walk me through it again, slowly?\""
    confused: str = "\"Hmm, I don't really get that part. Why is that?\""
    lore: str = ""
    intro: str = ""


class RQSSignals(BaseModel):
    sentence_quality: float = Field(ge=0.0, le=1.0)
    relevance: float = Field(ge=0.0, le=1.0)
    info_content: float = Field(ge=0.0, le=1.0)
    elaboration: float = Field(ge=0.0, le=1.0)


class RQSResult(BaseModel):
    score: float = Field(ge=0.0, le=1.0, description="Weighted response-quality score for one learner turn.")
    signals: RQSSignals


class KBSignals(BaseModel):
    well_formed: bool
    relevant: bool
    informative: bool
    non_repetitive: bool

    def count(self) -> int:
        return sum((self.well_formed, self.relevant, self.informative, self.non_repetitive))


class KBResult(BaseModel):
    mode: KBMode
    signals: KBSignals


class KBRecord(KBResult):
    turn: int = Field(ge=1)


class StateTransition(BaseModel):
    turn: int = Field(ge=1)
    from_state: QuestionState
    to_state: QuestionState
    rqs: float = 0.0
    reason: str = ""


# ----------------------------------------------------------------------
# Legacy 0-100 model
# ----------------------------------------------------------------------
class LegacyDimensions(BaseModel):
    coverage: int
    depth: int
    clarity: int
    structural_coherence: int
    spontaneity: int


class PenaltyBreakdown(BaseModel):
    leading: int = 0
    gave_up: int = 0
    too_quick: int = 0
    total: int = 0


class LegacyScore(BaseModel):
    raw: LegacyDimensions
    penalty: PenaltyBreakdown
    adjusted: LegacyDimensions
    total: int
    grade: Literal["S", "A", "B", "C", "D"]
    insight: str


# ----------------------------------------------------------------------
# SOLO 1-5 model
# ----------------------------------------------------------------------
class SoloDimensions(BaseModel):
    # Generator output is rounded to integers; directly submitted ratings may be fractional.
    completeness: float = Field(ge=1, le=5)
    depth: float = Field(ge=1, le=5)
    clarity: float = Field(ge=1, le=5)
    structural_coherence: float = Field(ge=1, le=5)
    pedagogical_insight: float = Field(ge=1, le=5)


class SoloScore(BaseModel):
    raw: SoloDimensions
    weighted: float
    grade: Literal["A", "B", "C", "D", "F"]
    conjunctive_pass: bool = Field(
        description="False when any dimension is below 2, or below 3 for an A/B grade.",
    )
    insight: str
    kb_mode: KBMode = "mixed"
    rqs_avg: float = 0.5


class LegacyCompatScore(LegacyDimensions):
    total: int
    grade: Literal["S", "A", "B", "C", "D"]


# ----------------------------------------------------------------------
# Turn outcomes
# ----------------------------------------------------------------------
class ContinueResponse(BaseModel):
    type: Literal["continue"] = "continue"
    message: str
    next_state: QuestionState
    state_reason: str
    rqs: RQSResult
    kb: KBResult
    leading_penalty: int
    leading_penalty_total: int
    consecutive_fail: int
    rqs_history: List[RQSResult] = Field(default_factory=list)
    kb_signals: List[KBRecord] = Field(default_factory=list)
    state_transitions: List[StateTransition] = Field(default_factory=list)
    scoring_version: Literal["v2", "v3"]


class CompleteResponse(BaseModel):
    type: Literal["complete"] = "complete"
    message: str
    scoring_version: Literal["v2", "v3"]
    score: LegacyCompatScore
    grade: str
    insight: str
    conjunctive_pass: Optional[bool] = None
    score_breakdown: Optional[LegacyScore] = None
    score_v3: Optional[SoloScore] = None
    feedback: str
    mastered: List[str] = Field(default_factory=list)
    gaps: List[str] = Field(default_factory=list)
    improvement_suggestions: List[str] = Field(default_factory=list)
    leading_penalty: int = 0
    gave_up_penalty: int = 0
    rqs_history: List[RQSResult] = Field(default_factory=list)
    kb_signals: List[KBRecord] = Field(default_factory=list)
    kb_mode: KBMode = "mixed"
    state_transitions: List[StateTransition] = Field(default_factory=list)
    structured_output_recovered: bool = Field(
        default=False,
        description="True when the generator's structured block was unusable and defaults were substituted.",
    )


class QuitResponse(BaseModel):
    type: Literal["quit"] = "quit"
    message: str
    abandoned: bool = True
    consecutive_fail: int


# ----------------------------------------------------------------------
# Skill ratings
# ----------------------------------------------------------------------
class SkillRating(BaseModel):
    topic: str
    dimension: str
    rating: int = Field(default=INITIAL_RATING, ge=400, le=2400)
    k_factor: int = 40
    session_count: int = Field(default=0, ge=0)
    peak_rating: int = INITIAL_RATING


class SkillRatingChange(BaseModel):
    dimension: str
    old_rating: int
    new_rating: int
    delta: int
    observed: float
    expected: float
    k_factor: int


# ----------------------------------------------------------------------
# Structured block extraction
# ----------------------------------------------------------------------
_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_BARE_RE = re.compile(r"\{[\s\S]*\}")
_BLOCK_START_RE = re.compile(r"[\{\[`]")


def _find_first_json_object(text: str) -> tuple[str, int, int]:
    start = text.find("{")
    while start != -1:
        depth = 0
        for idx in range(start, len(text)):
            char = text[idx]
            if char == "{" and (idx == 0 or text[idx - 1] != "\\"):
                depth += 1
            elif char == "}" and (idx == 0 or text[idx - 1] != "\\"):
                depth -= 1
                if depth == 0:
                    candidate = text[start : idx + 1]
                    try:
                        json.loads(candidate)
                    except ValueError:
                        break
                    return candidate, start, idx + 1
        start = text.find("{", start + 1)
    raise ValueError("No JSON object found in provided text")


def _load_object(candidate: Optional[str]) -> Optional[Dict[str, Any]]:
    if not candidate:
        return None
    try:
        data = json.loads(candidate.strip())
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def extract_structured_block(text: str) -> Tuple[str, Optional[Dict[str, Any]]]:
    """Split generator output into its narrative prefix and structured block.

    The block may be fenced (```json ... ```), bare, or embedded between other
    prose. ``None`` is returned for the block when nothing parses.
    """

    raw = (text or "").strip()

    payload: Optional[Dict[str, Any]] = None
    fence = _FENCE_RE.search(raw)
    if fence:
        payload = _load_object(fence.group(1))
    if payload is None:
        bare = _BARE_RE.search(raw)
        if bare:
            payload = _load_object(bare.group(0))
    if payload is None:
        try:
            snippet, _, _ = _find_first_json_object(raw)
        except ValueError:
            snippet = None
        payload = _load_object(snippet)

    start = _BLOCK_START_RE.search(raw)
    narrative = raw[: start.start()].strip() if start else raw
    return narrative, payload
