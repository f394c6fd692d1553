"""Dual-mode scoring: the legacy 0-100 model and the SOLO 1-5 model.

Both strategies implement :class:`engines.base.ScoringStrategy`. Call sites pick
one through :func:`get_scoring_strategy` and never branch on the model again;
the SOLO result is repackaged into the legacy shape by
:mod:`engines.score_adapter` so that clients written against either model see
the same top-level fields.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from schemas import (
    LegacyCompatScore,
    LegacyDimensions,
    LegacyScore,
    PenaltyBreakdown,
    SoloDimensions,
    SoloScore,
)
from teaching_modes import LEGACY_DIMENSIONS, SOLO_DIMENSIONS, TEACHING_MODES
from engines.base import ScorePackage, ScoringContext, ScoringStrategy
from engines.score_adapter import to_legacy_shape
from engines.text_signals import round_half_up
from engines.validation import coerce_rating

logger = logging.getLogger(__name__)

# ----------------------------------------------------------------------
# Legacy model
# ----------------------------------------------------------------------
LEGACY_DEFAULT_RAW = 65
LEGACY_FLOOR = 5
LEGACY_CEILING = 100
GAVE_UP_PENALTY = 12
TOO_QUICK_PENALTY = 15
TOO_QUICK_TURNS = 2

LEGACY_GRADE_BANDS = ((90, "S"), (75, "A"), (60, "B"), (45, "C"))

_LEGACY_ALIASES = {
    "coverage": ("coverage", "raw_coverage"),
    "depth": ("depth", "raw_depth"),
    "clarity": ("clarity", "raw_clarity"),
    "structural_coherence": ("structural_coherence",),
    "spontaneity": ("spontaneity",),
}

LEGACY_SUGGESTIONS = {
    "coverage": "Touching on a few more of the key concepts would have helped.",
    "depth": "Adding more 'why?' and 'how does it work?' explanations would give your answer depth.",
    "clarity": "Concrete examples and a step-by-step order would make it easier to follow.",
    "structural_coherence": "Pay attention to cause-and-effect and dependencies between concepts.",
    "spontaneity": "Try to lay out the structure on your own instead of relying on the questions.",
}
LEGACY_PERFECT = "A flawless explanation. You reached a high level on every dimension."
LEGACY_A_PREFIX = "An excellent explanation."


def legacy_grade(total: float) -> str:
    for threshold, grade in LEGACY_GRADE_BANDS:
        if total >= threshold:
            return grade
    return "D"


def penalty_breakdown(leading: int, abandonment_count: int, learner_turns: int) -> PenaltyBreakdown:
    gave_up = max(0, int(abandonment_count)) * GAVE_UP_PENALTY
    too_quick = TOO_QUICK_PENALTY if learner_turns <= TOO_QUICK_TURNS else 0
    leading = max(0, int(leading))
    return PenaltyBreakdown(
        leading=leading,
        gave_up=gave_up,
        too_quick=too_quick,
        total=leading + gave_up + too_quick,
    )


def adjust_dimension(raw_value: float, penalty_total: int) -> int:
    return int(max(LEGACY_FLOOR, min(LEGACY_CEILING, round_half_up(raw_value) - penalty_total)))


def _lowest(values: Mapping[str, float], order: tuple[str, ...]) -> str:
    return min(order, key=lambda dim: values[dim])


def _highest(values: Mapping[str, float], order: tuple[str, ...]) -> str:
    return max(order, key=lambda dim: values[dim])


def legacy_insight(adjusted: Mapping[str, int], grade: str) -> str:
    if grade == "S":
        return LEGACY_PERFECT
    suggestion = LEGACY_SUGGESTIONS[_lowest(adjusted, LEGACY_DIMENSIONS)]
    if grade == "A":
        return f"{LEGACY_A_PREFIX} {suggestion}"
    return suggestion


def calc_legacy_score(raw: LegacyDimensions, context: ScoringContext) -> LegacyScore:
    penalty = penalty_breakdown(
        context.leading_penalty_total,
        context.abandonment_count,
        context.learner_turns,
    )
    raw_values = raw.model_dump()
    adjusted = {dim: adjust_dimension(raw_values[dim], penalty.total) for dim in LEGACY_DIMENSIONS}
    weights = TEACHING_MODES.legacy_weights(context.mode)
    total = int(round_half_up(sum(adjusted[dim] * weights[dim] for dim in LEGACY_DIMENSIONS)))
    grade = legacy_grade(total)
    return LegacyScore(
        raw=raw,
        penalty=penalty,
        adjusted=LegacyDimensions(**adjusted),
        total=total,
        grade=grade,
        insight=legacy_insight(adjusted, grade),
    )


class LegacyScoringStrategy(ScoringStrategy):
    """0-100 scale with leading/abandonment/brevity penalties."""

    version = "v2"

    def parse_raw(self, payload: Mapping[str, Any] | None) -> LegacyDimensions:
        data = payload or {}
        values: Dict[str, int] = {}
        for dim, keys in _LEGACY_ALIASES.items():
            candidate = next((data[key] for key in keys if data.get(key) is not None), None)
            values[dim] = coerce_rating(candidate, 0, LEGACY_CEILING, LEGACY_DEFAULT_RAW)
        return LegacyDimensions(**values)

    def score(self, raw: LegacyDimensions, context: ScoringContext) -> ScorePackage:
        result = calc_legacy_score(raw, context)
        compat = LegacyCompatScore(**result.adjusted.model_dump(), total=result.total, grade=result.grade)
        return ScorePackage(
            {
                "scoring_version": self.version,
                "score": compat,
                "grade": result.grade,
                "insight": result.insight,
                "conjunctive_pass": None,
                "score_breakdown": result,
                "score_v3": None,
                "leading_penalty": result.penalty.leading,
                "gave_up_penalty": result.penalty.gave_up,
            }
        )

    def criteria(self, mode: str) -> str:
        weights = TEACHING_MODES.legacy_weights(mode)
        weight_desc = ", ".join(f"{dim} (weight {round(w * 100)}%)" for dim, w in weights.items())
        return f"""## Assessment dimensions ({weight_desc})

coverage:
  90+: mentions nearly every key concept unprompted
  70-89: explains most of them, a few gaps
  50-69: covers about half of the concepts
  <50: misses many important concepts

depth:
  90+: explains mechanisms, principles and causality accurately
  70-89: understands meanings, reasons stay shallow
  50-69: surface-level definitions only
  <50: no sign of essential understanding

clarity:
  90+: logical, concrete examples, easy to follow
  70-89: mostly clear but lacks examples or ordering
  50-69: somewhat confused explanation
  <50: hard to tell what is being said

structural_coherence:
  90+: dependencies, causality and order between concepts are accurate
  70-89: broadly right with some logical leaps
  50-69: knows individual concepts, connections unclear
  <50: logical structure not understood

spontaneity:
  90+: unfolds the structure without being asked
  70-89: explains well when asked
  50-69: barely answers the questions
  <50: produces nothing without being led"""

    def output_format(self, persona_name: str) -> str:
        return f"""Every numeric field in the JSON must be an integer (no explanatory strings):

{{
  "coverage": 85,
  "depth": 78,
  "clarity": 82,
  "structural_coherence": 80,
  "spontaneity": 75,
  "total": 80,
  "feedback": "Compare against the source material and be specific: (1) what went well, quoting concepts the learner explained accurately, (2) what to improve, naming the parts that were missing or slightly off, (3) a one-line wrap-up. Write all of it in {persona_name}'s voice.",
  "mastered": ["concept explained accurately A", "concept B", "... up to 10"],
  "gaps": ["concept explained insufficiently C"],
  "improvement_suggestions": ["concrete suggestion 1", "concrete suggestion 2", "concrete suggestion 3"]
}}

The values above are examples only. Score strictly on the actual conversation."""


# ----------------------------------------------------------------------
# SOLO model
# ----------------------------------------------------------------------
SOLO_DEFAULT_RAW = 3
SOLO_MIN = 1
SOLO_MAX = 5
GATE_FLOOR = 2
GATE_FLOOR_HIGH_GRADE = 3

SOLO_GRADE_BANDS = ((4.2, "A"), (3.4, "B"), (2.6, "C"), (1.8, "D"))

SOLO_LABELS = {
    "completeness": "completeness",
    "depth": "depth",
    "clarity": "clarity",
    "structural_coherence": "logical structure",
    "pedagogical_insight": "teaching insight",
}

SOLO_SUGGESTIONS = {
    "completeness": "Try touching on a few more of the concepts.",
    "depth": "More 'why?' and 'how does it work?' explanations would add depth.",
    "clarity": "Concrete examples and a step-by-step order would make it easier to follow.",
    "structural_coherence": "Try to make the connections between concepts explicit.",
    "pedagogical_insight": "Try explaining with your own analogies and examples.",
}
TELLING_HINT = " Rather than reproducing what you memorised, explain it in terms of your own understanding."


def solo_grade(weighted: float) -> str:
    for threshold, grade in SOLO_GRADE_BANDS:
        if weighted >= threshold:
            return grade
    return "F"


def conjunctive_pass(raw: Mapping[str, float], grade: str) -> bool:
    values = [raw[dim] for dim in SOLO_DIMENSIONS]
    if grade in ("A", "B") and any(value < GATE_FLOOR_HIGH_GRADE for value in values):
        return False
    return all(value >= GATE_FLOOR for value in values)


def solo_insight(raw: Mapping[str, float], grade: str, kb_mode: str) -> str:
    if grade == "A":
        return f"A superb explanation! Your {SOLO_LABELS[_highest(raw, SOLO_DIMENSIONS)]} really stands out."
    hint = TELLING_HINT if kb_mode == "telling" else ""
    return f"{SOLO_SUGGESTIONS[_lowest(raw, SOLO_DIMENSIONS)]}{hint}"


def calc_solo_score(raw: SoloDimensions, mode: str, kb_mode: str = "mixed", rqs_avg: float = 0.5) -> SoloScore:
    values = raw.model_dump()
    weights = TEACHING_MODES.solo_weights(mode)
    weighted = round_half_up(sum(values[dim] * weights[dim] for dim in SOLO_DIMENSIONS), 2)
    grade = solo_grade(weighted)
    return SoloScore(
        raw=raw,
        weighted=weighted,
        grade=grade,
        conjunctive_pass=conjunctive_pass(values, grade),
        insight=solo_insight(values, grade, kb_mode),
        kb_mode=kb_mode,
        rqs_avg=rqs_avg,
    )


class SoloScoringStrategy(ScoringStrategy):
    """SOLO 1-5 scale with a conjunctive gate and no penalties."""

    version = "v3"

    def parse_raw(self, payload: Mapping[str, Any] | None) -> SoloDimensions:
        data = payload or {}
        return SoloDimensions(
            **{dim: coerce_rating(data.get(dim), SOLO_MIN, SOLO_MAX, SOLO_DEFAULT_RAW) for dim in SOLO_DIMENSIONS}
        )

    def score(self, raw: SoloDimensions, context: ScoringContext) -> ScorePackage:
        result = calc_solo_score(raw, context.mode, context.kb_mode, context.rqs_avg)
        compat = to_legacy_shape(result)
        return ScorePackage(
            {
                "scoring_version": self.version,
                "score": compat,
                "grade": compat.grade,
                "insight": result.insight,
                "conjunctive_pass": result.conjunctive_pass,
                "score_breakdown": None,
                "score_v3": result,
                "leading_penalty": 0,
                "gave_up_penalty": 0,
            }
        )

    def criteria(self, mode: str) -> str:
        weights = TEACHING_MODES.solo_weights(mode)
        weight_desc = ", ".join(f"{dim} (weight {round(w * 100)}%)" for dim, w in weights.items())
        return f"""## Assessment dimensions, SOLO taxonomy 1-5 scale ({weight_desc})

Rate every dimension with an integer from 1 to 5.

completeness:
  5: mentions nearly every key concept unprompted, plus surrounding knowledge
  4: covers most of it, the core is complete
  3: covers about half of the concepts
  2: only part of the key concepts
  1: almost nothing mentioned

depth:
  5: mechanisms, principles and causality explained accurately; moves freely between abstract and concrete
  4: explains meanings and reasons, partly shallow
  3: surface definitions plus a few reasons
  2: surface definitions only
  1: no sign of essential understanding

clarity:
  5: logical, with concrete examples; a third party could follow it
  4: mostly clear, examples or ordering slightly lacking
  3: somewhat confused, intent still comes across
  2: the point can only be guessed
  1: hard to understand

structural_coherence:
  5: dependencies, causality and order between concepts are accurate and systematic
  4: broadly right with some logical leaps
  3: knows individual concepts, connections unclear
  2: scattered list of facts
  1: logical structure not understood

pedagogical_insight:
  5: uses own analogies and examples and adapts to the listener
  4: explains well when asked, sometimes expands unprompted
  3: barely answers the questions
  2: produces nothing without being led
  1: only repeats memorised material

## Important: no penalties
Do not deduct for leading questions, giving up or speed.
Score purely on the quality of the learner's responses."""

    def output_format(self, persona_name: str) -> str:
        return f"""Every numeric field in the JSON must be an integer from 1 to 5 (no explanatory strings):

{{
  "completeness": 4,
  "depth": 3,
  "clarity": 4,
  "structural_coherence": 3,
  "pedagogical_insight": 3,
  "feedback": "Compare against the source material and be specific: (1) what went well, (2) what to improve, (3) a one-line wrap-up. Write all of it in {persona_name}'s voice.",
  "mastered": ["concept explained accurately A", "concept B"],
  "gaps": ["concept explained insufficiently C"]
}}

The values above are examples only. Score strictly on the actual conversation."""


_STRATEGIES: Dict[str, ScoringStrategy] = {
    LegacyScoringStrategy.version: LegacyScoringStrategy(),
    SoloScoringStrategy.version: SoloScoringStrategy(),
}


def get_scoring_strategy(use_solo: bool) -> ScoringStrategy:
    """Return the configured strategy (SOLO when ``use_solo`` is set)."""

    strategy = _STRATEGIES["v3" if use_solo else "v2"]
    logger.debug("Scoring strategy selected: %s", strategy.version)
    return strategy
