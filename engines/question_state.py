"""Adaptive question-strategy state machine.

The machine only chooses a questioning *strategy* and explains why; the
external generator phrases the actual question using :data:`STATE_GUIDANCE`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from schemas import QuestionState, RQSResult, StateTransition

DEFAULT_TURN_BUDGET = 6

CLARIFY_BELOW = 0.3
PROBE_DEPTH_BELOW = 0.6
PROBE_BREADTH_BELOW = 0.8

STATE_GUIDANCE: dict[str, str] = {
    "ORIENT": "\"Teach me about [topic]! What is it in the first place, and why does it matter?\"",
    "CLARIFY": "\"You said [term], but what does that mean concretely?\"",
    "PROBE_DEPTH": "\"I get the surface idea, but why does [mechanism] behave that way?\"",
    "PROBE_BREADTH": "\"How does [concept A] relate to [concept B] that you mentioned earlier?\"",
    "INTEGRATE": "\"So if I put it all together, [integrated summary], is that right?\"",
    "CHALLENGE": "\"What would change if [plausible counterexample] were true?\"",
}

MisconceptionPredicate = Callable[[str, RQSResult], bool]


@dataclass(frozen=True)
class StateDecision:
    state: QuestionState
    reason: str


def low_rqs_long_utterance(learner_text: str, rqs: RQSResult) -> bool:
    """Default misconception proxy: a long answer that barely addresses the question."""

    return rqs.score < 0.2 and len(learner_text or "") > 20


def select_next_state(
    rqs: float,
    current_state: Optional[QuestionState],
    turn: int,
    misconception: bool,
    total_turns: int = DEFAULT_TURN_BUDGET,
) -> StateDecision:
    """Pick the next questioning strategy; the first matching rule wins."""

    if turn == 1:
        return StateDecision("ORIENT", "First turn: establish the big picture")

    if misconception and turn <= total_turns - 2:
        return StateDecision("CHALLENGE", f"Misconception detected (RQS={rqs:.2f})")

    if turn >= total_turns - 1:
        return StateDecision("INTEGRATE", "Final synthesis with a spaced callback to turn 1")

    if rqs < CLARIFY_BELOW:
        return StateDecision("CLARIFY", f"Low RQS ({rqs:.2f}): needs clarification")
    if rqs < PROBE_DEPTH_BELOW:
        return StateDecision("PROBE_DEPTH", f"Mid RQS ({rqs:.2f}): probe deeper")
    if rqs < PROBE_BREADTH_BELOW:
        return StateDecision("PROBE_BREADTH", f"High RQS ({rqs:.2f}): explore breadth")
    return StateDecision("INTEGRATE", f"Top RQS ({rqs:.2f}): move to integration")


def record_transition(
    turn: int,
    from_state: QuestionState,
    decision: StateDecision,
    rqs: float,
) -> StateTransition:
    return StateTransition(
        turn=turn,
        from_state=from_state,
        to_state=decision.state,
        rqs=rqs,
        reason=decision.reason,
    )
