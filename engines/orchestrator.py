"""Per-request turn orchestration for a teach-back session.

Every request replays the whole session from client-supplied state, so the
orchestrator holds no state of its own between calls. One call either quits
(the persona has been lost three times in a row), completes (budget reached or
finish forced) or continues with the next question.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from schemas import (
    CompleteResponse,
    ContinueResponse,
    KBRecord,
    Persona,
    QuestionState,
    QuitResponse,
    RQSResult,
    StateTransition,
    Turn,
    extract_structured_block,
)
import tutor
from engines.base import ScoringContext, ScoringStrategy
from engines.knowledge_building import aggregate_session_mode, detect_knowledge_building
from engines.leading import detect_leading
from engines.question_state import (
    DEFAULT_TURN_BUDGET,
    MisconceptionPredicate,
    low_rqs_long_utterance,
    record_transition,
    select_next_state,
)
from engines.response_quality import average_rqs, calculate_rqs
from engines.validation import coerce_text_list

logger = logging.getLogger(__name__)

QUIT_AFTER_CONFUSIONS = 3
MASTERED_LIMIT = 10
SUGGESTION_LIMIT = 3
DEFAULT_FEEDBACK = "Well done! Thank you for teaching me so patiently."

# (system, messages, max_tokens) -> reply text
Generator = Callable[[str, List[Dict[str, str]], int], str]
TurnOutcome = Union[ContinueResponse, CompleteResponse, QuitResponse]


class GenerationError(RuntimeError):
    """Raised by a generator when the upstream model call fails."""


def _json_log(event: str, payload: Dict[str, Any]) -> None:
    logger.info(json.dumps({"event": event, **payload}, ensure_ascii=False, sort_keys=True, default=str))


@dataclass(frozen=True)
class SessionContext:
    topic: str
    user_message: str
    core_text: str = ""
    mode: str = "concept"
    turns: Tuple[Turn, ...] = ()
    force_finish: bool = False
    persona: Persona = field(default_factory=Persona)
    leading_penalty_total: int = 0
    abandonment_count: int = 0
    consecutive_fail: int = 0
    rqs_history: Tuple[RQSResult, ...] = ()
    kb_history: Tuple[KBRecord, ...] = ()
    current_state: Optional[QuestionState] = None
    state_transitions: Tuple[StateTransition, ...] = ()
    question_seeds: Tuple[str, ...] = ()

    @property
    def learner_turn_count(self) -> int:
        return sum(1 for turn in self.turns if turn.role == "learner")

    @property
    def last_agent_text(self) -> str:
        for turn in reversed(self.turns):
            if turn.role == "agent":
                return turn.text
        return ""

    @property
    def prior_learner_texts(self) -> List[str]:
        return [turn.text for turn in self.turns if turn.role == "learner"]


class TurnOrchestrator:
    """Runs one learner turn through signals, the state machine and the active scoring strategy."""

    def __init__(
        self,
        strategy: ScoringStrategy,
        generator: Generator,
        misconception: MisconceptionPredicate = low_rqs_long_utterance,
        turn_budget: int = DEFAULT_TURN_BUDGET,
    ):
        self.strategy = strategy
        self.generator = generator
        self.misconception = misconception
        self.turn_budget = turn_budget

    def handle(self, context: SessionContext) -> TurnOutcome:
        streak = max(int(context.consecutive_fail), tutor.trailing_confusion_streak(context.turns))
        if streak >= QUIT_AFTER_CONFUSIONS:
            _json_log("session_quit", {"topic": context.topic, "consecutive_fail": streak})
            return QuitResponse(message=tutor.quit_message(context.persona), consecutive_fail=streak)

        learner_text = tutor.sanitize_learner_input(context.user_message)
        if tutor.detect_prompt_injection(learner_text):
            logger.warning("Possible prompt injection in learner input for topic %r", context.topic)

        turn_number = context.learner_turn_count + 1
        prior_agent = context.last_agent_text
        leading = detect_leading(prior_agent, learner_text)
        rqs = calculate_rqs(learner_text, prior_agent, context.core_text)
        kb = detect_knowledge_building(learner_text, context.prior_learner_texts)
        misconception = bool(self.misconception(learner_text, rqs))

        rqs_history = [*context.rqs_history, rqs]
        kb_history = [*context.kb_history, KBRecord(turn=turn_number, mode=kb.mode, signals=kb.signals)]
        leading_total = int(context.leading_penalty_total) + leading

        if context.force_finish or turn_number >= self.turn_budget:
            return self._complete(context, learner_text, turn_number, leading_total, rqs_history, kb_history)

        current = context.current_state or "ORIENT"
        decision = select_next_state(rqs.score, context.current_state, turn_number, misconception, self.turn_budget)
        transition = record_transition(turn_number, current, decision, rqs.score)
        _json_log(
            "state_transition",
            {
                "topic": context.topic,
                "turn": turn_number,
                "from": current,
                "to": decision.state,
                "rqs": rqs.score,
                "kb": kb.mode,
                "leading": leading,
                "misconception": misconception,
            },
        )

        system = tutor.build_teaching_prompt(
            topic=context.topic,
            core_text=context.core_text,
            mode=context.mode,
            persona=context.persona,
            state=decision.state,
            state_reason=decision.reason,
            rqs=rqs,
            kb=kb,
            question_seeds=context.question_seeds,
            leading_detected=leading > 0,
        )
        reply = self.generator(system, tutor.build_messages(context.turns, learner_text), tutor.TURN_MAX_TOKENS)
        consecutive = streak + 1 if tutor.is_confused_reply(reply) else 0

        return ContinueResponse(
            message=reply,
            next_state=decision.state,
            state_reason=decision.reason,
            rqs=rqs,
            kb=kb,
            leading_penalty=leading,
            leading_penalty_total=leading_total,
            consecutive_fail=consecutive,
            rqs_history=rqs_history,
            kb_signals=kb_history,
            state_transitions=[*context.state_transitions, transition],
            scoring_version=self.strategy.version,
        )

    def _complete(
        self,
        context: SessionContext,
        learner_text: str,
        turn_number: int,
        leading_total: int,
        rqs_history: List[RQSResult],
        kb_history: List[KBRecord],
    ) -> CompleteResponse:
        system = tutor.build_final_prompt(
            topic=context.topic,
            core_text=context.core_text,
            mode=context.mode,
            persona=context.persona,
            criteria=self.strategy.criteria(context.mode),
            output_format=self.strategy.output_format(context.persona.name),
        )
        output = self.generator(system, tutor.build_messages(context.turns, learner_text), tutor.FINAL_MAX_TOKENS)
        narrative, payload = extract_structured_block(output)
        recovered = payload is None
        if recovered:
            logger.warning("Structured score block missing or malformed; falling back to defaults")
            payload = {}

        kb_mode = aggregate_session_mode(record.mode for record in kb_history)
        scoring_context = ScoringContext(
            mode=context.mode,
            leading_penalty_total=leading_total,
            abandonment_count=int(context.abandonment_count),
            learner_turns=turn_number,
            kb_mode=kb_mode,
            rqs_avg=average_rqs(rqs_history),
        )
        package = self.strategy.score(self.strategy.parse_raw(payload), scoring_context)

        feedback = payload.get("feedback")
        if not isinstance(feedback, str) or not feedback.strip():
            feedback = DEFAULT_FEEDBACK

        result = package.complete(
            message=narrative or tutor.default_closing(context.persona),
            feedback=feedback.strip(),
            mastered=coerce_text_list(payload.get("mastered"), MASTERED_LIMIT),
            gaps=coerce_text_list(payload.get("gaps")),
            improvement_suggestions=coerce_text_list(payload.get("improvement_suggestions"), SUGGESTION_LIMIT),
            rqs_history=rqs_history,
            kb_signals=kb_history,
            kb_mode=kb_mode,
            state_transitions=list(context.state_transitions),
            structured_output_recovered=recovered,
        )
        _json_log(
            "session_complete",
            {
                "topic": context.topic,
                "turns": turn_number,
                "scoring_version": result.scoring_version,
                "grade": result.grade,
                "total": result.score.total,
                "kb_mode": kb_mode,
                "recovered": recovered,
            },
        )
        return result
