"""Response-Quality Score (RQS): a model-free estimate of one learner turn.

The score is a fixed weighted sum of four sub-signals, each in ``[0, 1]``:

* ``sentence_quality`` – complete sentences, saturating at three.
* ``relevance`` – keyword overlap with the agent's preceding question.
* ``info_content`` – explanatory connectives versus plain descriptive fillers.
* ``elaboration`` – utterance length, saturating at 150 characters.

:func:`calculate_rqs` is pure: identical inputs always give identical output.
"""

from __future__ import annotations

from schemas import RQSResult, RQSSignals
from engines.text_signals import (
    DESCRIPTIVE_RE,
    EXPLANATORY_RE,
    clamp_unit,
    keyword_tokens,
    overlaps,
    round_half_up,
    sentences,
)

WEIGHTS = {
    "sentence_quality": 0.2,
    "relevance": 0.3,
    "info_content": 0.3,
    "elaboration": 0.2,
}

SATURATING_SENTENCES = 3
MIN_SENTENCE_CHARS = 5
EXPECTED_KEYWORD_SHARE = 0.3
NO_QUESTION_RELEVANCE = 0.5
NO_HISTORY_RQS = 0.5
EXPLANATORY_BOOST = 2.5
NO_CONNECTIVE_CEILING = 0.4
NO_CONNECTIVE_LENGTH = 200
ELABORATION_LENGTH = 150


def sentence_quality(text: str) -> float:
    return clamp_unit(len(sentences(text, MIN_SENTENCE_CHARS)) / SATURATING_SENTENCES)


def relevance(text: str, question: str) -> float:
    question_keywords = keyword_tokens(question)
    if not question_keywords:
        return NO_QUESTION_RELEVANCE
    overlap = sum(1 for word in keyword_tokens(text) if overlaps(word, question_keywords))
    expected = max(1.0, len(question_keywords) * EXPECTED_KEYWORD_SHARE)
    return clamp_unit(overlap / expected)


def info_content(text: str) -> float:
    why_count = len(EXPLANATORY_RE.findall(text or ""))
    what_count = len(DESCRIPTIVE_RE.findall(text or ""))
    if why_count > 0:
        return clamp_unit(why_count / (why_count + what_count + 1) * EXPLANATORY_BOOST)
    return clamp_unit(min(NO_CONNECTIVE_CEILING, len(text or "") / NO_CONNECTIVE_LENGTH))


def elaboration(text: str) -> float:
    return clamp_unit(len(text or "") / ELABORATION_LENGTH)


def calculate_rqs(learner_text: str, agent_question: str, reference_text: str = "") -> RQSResult:
    """Score one learner utterance against the question that prompted it.

    ``reference_text`` is accepted for interface stability; the lexical
    heuristic does not consult it.
    """

    signals = {
        "sentence_quality": sentence_quality(learner_text),
        "relevance": relevance(learner_text, agent_question),
        "info_content": info_content(learner_text),
        "elaboration": elaboration(learner_text),
    }
    total = sum(signals[name] * weight for name, weight in WEIGHTS.items())
    return RQSResult(
        score=clamp_unit(round_half_up(total, 2)),
        signals=RQSSignals(**{name: clamp_unit(round_half_up(value, 2)) for name, value in signals.items()}),
    )


def average_rqs(history: list[RQSResult]) -> float:
    """Mean session RQS; 0.5 when no exchange has been scored yet."""

    if not history:
        return NO_HISTORY_RQS
    return sum(result.score for result in history) / len(history)
