"""Knowledge-building vs. knowledge-telling classification."""

from __future__ import annotations

from typing import Iterable, Sequence

from schemas import KBMode, KBResult, KBSignals
from engines.text_signals import BUILDING_CONNECTIVE_RE, content_words, sentences

MIN_SENTENCE_CHARS = 3
WELL_FORMED_AVG_CHARS = 15
WELL_FORMED_MIN_SENTENCES = 2
NEW_WORD_SHARE = 0.3
REPETITION_SHARE = 0.7
MIN_NEW_WORDS = 3
DOMINANCE_RATIO = 1.5


def _classify(signals: KBSignals) -> KBMode:
    hits = signals.count()
    if hits >= 3:
        return "building"
    if hits <= 1:
        return "telling"
    return "mixed"


def detect_knowledge_building(text: str, previous_texts: Sequence[str]) -> KBResult:
    """Classify one learner utterance against everything the learner said before."""

    parts = sentences(text, MIN_SENTENCE_CHARS)
    avg_len = sum(len(part) for part in parts) / max(1, len(parts))
    well_formed = avg_len > WELL_FORMED_AVG_CHARS and len(parts) >= WELL_FORMED_MIN_SENTENCES

    words = content_words(text)
    seen = set()
    for previous in previous_texts:
        seen.update(content_words(previous))
    new_words = [word for word in words if word not in seen]
    relevant = len(new_words) > len(words) * NEW_WORD_SHARE

    informative = bool(BUILDING_CONNECTIVE_RE.search(text or ""))

    lowered_previous = [(previous or "").lower() for previous in previous_texts]
    repeated = [
        previous
        for previous in lowered_previous
        if sum(1 for word in words if word in previous) > len(words) * REPETITION_SHARE
    ]
    non_repetitive = not repeated and len(new_words) >= MIN_NEW_WORDS

    signals = KBSignals(
        well_formed=well_formed,
        relevant=relevant,
        informative=informative,
        non_repetitive=non_repetitive,
    )
    return KBResult(mode=_classify(signals), signals=signals)


def aggregate_session_mode(modes: Iterable[str]) -> KBMode:
    """Session-level mode: one side must outnumber the other by 1.5x."""

    building = telling = 0
    for mode in modes:
        if mode == "building":
            building += 1
        elif mode == "telling":
            telling += 1
    if building > telling * DOMINANCE_RATIO:
        return "building"
    if telling > building * DOMINANCE_RATIO:
        return "telling"
    return "mixed"
