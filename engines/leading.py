"""Leading-question detection for the legacy scoring path."""

from __future__ import annotations

import re

from engines.text_signals import content_words, overlaps

LEADING_PATTERNS = (
    re.compile(r"that means .{2,40},? right\s*\?", re.IGNORECASE),
    re.compile(r"so you(?:'re| are) saying .{2,40}\?", re.IGNORECASE),
    re.compile(r"in other words,? .{2,40}\?", re.IGNORECASE),
    re.compile(r"\bis it .{1,30} or .{1,30}\?", re.IGNORECASE),
    re.compile(r"それって.{2,12}ですよね"),
    re.compile(r".{2,12}ということですか[？?]"),
    re.compile(r"つまり.{2,12}のことですか"),
    re.compile(r"AかBでいうと"),
)

ECHO_THRESHOLD = 0.6
ECHO_MAX_WORDS = 8

PENALTY_PATTERN_AND_ECHO = 15
PENALTY_ECHO = 10
PENALTY_PATTERN = 8


def echo_ratio(agent_text: str, learner_text: str) -> float:
    """Share of the learner's content words that echo the agent's wording."""

    learner_words = content_words(learner_text)
    if not learner_words:
        return 0.0
    agent_words = content_words(agent_text)
    matched = sum(1 for word in learner_words if overlaps(word, agent_words))
    return matched / len(learner_words)


def has_leading_pattern(agent_text: str) -> bool:
    return any(pattern.search(agent_text or "") for pattern in LEADING_PATTERNS)


def detect_leading(agent_text: str, learner_text: str) -> int:
    """Return the leading penalty (0, 8, 10 or 15) for one agent/learner exchange."""

    if not agent_text or not learner_text:
        return 0
    pattern = has_leading_pattern(agent_text)
    is_echo = (
        echo_ratio(agent_text, learner_text) > ECHO_THRESHOLD
        and len(content_words(learner_text)) < ECHO_MAX_WORDS
    )
    if pattern and is_echo:
        return PENALTY_PATTERN_AND_ECHO
    if pattern:
        return PENALTY_PATTERN
    if is_echo:
        return PENALTY_ECHO
    return 0
