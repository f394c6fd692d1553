"""Shared lexical helpers for the per-turn signal detectors."""

from __future__ import annotations

import math
import re
from typing import List

# CJK and kana are kept as word material so Japanese utterances are not erased.
_NON_WORD_RE = re.compile(r"[^\w\u3040-\u9fff]+")
_NON_LETTER_RE = re.compile(r"[^A-Za-z\u3040-\u9fff]+")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?\n。！？]")

EXPLANATORY_RE = re.compile(
    r"\b(?:because|therefore|thus|hence|so that|for example|for instance|such as|mechanism|"
    r"reasons?|causes?|caused|which means|this means|in order to|as a result|that is why|"
    r"due to|consequently|leads? to|results? in)\b"
    r"|なぜ|だから|つまり|例えば|具体的|原因|理由|仕組み|によって|ことで|のため",
    re.IGNORECASE,
)

DESCRIPTIVE_RE = re.compile(
    r"\b(?:is|are|was|were|has|have|does|do|thing|things|stuff)\b"
    r"|です|ます|ある|いる|する|なる|もの|こと",
    re.IGNORECASE,
)

# Broader set used for the knowledge-building "informative" signal.
BUILDING_CONNECTIVE_RE = re.compile(
    r"\b(?:because|therefore|thus|so that|for example|for instance|which means|in order to|"
    r"due to|principle|mechanism|relationship|relates? to|depends? on|as a result)\b"
    r"|なぜ|だから|つまり|例えば|ように|によって|ため|原理|仕組み|関係",
    re.IGNORECASE,
)


def content_words(text: str, min_length: int = 3) -> List[str]:
    """Lower-cased tokens of at least ``min_length`` characters, punctuation removed."""

    cleaned = _NON_WORD_RE.sub(" ", (text or "").lower())
    return [word for word in cleaned.split() if len(word) >= min_length]


def keyword_tokens(text: str, min_length: int = 2) -> List[str]:
    """Letter-only tokens used for question/answer relevance."""

    cleaned = _NON_LETTER_RE.sub(" ", (text or "").lower())
    return [word for word in cleaned.split() if len(word) >= min_length]


def sentences(text: str, min_length: int) -> List[str]:
    """Sentences whose stripped length exceeds ``min_length``."""

    return [part.strip() for part in _SENTENCE_SPLIT_RE.split(text or "") if len(part.strip()) > min_length]


def overlaps(word: str, candidates: List[str]) -> bool:
    return any(word in other or other in word for other in candidates)


def clamp_unit(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like ``Math.round`` does: halves always go up."""

    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor
