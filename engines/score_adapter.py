"""Order-preserving conversion between the legacy 0-100 and SOLO 1-5 scales."""

from __future__ import annotations

from schemas import LegacyCompatScore, SoloScore
from engines.text_signals import round_half_up

LEGACY_TO_SOLO_BANDS = ((90, 5), (75, 4), (60, 3), (45, 2))

_DIMENSION_MAP = {
    "coverage": "completeness",
    "depth": "depth",
    "clarity": "clarity",
    "structural_coherence": "structural_coherence",
    "spontaneity": "pedagogical_insight",
}


def legacy_to_solo(value: float) -> int:
    for threshold, band in LEGACY_TO_SOLO_BANDS:
        if value >= threshold:
            return band
    return 1


def solo_to_legacy(value: float) -> int:
    return int(round_half_up(((value - 1) / 4) * 100))


def _legacy_grade_from_solo(grade: str, total: int) -> str:
    if grade == "A":
        return "S" if total >= 90 else "A"
    if grade in ("B", "C"):
        return grade
    return "D"


def to_legacy_shape(score: SoloScore) -> LegacyCompatScore:
    """Repackage a SOLO result as the legacy score shape."""

    raw = score.raw.model_dump()
    total = int(round_half_up(score.weighted * 20))
    return LegacyCompatScore(
        **{legacy: solo_to_legacy(raw[solo]) for legacy, solo in _DIMENSION_MAP.items()},
        total=total,
        grade=_legacy_grade_from_solo(score.grade, total),
    )
