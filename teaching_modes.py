"""Teaching-mode registry: questioning guides and per-model weight profiles."""

from __future__ import annotations

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Sequence

LEGACY_DIMENSIONS: tuple[str, ...] = (
    "coverage",
    "depth",
    "clarity",
    "structural_coherence",
    "spontaneity",
)

SOLO_DIMENSIONS: tuple[str, ...] = (
    "completeness",
    "depth",
    "clarity",
    "structural_coherence",
    "pedagogical_insight",
)


class TeachingModeConfigError(ValueError):
    """Raised when a teaching-mode definition contains invalid data."""


@dataclass(frozen=True)
class TeachingMode:
    """Immutable representation of a teaching mode."""

    id: str
    label: str
    guide: str
    legacy_weights: Mapping[str, float]
    solo_weights: Mapping[str, float]


# Legacy weight profiles are shared between modes; SOLO tables are per mode.
_LEGACY_DEFAULT = {
    "coverage": 0.25,
    "depth": 0.30,
    "clarity": 0.20,
    "structural_coherence": 0.15,
    "spontaneity": 0.10,
}
_LEGACY_PROCEDURE = {
    "coverage": 0.30,
    "depth": 0.20,
    "clarity": 0.20,
    "structural_coherence": 0.25,
    "spontaneity": 0.05,
}
_LEGACY_CONCEPT = {
    "coverage": 0.20,
    "depth": 0.35,
    "clarity": 0.20,
    "structural_coherence": 0.10,
    "spontaneity": 0.15,
}

_RAW_MODES = [
    {
        "id": "whynot",
        "label": "Causal / why",
        "guide": (
            "Focus on causes and the 'why'. Answer shallow explanations with 'but why does that happen?' "
            "and test understanding with counterexamples."
        ),
        "legacy_weights": _LEGACY_CONCEPT,
        "solo_weights": {
            "completeness": 0.15,
            "depth": 0.30,
            "clarity": 0.15,
            "structural_coherence": 0.20,
            "pedagogical_insight": 0.20,
        },
    },
    {
        "id": "vocabulary",
        "label": "Vocabulary",
        "guide": (
            "Focus on precise definitions and concrete examples. Ask 'what would be an example of that?' "
            "and check the difference between synonyms and antonyms."
        ),
        "legacy_weights": _LEGACY_DEFAULT,
        "solo_weights": {
            "completeness": 0.20,
            "depth": 0.15,
            "clarity": 0.30,
            "structural_coherence": 0.10,
            "pedagogical_insight": 0.25,
        },
    },
    {
        "id": "concept",
        "label": "Concept",
        "guide": (
            "Focus on relationships between concepts and the overall structure. Ask 'how do A and B differ?' "
            "and 'what does the big picture look like?'"
        ),
        "legacy_weights": _LEGACY_CONCEPT,
        "solo_weights": {
            "completeness": 0.20,
            "depth": 0.25,
            "clarity": 0.20,
            "structural_coherence": 0.25,
            "pedagogical_insight": 0.10,
        },
    },
    {
        "id": "procedure",
        "label": "Procedure",
        "guide": (
            "Focus on the correct order of steps. Ask 'what comes next?' and 'what happens if that step fails?' "
            "to check practical understanding."
        ),
        "legacy_weights": _LEGACY_PROCEDURE,
        "solo_weights": {
            "completeness": 0.25,
            "depth": 0.15,
            "clarity": 0.25,
            "structural_coherence": 0.20,
            "pedagogical_insight": 0.15,
        },
    },
]

DEFAULT_GUIDE = "Dig into meaning, reasons and structure."


def _validate_weights(mode_id: str, weights: Mapping[str, float], dimensions: Sequence[str]) -> Mapping[str, float]:
    if set(weights) != set(dimensions):
        raise TeachingModeConfigError(
            f"Mode {mode_id} weights must cover exactly {', '.join(dimensions)}"
        )
    ordered = {}
    for dim in dimensions:
        try:
            value = float(weights[dim])
        except (TypeError, ValueError) as exc:
            raise TeachingModeConfigError(f"Mode {mode_id} has non-numeric weight for {dim}") from exc
        if value < 0:
            raise TeachingModeConfigError(f"Mode {mode_id} weight for {dim} must be non-negative")
        ordered[dim] = value
    if not math.isclose(sum(ordered.values()), 1.0, abs_tol=1e-9):
        raise TeachingModeConfigError(f"Mode {mode_id} weights must sum to 1.0")
    return MappingProxyType(ordered)


class TeachingModeRegistry:
    """Validated lookup of the four fixed teaching modes."""

    def __init__(self, raw_modes: Iterable[Mapping] = _RAW_MODES) -> None:
        self._modes: List[TeachingMode] = []
        self.load(raw_modes)

    # ------------------------------------------------------------------
    def load(self, raw_modes: Iterable[Mapping]) -> None:
        modes: List[TeachingMode] = []
        seen: set[str] = set()
        for idx, entry in enumerate(raw_modes, start=1):
            mode_id = str(entry.get("id") or "").strip()
            if not mode_id:
                raise TeachingModeConfigError(f"Entry #{idx} is missing a non-empty 'id'")
            if mode_id in seen:
                raise TeachingModeConfigError(f"Duplicate teaching mode id detected: {mode_id}")
            seen.add(mode_id)

            modes.append(
                TeachingMode(
                    id=mode_id,
                    label=str(entry.get("label") or mode_id).strip(),
                    guide=str(entry.get("guide") or DEFAULT_GUIDE).strip(),
                    legacy_weights=_validate_weights(
                        mode_id, entry.get("legacy_weights") or {}, LEGACY_DIMENSIONS
                    ),
                    solo_weights=_validate_weights(
                        mode_id, entry.get("solo_weights") or {}, SOLO_DIMENSIONS
                    ),
                )
            )
        if not modes:
            raise TeachingModeConfigError("At least one teaching mode must be defined")
        self._modes = modes

    # ------------------------------------------------------------------
    def ids(self) -> tuple[str, ...]:
        return tuple(mode.id for mode in self._modes)

    def get(self, mode_id: Optional[str]) -> Optional[TeachingMode]:
        for mode in self._modes:
            if mode.id == mode_id:
                return mode
        return None

    def guide(self, mode_id: Optional[str]) -> str:
        mode = self.get(mode_id)
        return mode.guide if mode else DEFAULT_GUIDE

    def legacy_weights(self, mode_id: Optional[str]) -> Mapping[str, float]:
        """Return the legacy profile; unknown modes fall back to the default profile."""

        mode = self.get(mode_id)
        return mode.legacy_weights if mode else MappingProxyType(dict(_LEGACY_DEFAULT))

    def solo_weights(self, mode_id: Optional[str]) -> Mapping[str, float]:
        """Return the SOLO table; unknown modes use the ``concept`` table."""

        mode = self.get(mode_id) or self.get("concept")
        if mode is None:
            raise TeachingModeConfigError("The 'concept' teaching mode must be defined")
        return mode.solo_weights

    def __iter__(self):
        return iter(self._modes)


TEACHING_MODES = TeachingModeRegistry()
"""Singleton registry used throughout the application."""
