from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from schemas import INITIAL_RATING, SkillRating, SkillRatingChange, SoloScore
from teaching_modes import SOLO_DIMENSIONS
from engines.text_signals import round_half_up

MIN_RATING = 400
MAX_RATING = 2400
K_PROVISIONAL = 40
K_ESTABLISHED = 16
PROVISIONAL_SESSIONS = 5

OVERALL = "overall"
RATED_DIMENSIONS: Tuple[str, ...] = (*SOLO_DIMENSIONS, OVERALL)


def normalize_solo(value: float) -> float:
    return (value - 1) / 4


def update_rating(current: float, k: float, observed: float, expected: float) -> int:
    """Move ``current`` by K times the normalised surprise, clamped to [400, 2400]."""

    delta = int(round_half_up(k * (normalize_solo(observed) - normalize_solo(expected))))
    return int(max(MIN_RATING, min(MAX_RATING, int(current) + delta)))


def k_factor(sessions_completed: int) -> int:
    """40 for a pair's first five rated sessions, 16 afterwards."""

    return K_PROVISIONAL if sessions_completed < PROVISIONAL_SESSIONS else K_ESTABLISHED


def expected_from_rating(rating: float) -> float:
    """Invert the rating into the SOLO value it predicts (800 -> 1, 1200 -> 3, 1600 -> 5)."""

    return max(1.0, min(5.0, 1 + (rating - 800) / 200))


def summarize_ratings(ratings: Iterable[SkillRating]) -> Dict[str, int]:
    """Average overall rating, distinct topic count and best peak across ``ratings``."""

    ratings = list(ratings)
    overall = [rating.rating for rating in ratings if rating.dimension == OVERALL]
    avg_rating = int(round_half_up(sum(overall) / len(overall))) if overall else INITIAL_RATING
    return {
        "avg_rating": avg_rating,
        "total_topics": len({rating.topic for rating in ratings}),
        "peak_rating": max([INITIAL_RATING, *(rating.peak_rating for rating in ratings)]),
    }


class SkillRatingEngine:
    """Pure Elo-style updates; callers own reading and writing the ratings."""

    def update(self, rating: SkillRating, observed: float) -> Tuple[SkillRating, SkillRatingChange]:
        k = k_factor(rating.session_count)
        expected = expected_from_rating(rating.rating)
        new_rating = update_rating(rating.rating, k, observed, expected)
        updated = rating.model_copy(
            update={
                "rating": new_rating,
                "k_factor": k,
                "session_count": rating.session_count + 1,
                "peak_rating": max(rating.peak_rating, new_rating),
            }
        )
        change = SkillRatingChange(
            dimension=rating.dimension,
            old_rating=rating.rating,
            new_rating=new_rating,
            delta=new_rating - rating.rating,
            observed=observed,
            expected=expected,
            k_factor=k,
        )
        return updated, change

    @staticmethod
    def observations_from_score(score: SoloScore) -> Dict[str, float]:
        observations: Dict[str, float] = {dim: float(value) for dim, value in score.raw.model_dump().items()}
        observations[OVERALL] = float(score.weighted)
        return observations

    def apply_session(
        self,
        topic: str,
        ratings: Iterable[SkillRating],
        observations: Mapping[str, Optional[float]],
    ) -> Tuple[List[SkillRating], List[SkillRatingChange]]:
        """Update every rated dimension that has an observation this session."""

        known = {rating.dimension: rating for rating in ratings if rating.topic == topic}
        updated: List[SkillRating] = []
        changes: List[SkillRatingChange] = []
        for dim in RATED_DIMENSIONS:
            observed = observations.get(dim)
            if observed is None:
                continue
            current = known.get(dim) or SkillRating(topic=topic, dimension=dim)
            new_record, change = self.update(current, float(observed))
            updated.append(new_record)
            changes.append(change)
        return updated, changes
