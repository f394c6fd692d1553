import itertools
import unittest

import pytest

import db
from schemas import INITIAL_RATING, SkillRating, SoloDimensions
from engines.elo import (
    MAX_RATING,
    MIN_RATING,
    RATED_DIMENSIONS,
    SkillRatingEngine,
    expected_from_rating,
    k_factor,
    summarize_ratings,
    update_rating,
)
from engines.scoring import calc_solo_score


class UpdateRatingTests(unittest.TestCase):
    def test_surprise_moves_rating_by_k(self):
        self.assertEqual(update_rating(1200, 40, 5, 1), 1240)
        self.assertEqual(update_rating(1200, 16, 1, 5), 1184)
        self.assertEqual(update_rating(1200, 40, 3, 3), 1200)

    def test_rating_is_clamped(self):
        self.assertEqual(update_rating(2400, 40, 5, 1), MAX_RATING)
        self.assertEqual(update_rating(400, 40, 1, 5), MIN_RATING)

    def test_bounds_hold_for_every_combination(self):
        for rating, k, observed, expected in itertools.product(
            range(400, 2401, 100), (16, 40), range(1, 6), range(1, 6)
        ):
            with self.subTest(rating=rating, k=k, observed=observed, expected=expected):
                updated = update_rating(rating, k, observed, expected)
                self.assertGreaterEqual(updated, MIN_RATING)
                self.assertLessEqual(updated, MAX_RATING)
                self.assertLessEqual(abs(updated - rating), k)

    def test_k_factor_drops_after_five_sessions(self):
        self.assertEqual([k_factor(n) for n in range(7)], [40, 40, 40, 40, 40, 16, 16])

    def test_expected_value_is_clamped_linear_map(self):
        self.assertEqual(expected_from_rating(800), 1.0)
        self.assertEqual(expected_from_rating(1200), 3.0)
        self.assertEqual(expected_from_rating(1600), 5.0)
        self.assertEqual(expected_from_rating(400), 1.0)
        self.assertEqual(expected_from_rating(2400), 5.0)


class SkillRatingEngineTests(unittest.TestCase):
    def setUp(self):
        self.engine = SkillRatingEngine()

    def test_first_update_from_initial_rating(self):
        updated, change = self.engine.update(SkillRating(topic="gravity", dimension="depth"), 5)
        self.assertEqual(updated.rating, 1220)
        self.assertEqual(updated.session_count, 1)
        self.assertEqual(updated.peak_rating, 1220)
        self.assertEqual(change.delta, 20)
        self.assertEqual(change.expected, 3.0)
        self.assertEqual(change.k_factor, 40)

    def test_established_pairs_use_the_smaller_k(self):
        rating = SkillRating(topic="gravity", dimension="depth", session_count=5, rating=1300, peak_rating=1400)
        updated, change = self.engine.update(rating, 1)
        self.assertEqual(change.k_factor, 16)
        self.assertLess(updated.rating, 1300)
        self.assertEqual(updated.peak_rating, 1400)

    def test_apply_session_updates_five_dimensions_and_overall(self):
        score = calc_solo_score(
            SoloDimensions(completeness=5, depth=5, clarity=5, structural_coherence=5, pedagogical_insight=5),
            "concept",
        )
        existing = [SkillRating(topic="gravity", dimension="depth", rating=1500, session_count=2, peak_rating=1500)]

        updated, changes = self.engine.apply_session(
            "gravity", existing, self.engine.observations_from_score(score)
        )

        self.assertEqual([record.dimension for record in updated], list(RATED_DIMENSIONS))
        by_dim = {record.dimension: record for record in updated}
        self.assertEqual(by_dim["overall"].rating, 1220)
        self.assertEqual(by_dim["depth"].session_count, 3)
        self.assertEqual(len(changes), 6)
        # Caller-owned input is left untouched.
        self.assertEqual(existing[0].rating, 1500)

    def test_missing_observations_are_skipped(self):
        updated, changes = self.engine.apply_session("gravity", [], {"depth": 4, "clarity": None})
        self.assertEqual([record.dimension for record in updated], ["depth"])
        self.assertEqual(changes[0].new_rating, 1210)


class SummarizeRatingsTests(unittest.TestCase):
    def test_empty_summary_uses_the_initial_rating(self):
        self.assertEqual(
            summarize_ratings([]),
            {"avg_rating": INITIAL_RATING, "total_topics": 0, "peak_rating": INITIAL_RATING},
        )

    def test_average_only_counts_overall_rows(self):
        ratings = [
            SkillRating(topic="gravity", dimension="overall", rating=1300, peak_rating=1310),
            SkillRating(topic="tides", dimension="overall", rating=1105, peak_rating=1200),
            SkillRating(topic="tides", dimension="depth", rating=1500, peak_rating=1520),
        ]
        self.assertEqual(
            summarize_ratings(ratings),
            {"avg_rating": 1203, "total_topics": 2, "peak_rating": 1520},
        )


@pytest.mark.usefixtures("temp_db")
def test_stored_rating_round_trip():
    assert db.get_skill_rating("learner-1", "gravity", "depth") is None

    db.upsert_skill_rating("learner-1", SkillRating(topic="gravity", dimension="depth", rating=1250, peak_rating=1250))
    db.upsert_skill_rating(
        "learner-1",
        SkillRating(topic="gravity", dimension="depth", rating=1230, session_count=2, peak_rating=1230),
    )

    stored = db.get_skill_rating("learner-1", "gravity", "depth")
    assert stored.rating == 1230
    assert stored.session_count == 2
    assert stored.peak_rating == 1250
    assert db.get_skill_rating("learner-2", "gravity", "depth") is None
