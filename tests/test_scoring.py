import pytest

from schemas import LegacyDimensions, SoloDimensions
from teaching_modes import TEACHING_MODES
from engines.base import ScoringContext
from engines.score_adapter import legacy_to_solo, solo_to_legacy, to_legacy_shape
from engines.scoring import (
    LEGACY_A_PREFIX,
    LEGACY_PERFECT,
    LEGACY_SUGGESTIONS,
    SOLO_SUGGESTIONS,
    TELLING_HINT,
    LegacyScoringStrategy,
    SoloScoringStrategy,
    calc_legacy_score,
    calc_solo_score,
    get_scoring_strategy,
    penalty_breakdown,
)


def _legacy(value=80, **overrides):
    values = dict.fromkeys(("coverage", "depth", "clarity", "structural_coherence", "spontaneity"), value)
    values.update(overrides)
    return LegacyDimensions(**values)


def _solo(value=3, **overrides):
    values = dict.fromkeys(
        ("completeness", "depth", "clarity", "structural_coherence", "pedagogical_insight"), value
    )
    values.update(overrides)
    return SoloDimensions(**values)


# ---------- legacy ----------
def test_legacy_without_penalties_keeps_raw_values():
    result = calc_legacy_score(_legacy(80), ScoringContext(mode="concept", learner_turns=6))
    assert result.penalty.total == 0
    assert result.adjusted == _legacy(80)
    assert result.total == 80
    assert result.grade == "A"
    assert result.insight.startswith(LEGACY_A_PREFIX)


def test_penalty_components_add_up():
    breakdown = penalty_breakdown(leading=15, abandonment_count=1, learner_turns=2)
    assert (breakdown.leading, breakdown.gave_up, breakdown.too_quick) == (15, 12, 15)
    assert breakdown.total == 42

    result = calc_legacy_score(
        _legacy(80),
        ScoringContext(mode="concept", leading_penalty_total=15, abandonment_count=1, learner_turns=2),
    )
    assert result.adjusted.coverage == 38


def test_adjusted_values_never_drop_below_five():
    result = calc_legacy_score(
        _legacy(10),
        ScoringContext(mode="procedure", leading_penalty_total=60, abandonment_count=3, learner_turns=1),
    )
    assert set(result.adjusted.model_dump().values()) == {5}
    assert result.total == 5
    assert result.grade == "D"


def test_more_penalty_never_raises_the_total():
    raw = _legacy(70, depth=88, spontaneity=41)
    previous = None
    for leading in range(0, 120, 5):
        total = calc_legacy_score(raw, ScoringContext(mode="whynot", leading_penalty_total=leading, learner_turns=6)).total
        if previous is not None:
            assert total <= previous
        previous = total


def test_perfect_session_gets_the_congratulation():
    result = calc_legacy_score(_legacy(95), ScoringContext(mode="vocabulary", learner_turns=6))
    assert result.grade == "S"
    assert result.insight == LEGACY_PERFECT


def test_lowest_dimension_drives_the_suggestion():
    result = calc_legacy_score(_legacy(60, clarity=40), ScoringContext(mode="concept", learner_turns=6))
    assert result.grade == "C"
    assert result.insight == LEGACY_SUGGESTIONS["clarity"]


def test_legacy_weights_depend_on_mode():
    raw = _legacy(50, coverage=100)
    procedure = calc_legacy_score(raw, ScoringContext(mode="procedure", learner_turns=6)).total
    concept = calc_legacy_score(raw, ScoringContext(mode="concept", learner_turns=6)).total
    assert procedure == 65
    assert concept == 60


def test_legacy_parse_raw_clamps_and_defaults():
    raw = LegacyScoringStrategy().parse_raw(
        {
            "raw_coverage": "88",
            "depth": None,
            "clarity": 150,
            "structural_coherence": "abc",
            "spontaneity": 72.5,
        }
    )
    assert raw == LegacyDimensions(coverage=88, depth=65, clarity=100, structural_coherence=65, spontaneity=73)
    assert LegacyScoringStrategy().parse_raw(None) == _legacy(65)


# ---------- SOLO ----------
def test_solo_top_marks():
    result = calc_solo_score(_solo(5), "concept")
    assert result.weighted == 5.0
    assert result.grade == "A"
    assert result.conjunctive_pass
    assert "stands out" in result.insight


def test_gate_is_reported_but_never_changes_the_grade():
    result = calc_solo_score(_solo(5, pedagogical_insight=2), "concept")
    assert result.weighted == pytest.approx(4.7)
    assert result.grade == "A"
    assert not result.conjunctive_pass


def test_gate_allows_twos_below_grade_b():
    result = calc_solo_score(_solo(3, pedagogical_insight=2), "concept")
    assert result.weighted == pytest.approx(2.9)
    assert result.grade == "C"
    assert result.conjunctive_pass


def test_all_ones_fail():
    result = calc_solo_score(_solo(1), "procedure")
    assert result.grade == "F"
    assert not result.conjunctive_pass


def test_a_single_one_fails_the_gate_despite_a_high_average():
    result = calc_solo_score(_solo(5, clarity=1), "concept")
    assert result.weighted == pytest.approx(4.2)
    assert result.grade == "A"
    assert not result.conjunctive_pass


def test_fractional_dimensions_are_scored_as_given():
    result = calc_solo_score(_solo(4.5, pedagogical_insight=2.5), "concept")
    assert result.raw.pedagogical_insight == 2.5
    assert result.weighted == pytest.approx(4.3)
    assert result.grade == "A"
    assert not result.conjunctive_pass


def test_telling_sessions_get_an_extra_hint():
    result = calc_solo_score(_solo(3, completeness=2), "concept", kb_mode="telling", rqs_avg=0.3)
    assert result.insight.startswith(SOLO_SUGGESTIONS["completeness"])
    assert result.insight.endswith(TELLING_HINT.strip())
    assert result.kb_mode == "telling"
    assert result.rqs_avg == 0.3


def test_unknown_mode_uses_concept_table():
    raw = _solo(4, depth=2, pedagogical_insight=5)
    assert calc_solo_score(raw, "unknown").weighted == calc_solo_score(raw, "concept").weighted


def test_solo_parse_raw_rounds_and_clamps():
    raw = SoloScoringStrategy().parse_raw(
        {"completeness": 4.5, "depth": 0, "clarity": "9", "structural_coherence": True}
    )
    assert raw == SoloDimensions(
        completeness=5, depth=1, clarity=5, structural_coherence=3, pedagogical_insight=3
    )


def test_solo_weights_are_valid_for_every_mode():
    for mode in TEACHING_MODES:
        assert sum(mode.solo_weights.values()) == pytest.approx(1.0)
        assert sum(mode.legacy_weights.values()) == pytest.approx(1.0)


# ---------- adapter ----------
@pytest.mark.parametrize("value,expected", [(100, 5), (90, 5), (89, 4), (75, 4), (60, 3), (45, 2), (44, 1), (0, 1)])
def test_legacy_to_solo_bands(value, expected):
    assert legacy_to_solo(value) == expected


def test_solo_to_legacy_is_linear():
    assert [solo_to_legacy(v) for v in (1, 2, 3, 4, 5)] == [0, 25, 50, 75, 100]


def test_round_trip_of_a_top_legacy_value():
    assert solo_to_legacy(legacy_to_solo(90)) == 100


def test_legacy_shape_maps_grade_and_total():
    perfect = to_legacy_shape(calc_solo_score(_solo(5), "concept"))
    assert perfect.total == 100
    assert perfect.grade == "S"
    assert perfect.coverage == 100
    assert perfect.spontaneity == 100

    solid = to_legacy_shape(calc_solo_score(_solo(4), "concept"))
    assert solid.total == 80
    assert solid.grade == "B"

    weak = to_legacy_shape(calc_solo_score(_solo(1), "concept"))
    assert weak.grade == "D"


# ---------- strategy selection ----------
def test_strategy_selection():
    assert get_scoring_strategy(False).version == "v2"
    assert get_scoring_strategy(True).version == "v3"


def test_solo_package_reports_no_penalties():
    package = SoloScoringStrategy().score(
        _solo(4),
        ScoringContext(mode="concept", leading_penalty_total=30, abandonment_count=2, learner_turns=1),
    )
    assert package.fields["leading_penalty"] == 0
    assert package.fields["gave_up_penalty"] == 0
    assert package.fields["score_v3"].weighted == 4.0
    assert package.fields["score"].total == 80
