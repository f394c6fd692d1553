import os
import unittest

import pytest

import env_validation
from env_validation import get_env_bool, validate_environment
from teaching_modes import (
    LEGACY_DIMENSIONS,
    TEACHING_MODES,
    TeachingModeConfigError,
    TeachingModeRegistry,
)


def test_defaults_are_applied(monkeypatch):
    monkeypatch.setenv("DB_PATH", "")
    monkeypatch.setenv("LLM_URL", "")
    validate_environment()

    assert os.environ["DB_PATH"] == "data.db"
    assert os.environ["LLM_URL"].startswith("http://")


@pytest.mark.parametrize(
    "name,value",
    [
        ("LLM_URL", "ftp://model.local"),
        ("USE_V3_SCORING", "maybe"),
        ("LLM_TIMEOUT", "soon"),
    ],
)
def test_invalid_values_raise(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(env_validation.EnvironmentError):
        validate_environment()


@pytest.mark.parametrize("raw,expected", [("true", True), ("ON", True), ("1", True), ("false", False), ("0", False)])
def test_get_env_bool(monkeypatch, raw, expected):
    monkeypatch.setenv("USE_V3_SCORING", raw)
    assert get_env_bool("USE_V3_SCORING") is expected


def test_get_env_bool_default(monkeypatch):
    monkeypatch.delenv("USE_V3_SCORING", raising=False)
    assert get_env_bool("USE_V3_SCORING", default=True) is True


class TeachingModeRegistryTests(unittest.TestCase):
    def _profile(self, **overrides):
        weights = {"coverage": 0.2, "depth": 0.2, "clarity": 0.2, "structural_coherence": 0.2, "spontaneity": 0.2}
        weights.update(overrides)
        return weights

    def _solo(self):
        return {
            "completeness": 0.2,
            "depth": 0.2,
            "clarity": 0.2,
            "structural_coherence": 0.2,
            "pedagogical_insight": 0.2,
        }

    def test_builtin_modes(self):
        self.assertEqual(TEACHING_MODES.ids(), ("whynot", "vocabulary", "concept", "procedure"))
        self.assertEqual(TEACHING_MODES.legacy_weights("procedure")["coverage"], 0.30)
        self.assertEqual(TEACHING_MODES.legacy_weights("whynot"), TEACHING_MODES.legacy_weights("concept"))

    def test_unknown_mode_falls_back(self):
        self.assertEqual(TEACHING_MODES.legacy_weights("nope")["depth"], 0.30)
        self.assertEqual(TEACHING_MODES.solo_weights("nope"), TEACHING_MODES.solo_weights("concept"))
        self.assertTrue(TEACHING_MODES.guide("nope"))

    def test_weights_must_sum_to_one(self):
        with self.assertRaises(TeachingModeConfigError):
            TeachingModeRegistry(
                [{"id": "concept", "legacy_weights": self._profile(depth=0.5), "solo_weights": self._solo()}]
            )

    def test_weights_must_cover_every_dimension(self):
        partial = {dim: 0.25 for dim in LEGACY_DIMENSIONS[:4]}
        with self.assertRaises(TeachingModeConfigError):
            TeachingModeRegistry([{"id": "concept", "legacy_weights": partial, "solo_weights": self._solo()}])

    def test_duplicate_ids_are_rejected(self):
        entry = {"id": "concept", "legacy_weights": self._profile(), "solo_weights": self._solo()}
        with self.assertRaises(TeachingModeConfigError):
            TeachingModeRegistry([entry, dict(entry)])

    def test_profiles_are_read_only(self):
        with self.assertRaises(TypeError):
            TEACHING_MODES.legacy_weights("concept")["depth"] = 1.0
