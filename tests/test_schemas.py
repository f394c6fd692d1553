import pytest
from pydantic import ValidationError

from schemas import CompleteResponse, QuitResponse, SkillRating, Turn, extract_structured_block


def test_fenced_block_is_extracted():
    narrative, payload = extract_structured_block('Great work!\n```json\n{"coverage": 80}\n```')
    assert narrative == "Great work!"
    assert payload == {"coverage": 80}


def test_bare_block_is_extracted():
    narrative, payload = extract_structured_block('Nice job {"depth": 3, "gaps": ["x"]}')
    assert narrative == "Nice job"
    assert payload == {"depth": 3, "gaps": ["x"]}


def test_balanced_scan_skips_prose_braces():
    narrative, payload = extract_structured_block('Text {a} and then {"x": 1}')
    assert narrative == "Text"
    assert payload == {"x": 1}


def test_malformed_block_returns_none():
    narrative, payload = extract_structured_block("Hello {not json")
    assert narrative == "Hello"
    assert payload is None


def test_non_object_json_is_rejected():
    _, payload = extract_structured_block("```json\n[1, 2, 3]\n```")
    assert payload is None


def test_plain_text_is_all_narrative():
    assert extract_structured_block("  just words  ") == ("just words", None)


@pytest.mark.parametrize("role,expected", [("user", "learner"), ("AI", "agent"), ("assistant", "agent")])
def test_turn_roles_are_normalised(role, expected):
    assert Turn(role=role, text="hi").role == expected


def test_unknown_turn_role_is_rejected():
    with pytest.raises(ValidationError):
        Turn(role="narrator", text="hi")


def test_skill_rating_bounds():
    assert SkillRating(topic="t", dimension="depth").rating == 1200
    with pytest.raises(ValidationError):
        SkillRating(topic="t", dimension="depth", rating=3000)


def test_quit_outcome_has_no_score():
    outcome = QuitResponse(message="bye", consecutive_fail=3).model_dump()
    assert outcome["type"] == "quit"
    assert outcome["abandoned"] is True
    assert "score" not in outcome
    assert "score" in CompleteResponse.model_fields
