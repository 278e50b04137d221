import pytest
from pydantic import ValidationError

from olpm_cbt.models.question_model import Question, TestDefinition

from conftest import make_test_payload


def test_question_accepts_model_shape() -> None:
    q = Question(id="q1", text="2 + 2?", options={"D": "5", "C": "4", "B": "3", "A": "2"})
    assert list(q.options) == ["A", "B", "C", "D"]


def test_question_requires_exactly_four_options() -> None:
    with pytest.raises(ValidationError):
        Question(id="q1", text="?", options={"A": "x", "B": "y"})
    with pytest.raises(ValidationError):
        Question(id="q1", text="?", options={"A": "x", "B": "y", "C": "z", "E": "w"})


def test_test_definition_converts_minutes() -> None:
    test = TestDefinition.model_validate(make_test_payload())
    assert test.duration_seconds == 600
    assert test.question_ids() == ["1", "2", "3"]
    assert test.has_question("2")
    assert not test.has_question("9")


def test_test_definition_rejects_bad_values() -> None:
    empty = make_test_payload()
    empty["questions"] = []
    with pytest.raises(ValidationError):
        TestDefinition.model_validate(empty)

    zero = make_test_payload(duration_seconds=0)
    with pytest.raises(ValidationError):
        TestDefinition.model_validate(zero)

    duplicated = make_test_payload()
    duplicated["questions"][1]["id"] = 1
    with pytest.raises(ValidationError):
        TestDefinition.model_validate(duplicated)


def test_test_definition_is_immutable() -> None:
    test = TestDefinition.model_validate(make_test_payload())
    with pytest.raises(ValidationError):
        test.duration_seconds = 1


def test_test_definition_keeps_fractional_minutes() -> None:
    payload = make_test_payload()
    payload["duration_minutes"] = 1.5
    assert TestDefinition.model_validate(payload).duration_seconds == 90

    payload["duration_minutes"] = "2.5"
    assert TestDefinition.model_validate(payload).duration_seconds == 150
