from olpm_cbt.models.question_model import TestDefinition
from olpm_cbt.models.session_state import SubmissionResult
from olpm_cbt.services import exam_service

from conftest import make_test_payload


def test_time_taken_is_clamped() -> None:
    assert exam_service.time_taken_seconds(600, 0) == 600
    assert exam_service.time_taken_seconds(600, -5) == 600
    assert exam_service.time_taken_seconds(600, 700) == 0
    assert exam_service.time_taken_seconds(600, 420) == 180


def test_clamp_remaining() -> None:
    assert exam_service.clamp_remaining(-3, 60) == 0
    assert exam_service.clamp_remaining(61, 60) == 60
    assert exam_service.clamp_remaining(30, 60) == 30


def test_payload_keeps_unanswered_as_null() -> None:
    test = TestDefinition.model_validate(make_test_payload())
    payload = exam_service.build_submission_payload(test.questions, {"2": "C"}, 12)

    assert payload.model_dump(mode="json") == {
        "answers": {"1": None, "2": "C", "3": None},
        "time_taken_seconds": 12,
    }
    assert exam_service.unanswered_question_ids(test.questions, {"2": "C"}) == ["1", "3"]


def test_percentage_and_grade_bands() -> None:
    assert exam_service.calculate_percentage(3, 4) == 75.0
    assert exam_service.calculate_percentage(1, 0) == 0.0
    assert exam_service.grade_for(80.0) == "Excellent"
    assert exam_service.grade_for(79.99) == "Good"
    assert exam_service.grade_for(40.0) == "Average"
    assert exam_service.grade_for(39.9) == "Needs Improvement"
    assert exam_service.is_passed(60.0)
    assert not exam_service.is_passed(59.99)


def test_complete_result_fills_only_missing_fields() -> None:
    filled = exam_service.complete_result(SubmissionResult(score=1), total_questions=4)
    assert filled.total_questions == 4
    assert filled.percentage == 25.0
    assert filled.grade == "Needs Improvement"
    assert filled.passed is False

    server = SubmissionResult(score=1, percentage=90.0, grade="Custom", passed=True)
    kept = exam_service.complete_result(server, total_questions=4)
    assert kept.percentage == 90.0
    assert kept.grade == "Custom"
    assert kept.passed is True


def test_format_time_and_low_time() -> None:
    assert exam_service.format_time(125) == "2:05"
    assert exam_service.format_time(0) == "0:00"
    assert exam_service.format_time(-4) == "0:00"
    assert exam_service.is_low_time(300)
    assert not exam_service.is_low_time(301)
    assert not exam_service.is_low_time(0)
