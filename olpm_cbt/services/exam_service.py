"""
services/exam_service.py

시험 제출 준비 및 결과 표시용 비즈니스 로직.
순수 Python 함수로 구성. UI 코드, 전역 상태 변경, 네트워크 호출 없음.
실제 채점(정답 비교)은 서버가 한다. 여기서는 서버가 생략한 파생 값만 보충한다.
"""

from typing import Dict, List, Mapping, Optional

from config import LOW_TIME_WARNING_SECONDS, PASS_PERCENTAGE
from olpm_cbt.models.question_model import Question
from olpm_cbt.models.session_state import SubmissionPayload, SubmissionResult

# 백엔드 결과 조회 쿼리와 동일한 등급 구간
_GRADE_BANDS = (
    (80.0, "Excellent"),
    (60.0, "Good"),
    (40.0, "Average"),
)
_LOWEST_GRADE = "Needs Improvement"


def clamp_remaining(remaining_seconds: int, duration_seconds: int) -> int:
    """남은 시간을 [0, duration] 범위로 보정."""
    return max(0, min(remaining_seconds, duration_seconds))


def time_taken_seconds(duration_seconds: int, remaining_seconds: int) -> int:
    """
    소요 시간 = duration - remaining, [0, duration] 범위로 보정.

    지연된 틱으로 remaining 이 음수가 되어도 duration 을 넘지 않는다.
    """
    return max(0, min(duration_seconds - remaining_seconds, duration_seconds))


def build_submission_payload(
    questions: List[Question],
    answers: Mapping[str, str],
    taken_seconds: int,
) -> SubmissionPayload:
    """
    제출 본문 생성. 문제 순서대로 모든 문제 ID를 포함한다.

    미응답 문제는 None 으로 보낸다. 기본 답을 임의로 채우지 않는다.
    """
    return SubmissionPayload(
        answers={q.id: answers.get(q.id) for q in questions},
        time_taken_seconds=taken_seconds,
    )


def unanswered_question_ids(
    questions: List[Question],
    answers: Mapping[str, str],
) -> List[str]:
    """미응답 문제 ID 목록. 원본 순서 유지."""
    return [q.id for q in questions if q.id not in answers]


def calculate_percentage(score: int, total: int) -> float:
    """
    정답률(0.0 ~ 100.0), 소수점 둘째 자리 반올림.
    total 이 0이면 0.0 반환.
    """
    if total <= 0:
        return 0.0
    return round(score / total * 100, 2)


def grade_for(percentage: float) -> str:
    """정답률 → 등급 라벨."""
    for threshold, label in _GRADE_BANDS:
        if percentage >= threshold:
            return label
    return _LOWEST_GRADE


def is_passed(percentage: float, pass_percentage: float = PASS_PERCENTAGE) -> bool:
    """
    합격 여부를 반환한다.

    Args:
        percentage:      calculate_percentage()가 반환한 정답률.
        pass_percentage: 합격 기준 (기본값 60.0%).
    """
    return percentage >= pass_percentage


def complete_result(result: SubmissionResult, total_questions: int) -> SubmissionResult:
    """
    서버 응답에 없는 파생 필드(total_questions, percentage, grade, passed)를 보충한 사본.
    서버가 준 값은 덮어쓰지 않는다.
    """
    total = result.total_questions if result.total_questions is not None else total_questions
    percentage = result.percentage
    if percentage is None:
        percentage = calculate_percentage(result.score, total)

    update: Dict[str, object] = {"total_questions": total, "percentage": percentage}
    if result.grade is None:
        update["grade"] = grade_for(percentage)
    if result.passed is None:
        update["passed"] = is_passed(percentage)
    return result.model_copy(update=update)


def format_time(seconds: int) -> str:
    """초 → 'm:ss' (예: 125 → '2:05')."""
    seconds = max(0, int(seconds))
    minutes, rest = divmod(seconds, 60)
    return f"{minutes}:{rest:02d}"


def is_low_time(remaining_seconds: int, threshold: Optional[int] = None) -> bool:
    """남은 시간이 경고 구간(기본 5분 이하)인지."""
    if threshold is None:
        threshold = LOW_TIME_WARNING_SECONDS
    return 0 < remaining_seconds <= threshold
