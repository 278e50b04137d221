"""
models/session_state.py

시험 진행 상태를 담는 OMR 카드 모델.
Pydantic BaseModel 기반: 직렬화/역직렬화 및 타입 안전성 확보.
UI 코드 없음. 상태 전이 규칙은 services/exam_engine.py가 소유한다.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from olpm_cbt.models.question_model import OptionLabel


class Phase(str, Enum):
    """시험 세션 단계."""
    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    PAUSED = "Paused"
    SUBMITTING = "Submitting"
    SUBMITTED = "Submitted"
    EXITED = "Exited"
    ERRORED = "Errored"


# 타이머가 흘러가는(또는 멈춰 있는) 응시 중 단계
LIVE_PHASES = frozenset({Phase.IN_PROGRESS, Phase.PAUSED})
# 제출 시도가 허용되는 단계 (Errored = 실패 후 재시도)
SUBMITTABLE_PHASES = frozenset({Phase.IN_PROGRESS, Phase.PAUSED, Phase.ERRORED})
TERMINAL_PHASES = frozenset({Phase.SUBMITTED, Phase.EXITED})


class SubmitReason(str, Enum):
    USER_INITIATED = "UserInitiated"
    TIME_EXPIRED = "TimeExpired"


class AnswerReview(BaseModel):
    """채점 결과의 문제별 정오 정보 (리뷰 화면용)."""
    model_config = ConfigDict(frozen=True)

    question_id: str = Field(..., validation_alias=AliasChoices("question_id", "id"))
    selected_option: Optional[str] = None
    is_correct: bool = False

    @field_validator('question_id', mode='before')
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) and not isinstance(v, bool) else v


class SubmissionResult(BaseModel):
    """
    서버가 돌려준 채점 결과. 한 번 설정되면 변경하지 않는다.

    percentage/grade/passed는 서버가 생략하면 엔진이 보충한다
    (services/exam_service.complete_result 참고).
    """
    model_config = ConfigDict(frozen=True)

    score: int = Field(..., ge=0, description="맞힌 문제 수")
    percentage: Optional[float] = Field(default=None, description="정답률 (0.0 ~ 100.0)")
    answers: List[AnswerReview] = Field(default_factory=list, description="문제별 정오")
    message: Optional[str] = Field(default=None)
    total_questions: Optional[int] = Field(default=None, ge=0)
    grade: Optional[str] = Field(default=None)
    passed: Optional[bool] = Field(default=None)


class SubmissionPayload(BaseModel):
    """
    POST /tests/{id}/submit 본문.
    래치 획득 시점에 한 번 만들어지고, 재시도에도 그대로 재사용된다.
    미응답 문제는 None(null)으로 포함. 기본 답을 임의로 채우지 않는다.
    """
    model_config = ConfigDict(frozen=True)

    answers: Dict[str, Optional[OptionLabel]]
    time_taken_seconds: int = Field(..., ge=0)


class SessionState(BaseModel):
    """
    사용자의 시험 세션 전체 상태를 표현하는 모델.

    Attributes:
        phase:                  현재 단계.
        started_at_epoch_ms:    NotStarted → InProgress 전이 시 한 번만 기록.
        remaining_seconds:      남은 시간(초). 0 이상 duration 이하.
        answers:                사용자 답안지. {question.id: 'A'|'B'|'C'|'D'}
        current_question_index: 현재 보고 있는 문제 인덱스 (0-based).
        submission_result:      제출 성공 후에만 채워짐.
        submission_payload:     첫 제출 시도 때 캡처한 본문 (재시도용).
        submit_reason:          래치를 잡은 트리거.
        last_error:             마지막 제출 실패 메시지.
    """

    phase: Phase = Phase.NOT_STARTED
    started_at_epoch_ms: Optional[int] = None
    remaining_seconds: int = Field(default=0, ge=0)
    answers: Dict[str, OptionLabel] = Field(default_factory=dict)
    current_question_index: int = Field(default=0, ge=0)
    submission_result: Optional[SubmissionResult] = None
    submission_payload: Optional[SubmissionPayload] = None
    submit_reason: Optional[SubmitReason] = None
    last_error: Optional[str] = None


class SessionSnapshot(BaseModel):
    """프레젠테이션 계층에 넘기는 읽기 전용 상태 사본."""
    model_config = ConfigDict(frozen=True)

    phase: Phase
    test_id: Optional[str] = None
    duration_seconds: int = 0
    remaining_seconds: int = 0
    time_display: str = "0:00"
    low_time_warning: bool = False
    started_at_epoch_ms: Optional[int] = None
    answers: Dict[str, str] = Field(default_factory=dict)
    answered_count: int = 0
    total: int = 0
    question_ids: List[str] = Field(default_factory=list)
    current_question_index: int = 0
    submit_reason: Optional[SubmitReason] = None
    submission_result: Optional[SubmissionResult] = None
    last_error: Optional[str] = None


class EngineEvent(BaseModel):
    """리스너 통지 단위. tick = 카운트다운 갱신, phase = 단계 전이."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["tick", "phase"]
    snapshot: SessionSnapshot
