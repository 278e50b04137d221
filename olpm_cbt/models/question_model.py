from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

OptionLabel = Literal["A", "B", "C", "D"]
OPTION_LABELS: tuple = ("A", "B", "C", "D")


def _coerce_id(v: Any) -> Any:
    """서버는 정수 ID(serial)를 내려주지만 클라이언트에서는 불투명한 문자열로 다룬다."""
    if isinstance(v, bool):
        return v
    if isinstance(v, int):
        return str(v)
    return v


class Question(BaseModel):
    """
    OLPM 객관식 문제 모델
    정답(correct_option)은 클라이언트에 절대 내려오지 않는다. 채점은 서버 책임.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(
        ...,
        min_length=1,
        description="문제 ID (시험 내 고유)"
    )
    text: str = Field(
        ...,
        min_length=1,
        description="문제 본문"
    )
    options: Dict[OptionLabel, str] = Field(
        ...,
        description="보기 A~D. 정확히 4개"
    )

    @model_validator(mode='before')
    @classmethod
    def from_backend_columns(cls, data: Any) -> Any:
        """
        백엔드 원본 컬럼(question_text, option_a ~ option_d)을 모델 필드로 변환한다.
        이미 text/options 형태인 경우 그대로 통과.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "text" not in data and "question_text" in data:
            data["text"] = data.pop("question_text")
        if "options" not in data:
            columns = {label: data.pop(f"option_{label.lower()}", None) for label in OPTION_LABELS}
            if any(v is not None for v in columns.values()):
                data["options"] = {k: v for k, v in columns.items() if v is not None}
        return data

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return _coerce_id(v)

    @field_validator('options')
    @classmethod
    def validate_four_options(cls, v: Dict[str, str]) -> Dict[str, str]:
        """
        검증 로직: 보기는 A, B, C, D 네 개가 모두 있어야 한다.
        """
        if set(v) != set(OPTION_LABELS):
            raise ValueError(f"보기(options)는 A, B, C, D 4개가 필요합니다. (받은 키: {sorted(v)})")
        return {label: v[label] for label in OPTION_LABELS}


class TestDefinition(BaseModel):
    """
    링크로 조회한 시험 정의. 세션 동안 변하지 않는다.

    Attributes:
        id:               제출 시 사용하는 시험 ID.
        duration_seconds: 전체 제한 시간(초). 조회 시점에 고정.
        questions:        문제 목록. 순서가 곧 화면/리뷰 순서.
    """
    __test__ = False  # pytest 수집 대상 아님

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="시험 ID")
    title: str = Field(default="", description="시험 제목")
    description: Optional[str] = Field(default=None, description="시험 설명")
    duration_seconds: int = Field(..., gt=0, description="제한 시간 (초)")
    questions: List[Question] = Field(..., min_length=1, description="문제 목록 (순서 유지)")

    @model_validator(mode='before')
    @classmethod
    def from_backend_payload(cls, data: Any) -> Any:
        """백엔드는 분 단위(duration_minutes, 소수 가능)로 내려준다 → 초 단위로 환산."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "duration_seconds" not in data and data.get("duration_minutes") is not None:
            data["duration_seconds"] = round(float(data.pop("duration_minutes")) * 60)
        return data

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return _coerce_id(v)

    @model_validator(mode='after')
    def validate_unique_question_ids(self) -> 'TestDefinition':
        ids = [q.id for q in self.questions]
        if len(ids) != len(set(ids)):
            raise ValueError("문제 ID가 중복되었습니다.")
        return self

    def question_ids(self) -> List[str]:
        return [q.id for q in self.questions]

    def has_question(self, question_id: str) -> bool:
        return any(q.id == question_id for q in self.questions)
