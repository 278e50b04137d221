"""
services/errors.py

시험 응시 엔진 / Assessment Repository 클라이언트 예외 계층.

  - NotFoundError         : 시험 링크가 존재하지 않음 (해당 조회 시도는 종료)
  - NetworkError          : 일시적 I/O 실패. 호출자가 재시도 가능
  - InvalidStateError     : 현재 단계에서 허용되지 않는 호출 (프로그래밍 계약 위반)
  - AlreadySubmittedError : 제출 래치가 이미 잡혀 있음. 사용자 입장에서는 성공
  - UnreadableResultError : 서버는 제출을 접수(2xx)했지만 채점 결과를 읽을 수 없음. 재시도 불가
"""

from concurrent.futures import Future
from typing import Optional


class AssessmentError(Exception):
    """엔진/클라이언트 공통 기반 예외."""


class NotFoundError(AssessmentError):
    pass


class NetworkError(AssessmentError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidStateError(AssessmentError):
    pass


class AlreadySubmittedError(AssessmentError):
    """
    submit(wait=False) 호출 시 이미 다른 트리거가 래치를 잡은 경우.
    pending 은 진행 중(또는 완료된) 제출의 Future.
    """

    def __init__(self, pending: "Future"):
        super().__init__("이미 제출이 진행 중이거나 완료되었습니다.")
        self.pending = pending


class UnreadableResultError(AssessmentError):
    """
    2xx 응답이지만 본문에서 점수를 읽을 수 없는 경우.
    서버에는 이미 기록되었으므로 래치를 풀지 않는다 (재전송 금지).
    """
