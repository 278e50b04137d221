"""
services/assessment_client.py

OLPM Assessment Repository(REST API) 클라이언트.
Public API:
  - AssessmentClient.get_test(link) -> TestDefinition
  - AssessmentClient.submit_test(test_id, payload) -> SubmissionResult

상태 코드 매핑:
- 조회 404                → NotFoundError
- 제출 404 / 그 외 non-2xx / 전송 실패 / 타임아웃 → NetworkError
- 조회 2xx 이지만 본문 검증 실패 → NetworkError (재시도 대상)
- 제출 2xx 이지만 점수를 읽을 수 없음 → UnreadableResultError (서버에 이미 기록됨, 재시도 금지)
재시도는 하지 않는다. 재시도 정책은 호출자(프레젠테이션 계층) 몫.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

import config
from olpm_cbt.models.question_model import TestDefinition
from olpm_cbt.models.session_state import AnswerReview, SubmissionPayload, SubmissionResult
from olpm_cbt.services.errors import NetworkError, NotFoundError, UnreadableResultError

logger = logging.getLogger(__name__)

# 점수 외에 서버가 줄 수도 있는 결과 필드. 형식이 틀리면 버리고 엔진이 보충한다
_OPTIONAL_RESULT_FIELDS = ("percentage", "message", "total_questions", "grade", "passed")


class AssessmentClient:
    """
    Bearer 토큰을 들고 Assessment Repository를 호출하는 얇은 래퍼.

    transport 인자는 테스트에서 httpx.MockTransport를 주입하기 위한 것.
    """

    def __init__(
        self,
        base_url: str = config.API_BASE_URL,
        token: str = config.API_TOKEN,
        timeout: float = config.REQUEST_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "AssessmentClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── 엔드포인트 ───────────────────────────────────────────────────────────

    def get_test(self, link: str) -> TestDefinition:
        """GET /tests/{link} → {"test": {...}}"""
        if not link or not link.strip():
            raise ValueError("시험 링크가 비어 있습니다.")

        body = self._request("GET", f"/tests/{quote(link.strip(), safe='')}", not_found=True)
        raw = body.get("test") if isinstance(body, dict) else None
        if raw is None:
            raise NetworkError("응답에 test 필드가 없습니다.")
        try:
            test = TestDefinition.model_validate(raw)
        except ValidationError as e:
            logger.error(f"get_test: 시험 정의 검증 실패 — {e}")
            raise NetworkError(f"시험 정의 형식이 올바르지 않습니다: {e.error_count()}개 오류") from e

        logger.info(f"get_test: '{link}' → 시험 {test.id}, {len(test.questions)}문제, {test.duration_seconds}초")
        return test

    def submit_test(self, test_id: str, payload: SubmissionPayload) -> SubmissionResult:
        """
        POST /tests/{test_id}/submit  body: {answers, time_taken_seconds}

        2xx 를 받았다면 서버는 이미 제출을 기록했다. 본문 일부가 어긋나도
        점수만 읽히면 결과로 받아들이고, 점수조차 없으면 UnreadableResultError.
        """
        body = self._request(
            "POST",
            f"/tests/{quote(str(test_id), safe='')}/submit",
            json=payload.model_dump(mode="json"),
        )
        try:
            result = SubmissionResult.model_validate(body)
        except ValidationError as e:
            logger.warning(f"submit_test: 채점 결과 일부 형식 오류, 읽을 수 있는 필드만 사용 — {e.error_count()}개 오류")
            result = _partial_result(body)

        logger.info(f"submit_test: 시험 {test_id} 제출 완료 — score={result.score}")
        return result

    # ── 내부 ─────────────────────────────────────────────────────────────────

    def _request(self, method: str, path: str, not_found: bool = False, **kwargs) -> Dict[str, Any]:
        """not_found=True 인 조회만 404 를 NotFoundError 로 구분한다."""
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {path}: 요청 시간 초과")
            raise NetworkError("요청 시간이 초과되었습니다.") from e
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path}: 전송 실패 — {e}")
            raise NetworkError(f"네트워크 오류: {e}") from e

        if response.status_code == 404 and not_found:
            raise NotFoundError(_error_message(response) or "시험을 찾을 수 없습니다.")
        if not response.is_success:
            logger.warning(f"{method} {path}: HTTP {response.status_code}")
            raise NetworkError(
                _error_message(response) or f"HTTP 오류: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            if method == "POST":
                raise UnreadableResultError("제출은 접수되었지만 응답 본문이 JSON이 아닙니다.") from e
            raise NetworkError("응답 본문이 JSON이 아닙니다.") from e


def _partial_result(body: Any) -> SubmissionResult:
    """검증에 실패한 2xx 제출 응답에서 읽을 수 있는 필드만 골라 결과를 만든다."""
    if not isinstance(body, dict):
        raise UnreadableResultError("제출은 접수되었지만 채점 결과 형식을 읽을 수 없습니다.")

    reviews: List[AnswerReview] = []
    rows = body.get("answers")
    for row in rows if isinstance(rows, list) else []:
        try:
            reviews.append(AnswerReview.model_validate(row))
        except ValidationError:
            logger.warning(f"submit_test: 읽을 수 없는 문제별 결과 행 무시 — {row!r}")

    data: Dict[str, Any] = {"score": body.get("score"), "answers": reviews}
    try:
        SubmissionResult.model_validate(data)
    except ValidationError as e:
        raise UnreadableResultError("제출은 접수되었지만 점수를 읽을 수 없습니다.") from e

    for field in _OPTIONAL_RESULT_FIELDS:
        if field not in body:
            continue
        candidate = {**data, field: body[field]}
        try:
            SubmissionResult.model_validate(candidate)
        except ValidationError:
            logger.warning(f"submit_test: 결과 필드 '{field}' 형식 오류 — 무시")
            continue
        data = candidate
    return SubmissionResult.model_validate(data)


def _error_message(response: httpx.Response) -> str:
    """백엔드는 {"message": ...} 또는 {"error": ...} 형태로 오류를 내려준다."""
    try:
        data = response.json()
    except ValueError:
        return ""
    if isinstance(data, dict):
        return str(data.get("message") or data.get("error") or "")
    return ""
