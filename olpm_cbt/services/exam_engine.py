"""
services/exam_engine.py

시간 제한 시험 응시 엔진 (Timed Assessment Engine).

하나의 응시 세션을 조회부터 제출까지 관리한다:
  - 카운트다운 (주입된 Ticker 로부터 경과 초를 받아 감소)
  - 답안 기록 (문제당 0 또는 1개, 마지막 선택 우선)
  - 일시정지 / 재개
  - 정확히 한 번 제출 (시간 만료 트리거 vs 사용자 제출 경쟁)
  - 제출 실패 시 답안/소요 시간 보존 후 호출자 재시도 허용

설계 원칙:
- 모든 상태 변경은 self._lock(RLock) 안에서만 일어난다.
- 제출 래치는 Future 하나. 락 안에서 compare-and-set 으로 획득하고
  네트워크 호출이 끝날 때까지 유지한다. 성공하면 계속 유지(완료 Future),
  실패하면 해제되어 재시도가 가능하다. 단 2xx 를 받은 뒤의 실패(결과 해석 불가)는
  서버에 이미 기록된 것이므로 래치를 유지한다.
- 네트워크 호출과 리스너 통지는 락 밖에서 수행.
- 단계에 맞지 않는 void 명령(start/select_answer/pause/resume/exit/navigate)은
  조용히 무시(debug 로그). 값을 돌려주는 load_test/submit 은 InvalidStateError.
"""

import functools
import logging
import threading
import time
from concurrent.futures import Future
from typing import Callable, List, NamedTuple, Optional

from olpm_cbt.models.question_model import OPTION_LABELS, TestDefinition
from olpm_cbt.models.session_state import (
    LIVE_PHASES,
    SUBMITTABLE_PHASES,
    EngineEvent,
    Phase,
    SessionSnapshot,
    SessionState,
    SubmissionPayload,
    SubmissionResult,
    SubmitReason,
)
from olpm_cbt.services import exam_service
from olpm_cbt.services.assessment_client import AssessmentClient
from olpm_cbt.services.errors import (
    AlreadySubmittedError,
    AssessmentError,
    InvalidStateError,
    UnreadableResultError,
)
from olpm_cbt.services.ticker import IntervalTicker, Ticker

logger = logging.getLogger(__name__)

Listener = Callable[[EngineEvent], None]


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class _Submission(NamedTuple):
    """래치를 잡은 쪽이 락 밖에서 네트워크 호출에 쓰는 값 묶음."""
    state: SessionState
    future: Future
    test_id: str
    total_questions: int
    payload: SubmissionPayload


class TimedAssessmentEngine:
    """
    응시 세션 하나를 소유하는 상태 기계.
    한 인스턴스는 동시에 하나의 응시만 지원한다.
    """

    def __init__(
        self,
        client: AssessmentClient,
        ticker: Optional[Ticker] = None,
        now_ms: Callable[[], int] = _epoch_ms,
    ):
        self._client = client
        self._ticker: Ticker = ticker if ticker is not None else IntervalTicker()
        self._now_ms = now_ms
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []

        self._test: Optional[TestDefinition] = None
        self._state = SessionState()
        self._latch: Optional[Future] = None
        # pause/resume/exit 이후 늦게 도착한 이전 티커의 틱을 버리기 위한 세대 번호
        self._tick_token = 0

    # ── 조회 ─────────────────────────────────────────────────────────────────

    @property
    def test(self) -> Optional[TestDefinition]:
        with self._lock:
            return self._test

    @property
    def phase(self) -> Phase:
        with self._lock:
            return self._state.phase

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """틱/단계 전이 리스너 등록. 해제 함수를 반환."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    # ── 명령 ─────────────────────────────────────────────────────────────────

    def load_test(self, link: str) -> TestDefinition:
        """
        링크로 시험을 조회하고 새 세션(NotStarted)을 준비한다. 타이머는 시작하지 않는다.

        Raises:
            ValueError:        빈 링크
            NotFoundError:     존재하지 않는 링크
            NetworkError:      전송 실패 / 5xx / 응답 형식 오류
            InvalidStateError: 응시 중(InProgress/Paused/Submitting)
        """
        if not isinstance(link, str) or not link.strip():
            raise ValueError("시험 링크가 비어 있습니다.")

        with self._lock:
            self._ensure_no_active_attempt_locked()

        test = self._client.get_test(link)

        with self._lock:
            self._ensure_no_active_attempt_locked()
            self._stop_ticker_locked()
            self._test = test
            self._state = SessionState(remaining_seconds=test.duration_seconds)
            self._latch = None
            snap = self._snapshot_locked()

        logger.info(f"시험 로드: {test.id} ({len(test.questions)}문제, {test.duration_seconds}초)")
        self._emit("phase", snap)
        return test

    def start(self) -> None:
        with self._lock:
            state = self._state
            if self._test is None or state.phase is not Phase.NOT_STARTED:
                logger.debug(f"start 무시: phase={state.phase.value}")
                return
            state.phase = Phase.IN_PROGRESS
            state.started_at_epoch_ms = self._now_ms()
            self._start_ticker_locked()
            snap = self._snapshot_locked()

        logger.info(f"응시 시작: {snap.test_id}, 제한 {snap.duration_seconds}초")
        self._emit("phase", snap)

    def select_answer(self, question_id: str, option: str) -> bool:
        """답안 기록 (upsert). InProgress 에서만 반영되며, 반영 여부를 반환한다."""
        question_id = str(question_id)
        if option not in OPTION_LABELS:
            raise ValueError(f"올바르지 않은 보기입니다: {option!r}")

        with self._lock:
            state = self._state
            if state.phase is not Phase.IN_PROGRESS:
                logger.debug(f"select_answer 무시: phase={state.phase.value}")
                return False
            if not self._test.has_question(question_id):
                raise ValueError(f"시험에 없는 문제입니다: {question_id}")
            state.answers[question_id] = option
        return True

    def navigate(self, index: int) -> Optional[int]:
        """현재 문제 인덱스 이동 (범위 보정). 시험이 없으면 None."""
        with self._lock:
            if self._test is None:
                logger.debug("navigate 무시: 로드된 시험 없음")
                return None
            idx = max(0, min(index, len(self._test.questions) - 1))
            self._state.current_question_index = idx
            return idx

    def pause(self) -> None:
        with self._lock:
            state = self._state
            if state.phase is not Phase.IN_PROGRESS:
                logger.debug(f"pause 무시: phase={state.phase.value}")
                return
            state.phase = Phase.PAUSED
            self._stop_ticker_locked()
            snap = self._snapshot_locked()

        logger.info(f"일시정지: 남은 시간 {snap.remaining_seconds}초")
        self._emit("phase", snap)

    def resume(self) -> None:
        with self._lock:
            state = self._state
            if state.phase is not Phase.PAUSED:
                logger.debug(f"resume 무시: phase={state.phase.value}")
                return
            state.phase = Phase.IN_PROGRESS
            self._start_ticker_locked()
            snap = self._snapshot_locked()

        logger.info(f"재개: 남은 시간 {snap.remaining_seconds}초")
        self._emit("phase", snap)

    def submit(
        self,
        reason: SubmitReason = SubmitReason.USER_INITIATED,
        wait: bool = True,
        timeout: Optional[float] = None,
    ) -> SubmissionResult:
        """
        답안 제출. 세션당 네트워크 제출은 동시에 최대 한 번.

        래치가 이미 잡혀 있으면(진행 중 또는 완료) 새 요청을 보내지 않는다:
          - wait=True  : 진행 중/완료된 제출의 결과를 그대로 돌려준다
          - wait=False : AlreadySubmittedError(pending=Future)

        Raises:
            NetworkError:          이번 제출(또는 기다린 제출)이 실패. 단계는 Errored
            AlreadySubmittedError: wait=False 이고 래치가 잡혀 있음
            UnreadableResultError: 서버는 접수했지만 결과를 읽지 못함. 단계는 Submitted, 래치 유지
            InvalidStateError:     NotStarted / Exited 단계
        """
        with self._lock:
            pending = self._latch
            if pending is None:
                submission = self._acquire_latch_locked(reason)
                snap = self._snapshot_locked()

        if pending is not None:
            if not wait:
                raise AlreadySubmittedError(pending)
            logger.info(f"제출 래치 이미 획득됨 — 기존 제출 결과를 기다림 ({reason.value})")
            return pending.result(timeout)

        logger.info(
            f"제출 시작 ({reason.value}): 응답 {len(self._answered(submission.payload))}"
            f"/{submission.total_questions}, 소요 {submission.payload.time_taken_seconds}초"
        )
        self._emit("phase", snap)
        return self._run_submission(submission)

    def exit(self) -> None:
        """
        제출 없이 세션을 폐기한다 (답안, 타이머). 여러 번 호출해도 안전.
        진행 중인 제출 요청은 취소하지 않는다. 결과는 도착해도 무시된다.
        """
        with self._lock:
            phase = self._state.phase
            if phase in (Phase.EXITED, Phase.SUBMITTED):
                logger.debug(f"exit 무시: phase={phase.value}")
                return
            self._stop_ticker_locked()
            self._test = None
            self._state = SessionState(phase=Phase.EXITED)
            self._latch = None
            snap = self._snapshot_locked()

        if phase is Phase.SUBMITTING:
            logger.info("응시 종료: 진행 중인 제출은 계속되지만 결과는 버려집니다.")
        else:
            logger.info(f"응시 종료 (이전 단계: {phase.value})")
        self._emit("phase", snap)

    def close(self) -> None:
        """세션 폐기 시 호출: 응시 종료 + HTTP 클라이언트 정리."""
        with self._lock:
            latch = self._latch
        self.exit()
        if latch is not None and not latch.done():
            # 진행 중인 제출 요청을 끊지 않는다. 응답이 오면 그때 닫는다
            logger.info("제출 요청 진행 중 — 완료 후 HTTP 클라이언트를 닫음")
            latch.add_done_callback(lambda _: self._client.close())
            return
        self._client.close()

    # ── 타이머 ───────────────────────────────────────────────────────────────

    def _on_tick(self, token: int, elapsed: int = 1) -> None:
        submission = None
        with self._lock:
            state = self._state
            if token != self._tick_token or state.phase is not Phase.IN_PROGRESS:
                return
            remaining = state.remaining_seconds - max(0, int(elapsed))
            if remaining <= 0:
                # 같은 락 안에서 래치 획득 + 티커 정지 → 이후 틱은 적용되지 않는다
                state.remaining_seconds = 0
                submission = self._acquire_latch_locked(SubmitReason.TIME_EXPIRED)
            else:
                state.remaining_seconds = remaining
            snap = self._snapshot_locked()

        self._emit("tick", snap)
        if submission is None:
            return

        logger.info(f"시간 만료 — 자동 제출: {submission.test_id}")
        self._emit("phase", snap)
        try:
            self._run_submission(submission)
        except AssessmentError as e:
            # 상태(Errored, last_error)와 리스너 통지로 이미 전달됨
            logger.warning(f"자동 제출 실패, 사용자 재시도 대기: {e}")

    def _start_ticker_locked(self) -> None:
        self._tick_token += 1
        self._ticker.start(functools.partial(self._on_tick, self._tick_token))

    def _stop_ticker_locked(self) -> None:
        self._tick_token += 1
        self._ticker.stop()

    # ── 제출 ─────────────────────────────────────────────────────────────────

    def _acquire_latch_locked(self, reason: SubmitReason) -> _Submission:
        """래치가 비어 있을 때만 호출. 단계 검사 → 본문 캡처 → Submitting 전이."""
        state, test = self._state, self._test
        if state.phase not in SUBMITTABLE_PHASES or test is None:
            raise InvalidStateError(f"{state.phase.value} 단계에서는 제출할 수 없습니다.")

        state.remaining_seconds = exam_service.clamp_remaining(
            state.remaining_seconds, test.duration_seconds
        )
        if state.submission_payload is None:
            # 최초 시도 시점의 답안/소요 시간 고정. 재시도는 같은 본문을 보낸다
            taken = exam_service.time_taken_seconds(test.duration_seconds, state.remaining_seconds)
            state.submission_payload = exam_service.build_submission_payload(
                test.questions, state.answers, taken
            )

        future: Future = Future()
        future.set_running_or_notify_cancel()
        self._latch = future
        self._stop_ticker_locked()
        state.phase = Phase.SUBMITTING
        state.submit_reason = reason
        state.last_error = None
        return _Submission(state, future, test.id, len(test.questions), state.submission_payload)

    def _run_submission(self, submission: _Submission) -> SubmissionResult:
        state, future = submission.state, submission.future
        try:
            raw = self._client.submit_test(submission.test_id, submission.payload)
            result = exam_service.complete_result(raw, submission.total_questions)
        except UnreadableResultError as e:
            # 서버에는 이미 기록됨: 래치를 유지해 재전송을 막는다
            with self._lock:
                current = state is self._state
                if current:
                    state.phase = Phase.SUBMITTED
                    state.last_error = str(e)
                    snap = self._snapshot_locked()
            future.set_exception(e)
            if current:
                logger.error(f"제출 접수됨, 결과 해석 실패: {submission.test_id} — {e}")
                self._emit("phase", snap)
            raise
        except Exception as e:
            with self._lock:
                if self._latch is future:
                    self._latch = None
                current = state is self._state
                if current:
                    state.phase = Phase.ERRORED
                    state.last_error = str(e)
                    snap = self._snapshot_locked()
            future.set_exception(e)
            if current:
                logger.warning(f"제출 실패: {submission.test_id} — {e}")
                self._emit("phase", snap)
            else:
                logger.info(f"폐기된 세션의 제출 실패 무시: {submission.test_id} — {e}")
            raise

        with self._lock:
            current = state is self._state
            if current:
                state.phase = Phase.SUBMITTED
                state.submission_result = result
                state.last_error = None
                snap = self._snapshot_locked()
        future.set_result(result)

        if current:
            logger.info(f"제출 완료: {submission.test_id} — {result.score}/{result.total_questions} ({result.percentage}%)")
            self._emit("phase", snap)
        else:
            logger.info(f"폐기된 세션의 제출 결과 도착 — 무시: {submission.test_id}")
        return result

    # ── 내부 ─────────────────────────────────────────────────────────────────

    def _ensure_no_active_attempt_locked(self) -> None:
        phase = self._state.phase
        if phase in LIVE_PHASES or phase is Phase.SUBMITTING:
            raise InvalidStateError(f"응시 중({phase.value})에는 새 시험을 불러올 수 없습니다.")

    @staticmethod
    def _answered(payload: SubmissionPayload) -> List[str]:
        return [qid for qid, option in payload.answers.items() if option is not None]

    def _snapshot_locked(self) -> SessionSnapshot:
        state, test = self._state, self._test
        remaining = state.remaining_seconds
        return SessionSnapshot(
            phase=state.phase,
            test_id=test.id if test else None,
            duration_seconds=test.duration_seconds if test else 0,
            remaining_seconds=remaining,
            time_display=exam_service.format_time(remaining),
            low_time_warning=state.phase in LIVE_PHASES and exam_service.is_low_time(remaining),
            started_at_epoch_ms=state.started_at_epoch_ms,
            answers=dict(state.answers),
            answered_count=len(state.answers),
            total=len(test.questions) if test else 0,
            question_ids=test.question_ids() if test else [],
            current_question_index=state.current_question_index,
            submit_reason=state.submit_reason,
            submission_result=state.submission_result,
            last_error=state.last_error,
        )

    def _emit(self, kind: str, snapshot: SessionSnapshot) -> None:
        with self._lock:
            listeners = list(self._listeners)
        if not listeners:
            return
        event = EngineEvent(kind=kind, snapshot=snapshot)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(f"리스너 처리 중 오류 ({kind})")
