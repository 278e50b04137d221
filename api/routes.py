"""
api/routes.py — FastAPI 엔드포인트

프레젠테이션 계층의 의도(답 선택, 일시정지, 제출, 종료)를 세션의 응시 엔진으로 전달한다.
블로킹 호출(시험 조회/제출)은 asyncio.to_thread 로 실행.
"""

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

import api.session as session
from olpm_cbt.models.question_model import Question
from olpm_cbt.models.session_state import Phase, SubmitReason
from olpm_cbt.services.errors import (
    AlreadySubmittedError,
    InvalidStateError,
    NetworkError,
    NotFoundError,
    UnreadableResultError,
)
from olpm_cbt.services.exam_engine import TimedAssessmentEngine
from olpm_cbt.services.exam_service import unanswered_question_ids

logger = logging.getLogger(__name__)

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class TokenBody(BaseModel):
    token: str

class LoadTestBody(BaseModel):
    link: str

class SaveAnswerBody(BaseModel):
    question_id: str
    answer: str

class NavigateBody(BaseModel):
    index: int = 0


# ── 헬퍼 ─────────────────────────────────────────────────────────────────────

def _question_to_dict(q: Question) -> dict:
    return {
        "id": q.id,
        "text": q.text,
        "options": dict(q.options),
    }


def _engine(request: Request) -> TimedAssessmentEngine:
    engine = session.get_engine(request.state.session_id, request.app.state.engine_factory)
    if engine is None:
        raise HTTPException(status_code=404, detail="세션이 없습니다.")
    return engine


def _loaded_engine(request: Request) -> TimedAssessmentEngine:
    engine = _engine(request)
    if engine.test is None:
        raise HTTPException(status_code=404, detail="시험 세션이 없습니다.")
    return engine


# ── 엔드포인트 ───────────────────────────────────────────────────────────────

@router.post("/api/set-token")
async def set_token(body: TokenBody, request: Request):
    token = body.token.strip()
    if not token:
        raise HTTPException(status_code=400, detail="토큰이 비어 있습니다.")
    session.set_token(request.state.session_id, token)
    return {"ok": True}


@router.get("/api/session-status")
async def session_status(request: Request):
    sid = request.state.session_id
    snap = _engine(request).snapshot()
    return {
        "token_set": bool(session.get(sid, "token")),
        "phase": snap.phase.value,
        "test_id": snap.test_id,
    }


@router.post("/api/load-test")
async def load_test(body: LoadTestBody, request: Request):
    engine = _engine(request)
    try:
        test = await asyncio.to_thread(engine.load_test, body.link)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="시험을 찾을 수 없습니다. 링크를 다시 확인해 주세요.")
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except NetworkError as e:
        logger.warning(f"load-test 실패: {e}")
        raise HTTPException(status_code=502, detail="시험을 불러오지 못했습니다. 잠시 후 다시 시도해 주세요.")

    return {
        "ok": True,
        "test_id": test.id,
        "title": test.title,
        "description": test.description,
        "duration_seconds": test.duration_seconds,
        "total": len(test.questions),
    }


@router.post("/api/start-exam")
async def start_exam(request: Request):
    engine = _loaded_engine(request)
    engine.start()
    return {"ok": True, "phase": engine.phase.value}


@router.get("/api/question/{index}")
async def get_question(index: int, request: Request):
    engine = _loaded_engine(request)
    questions = engine.test.questions
    if not (0 <= index < len(questions)):
        raise HTTPException(status_code=404, detail="문제를 찾을 수 없습니다.")

    q = questions[index]
    snap = engine.snapshot()
    d = _question_to_dict(q)
    d.update({"saved_answer": snap.answers.get(q.id), "index": index, "total": len(questions)})
    return d


@router.get("/api/exam-state")
async def get_exam_state(request: Request):
    return _engine(request).snapshot().model_dump(mode="json")


@router.post("/api/save-answer")
async def save_answer(body: SaveAnswerBody, request: Request):
    engine = _loaded_engine(request)
    try:
        applied = engine.select_answer(body.question_id, body.answer)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not applied:
        raise HTTPException(status_code=409, detail=f"지금은 답을 고를 수 없습니다 ({engine.phase.value}).")
    return {"ok": True, "answered_count": engine.snapshot().answered_count}


@router.post("/api/navigate")
async def navigate(body: NavigateBody, request: Request):
    idx = _loaded_engine(request).navigate(body.index)
    return {"index": idx, "ok": True}


@router.post("/api/pause")
async def pause_exam(request: Request):
    engine = _loaded_engine(request)
    engine.pause()
    return {"ok": True, "phase": engine.phase.value}


@router.post("/api/resume")
async def resume_exam(request: Request):
    engine = _loaded_engine(request)
    engine.resume()
    return {"ok": True, "phase": engine.phase.value}


@router.post("/api/submit-exam")
async def submit_exam(request: Request):
    engine = _loaded_engine(request)
    try:
        result = await asyncio.to_thread(engine.submit, SubmitReason.USER_INITIATED, False)
    except AlreadySubmittedError as e:
        # 이미 제출됨 = 사용자 입장에서는 성공. 결과가 있으면 함께 돌려준다
        pending = e.pending
        done = pending.done() and pending.exception() is None
        return {
            "ok": True,
            "already_submitted": True,
            "result": pending.result().model_dump(mode="json") if done else None,
        }
    except UnreadableResultError as e:
        # 서버에는 기록됨. 재시도 금지, 결과만 비어 있음
        return {"ok": True, "already_submitted": False, "result": None, "error": str(e)}
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except NetworkError as e:
        logger.warning(f"submit-exam 실패: {e}")
        raise HTTPException(
            status_code=502,
            detail="제출에 실패했습니다. 답안은 그대로 보존되어 있으니 다시 시도해 주세요.",
        )

    return {"ok": True, "already_submitted": False, "result": result.model_dump(mode="json")}


@router.get("/api/results")
async def get_results(request: Request):
    engine = _loaded_engine(request)
    snap = engine.snapshot()
    result = snap.submission_result
    if result is None:
        if snap.phase is Phase.SUBMITTED:
            raise HTTPException(status_code=502, detail=snap.last_error or "채점 결과를 읽을 수 없습니다.")
        raise HTTPException(status_code=400, detail="시험이 아직 제출되지 않았습니다.")

    questions = engine.test.questions
    return {
        **result.model_dump(mode="json"),
        "answered_count": snap.answered_count,
        "unanswered_count": len(unanswered_question_ids(questions, snap.answers)),
        "submit_reason": snap.submit_reason.value if snap.submit_reason else None,
    }


@router.post("/api/exit")
async def exit_exam(request: Request):
    _engine(request).exit()
    return {"ok": True}


@router.post("/api/reset")
async def reset_session(request: Request):
    session.reset(request.state.session_id)
    return {"ok": True}
