"""
api/app.py — FastAPI 앱 인스턴스 + 세션 미들웨어 + 만료 세션 정리
"""

import logging
import threading
import time
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from config import SESSION_CLEANUP_INTERVAL
from api.routes import router
import api.session as session
from olpm_cbt.services.assessment_client import AssessmentClient
from olpm_cbt.services.exam_engine import TimedAssessmentEngine

SESSION_COOKIE = "cbt_session"

logger = logging.getLogger(__name__)


def default_engine_factory(token: str) -> TimedAssessmentEngine:
    """세션 토큰으로 Assessment Repository 클라이언트 + 1초 티커 엔진 생성."""
    return TimedAssessmentEngine(AssessmentClient(token=token))


def create_app(
    engine_factory: Optional[session.EngineFactory] = None,
    start_cleanup: bool = True,
) -> FastAPI:
    app = FastAPI(title="OLPM CBT", docs_url=None, redoc_url=None)
    app.state.engine_factory = engine_factory or default_engine_factory

    # CORS (프레젠테이션 계층이 다른 출처에서 호출)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 세션 미들웨어: 쿠키에서 세션 ID를 읽고, 없으면 새로 발급
    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        sid = request.cookies.get(SESSION_COOKIE)
        if not sid or session.get_session(sid) is None:
            sid = session.create_session()

        request.state.session_id = sid
        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            httponly=True,
            samesite="lax",
            max_age=session.SESSION_TTL,
        )
        return response

    app.include_router(router)

    # 만료 세션 주기적 정리 (엔진도 제출 없이 종료)
    def _cleanup_loop():
        while True:
            time.sleep(SESSION_CLEANUP_INTERVAL)
            removed = session.cleanup_expired()
            if removed:
                logger.info(f"만료 세션 {removed}개 정리")

    if start_cleanup:
        t = threading.Thread(target=_cleanup_loop, daemon=True)
        t.start()

    return app
