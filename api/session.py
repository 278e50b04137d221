"""
api/session.py — 멀티유저 인메모리 세션 (쿠키 기반)

각 사용자에게 UUID 세션 ID를 발급하고, 세션별로 독립된 상태를 유지.
세션 상태 = Bearer 토큰 + 응시 엔진 1개 (세션당 동시 응시 1건).
TTL(기본 1시간) 경과 시 자동 만료되며, 만료/초기화 시 엔진은 제출 없이 종료된다.
"""

import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from config import API_TOKEN, SESSION_TTL
from olpm_cbt.services.exam_engine import TimedAssessmentEngine


EngineFactory = Callable[[str], TimedAssessmentEngine]

_lock = threading.Lock()
_sessions: Dict[str, Dict[str, Any]] = {}
_timestamps: Dict[str, float] = {}


def _new_state() -> Dict[str, Any]:
    return {
        "token": API_TOKEN,
        "engine": None,
    }


def _dispose(states: List[Dict[str, Any]]) -> None:
    """락 밖에서 호출. 세션이 들고 있던 엔진을 정리."""
    for state in states:
        engine: Optional[TimedAssessmentEngine] = state.get("engine")
        if engine is not None:
            engine.close()


def create_session() -> str:
    """새 세션을 생성하고 세션 ID를 반환."""
    sid = uuid.uuid4().hex
    with _lock:
        _sessions[sid] = _new_state()
        _timestamps[sid] = time.time()
    return sid


def get_session(sid: str) -> Optional[Dict[str, Any]]:
    """세션 ID로 세션 데이터를 가져옴. 만료되었거나 없으면 None."""
    expired = None
    with _lock:
        if sid not in _sessions:
            return None
        if time.time() - _timestamps[sid] > SESSION_TTL:
            expired = _sessions.pop(sid)
            del _timestamps[sid]
        else:
            _timestamps[sid] = time.time()  # 접근 시 갱신
            return _sessions[sid]
    _dispose([expired])
    return None


def get(sid: str, key: str, default=None):
    """세션에서 값 읽기."""
    session = get_session(sid)
    if session is None:
        return default
    return session.get(key, default)


def set_token(sid: str, token: str) -> None:
    """토큰 교체. 기존 엔진은 다른 자격 증명으로 만든 것이므로 폐기."""
    old = None
    with _lock:
        if sid in _sessions:
            old = dict(_sessions[sid])
            _sessions[sid]["token"] = token
            _sessions[sid]["engine"] = None
            _timestamps[sid] = time.time()
    if old is not None:
        _dispose([old])


def get_engine(sid: str, factory: EngineFactory) -> Optional[TimedAssessmentEngine]:
    """세션의 엔진을 반환. 없으면 세션 토큰으로 새로 생성."""
    with _lock:
        state = _sessions.get(sid)
        if state is None:
            return None
        if state["engine"] is None:
            state["engine"] = factory(state["token"])
        _timestamps[sid] = time.time()
        return state["engine"]


def reset(sid: str) -> None:
    """세션 초기화 (토큰은 유지)."""
    old = None
    with _lock:
        if sid in _sessions:
            old = _sessions[sid]
            saved_token = old.get("token", "")
            _sessions[sid] = _new_state()
            _sessions[sid]["token"] = saved_token
            _timestamps[sid] = time.time()
    if old is not None:
        _dispose([old])


def cleanup_expired() -> int:
    """만료된 세션을 정리. 제거된 수 반환."""
    now = time.time()
    removed: List[Dict[str, Any]] = []
    with _lock:
        expired = [sid for sid, ts in _timestamps.items() if now - ts > SESSION_TTL]
        for sid in expired:
            removed.append(_sessions.pop(sid))
            del _timestamps[sid]
    _dispose(removed)
    return len(removed)
