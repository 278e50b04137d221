from typing import List

import pytest

import api.session as session
from olpm_cbt.models.session_state import Phase
from olpm_cbt.services.exam_engine import TimedAssessmentEngine

from conftest import TEST_LINK, FakeRepository, ManualTicker


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_000_000.0

    def time(self) -> float:
        return self.now


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(session, "time", fake)
    monkeypatch.setattr(session, "SESSION_TTL", 60)
    monkeypatch.setattr(session, "_sessions", {})
    monkeypatch.setattr(session, "_timestamps", {})
    return fake


@pytest.fixture
def engines() -> List[TimedAssessmentEngine]:
    return []


@pytest.fixture
def factory(repo: FakeRepository, engines: List[TimedAssessmentEngine]):
    def build(token: str) -> TimedAssessmentEngine:
        engine = TimedAssessmentEngine(repo.client(token=token), ticker=ManualTicker())
        engines.append(engine)
        return engine

    return build


def _attempt_in_progress(sid: str, factory) -> TimedAssessmentEngine:
    engine = session.get_engine(sid, factory)
    engine.load_test(TEST_LINK)
    engine.start()
    engine.select_answer("1", "A")
    return engine


def test_expired_session_is_dropped_on_access(clock: FakeClock, factory, repo: FakeRepository) -> None:
    sid = session.create_session()
    engine = _attempt_in_progress(sid, factory)

    clock.now += 61
    assert session.get_session(sid) is None

    assert engine.phase is Phase.EXITED
    assert repo.submissions == []
    assert session.get(sid, "token", "missing") == "missing"


def test_access_refreshes_session(clock: FakeClock, factory) -> None:
    sid = session.create_session()
    engine = _attempt_in_progress(sid, factory)

    clock.now += 50
    assert session.get_session(sid) is not None
    clock.now += 50
    assert session.get_session(sid) is not None
    assert engine.phase is Phase.IN_PROGRESS


def test_cleanup_expired_removes_only_stale_sessions(
    clock: FakeClock, factory, repo: FakeRepository
) -> None:
    stale = [session.create_session(), session.create_session()]
    stale_engine = _attempt_in_progress(stale[0], factory)
    clock.now += 30
    fresh = session.create_session()

    clock.now += 40
    assert session.cleanup_expired() == 2

    assert stale_engine.phase is Phase.EXITED
    assert repo.submissions == []
    assert all(session.get_session(sid) is None for sid in stale)
    assert session.get_session(fresh) is not None
    assert session.cleanup_expired() == 0


def test_set_token_disposes_old_engine(
    clock: FakeClock, factory, repo: FakeRepository, engines: List[TimedAssessmentEngine]
) -> None:
    sid = session.create_session()
    old = _attempt_in_progress(sid, factory)

    session.set_token(sid, "new-token")

    assert old.phase is Phase.EXITED
    assert repo.submissions == []
    new = session.get_engine(sid, factory)
    assert new is not old
    assert session.get(sid, "token") == "new-token"
    new.load_test(TEST_LINK)
    assert repo.auth_headers[-1] == "Bearer new-token"


def test_reset_keeps_token_and_exits_engine(clock: FakeClock, factory) -> None:
    sid = session.create_session()
    session.set_token(sid, "keep")
    engine = _attempt_in_progress(sid, factory)

    session.reset(sid)

    assert engine.phase is Phase.EXITED
    assert session.get(sid, "token") == "keep"
    assert session.get(sid, "engine") is None
