import json
import threading
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from olpm_cbt.services.assessment_client import AssessmentClient
from olpm_cbt.services.exam_engine import TimedAssessmentEngine

BASE_URL = "http://olpm.test/api"
TEST_LINK = "test-abc123"


class ManualTicker:
    """Deterministic tick source: ticks only fire when the test advances it."""

    def __init__(self) -> None:
        self.callback: Optional[Callable[[int], None]] = None
        self.last_callback: Optional[Callable[[int], None]] = None
        self.start_count = 0
        self.stop_count = 0

    @property
    def running(self) -> bool:
        return self.callback is not None

    def start(self, callback: Callable[[int], None]) -> None:
        if self.callback is not None:
            return
        self.callback = callback
        self.last_callback = callback
        self.start_count += 1

    def stop(self) -> None:
        self.callback = None
        self.stop_count += 1

    def advance(self, ticks: int = 1) -> None:
        for _ in range(ticks):
            if self.callback is None:
                return
            self.callback(1)

    def deliver(self, elapsed: int) -> None:
        """A single delayed tick carrying several seconds at once."""
        if self.callback is not None:
            self.callback(elapsed)


def make_test_payload(duration_seconds: Optional[int] = None, question_count: int = 3) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": 7,
        "title": "Python Basics",
        "description": "Week 3 quiz",
        "questions": [
            {
                "id": i,
                "question_text": f"Question {i}?",
                "option_a": "alpha",
                "option_b": "beta",
                "option_c": "gamma",
                "option_d": "delta",
            }
            for i in range(1, question_count + 1)
        ],
    }
    if duration_seconds is None:
        payload["duration_minutes"] = 10
    else:
        payload["duration_seconds"] = duration_seconds
    return payload


class FakeRepository:
    """In-memory Assessment Repository served through httpx.MockTransport."""

    def __init__(self, test_payload: Optional[Dict[str, Any]] = None) -> None:
        self.test_payload = test_payload or make_test_payload()
        self.submissions: List[Dict[str, Any]] = []
        self.auth_headers: List[Optional[str]] = []
        self.fail_submits = 0
        self.fail_status = 500
        self.score = 2
        self.result_extra: Dict[str, Any] = {}
        # replaces the whole 201 body when set
        self.result_body: Optional[Dict[str, Any]] = None
        # set() to let submissions through; clear() to hold them in flight
        self.release = threading.Event()
        self.release.set()
        self.submit_entered = threading.Event()
        self._lock = threading.Lock()

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.auth_headers.append(request.headers.get("Authorization"))
        path = request.url.path
        if request.method == "GET":
            if path == f"/api/tests/{TEST_LINK}":
                return httpx.Response(200, json={"test": self.test_payload})
            return httpx.Response(404, json={"message": "Test not found"})

        if request.method == "POST" and path.endswith("/submit"):
            with self._lock:
                self.submissions.append(json.loads(request.content))
            self.submit_entered.set()
            self.release.wait(timeout=5)
            with self._lock:
                if self.fail_submits > 0:
                    self.fail_submits -= 1
                    return httpx.Response(self.fail_status, json={"error": "database unavailable"})
            if self.result_body is not None:
                return httpx.Response(201, json=self.result_body)
            return httpx.Response(201, json={"message": "Test submitted", "score": self.score, **self.result_extra})

        return httpx.Response(405)

    def client(self, token: str = "secret-token") -> AssessmentClient:
        return AssessmentClient(
            base_url=BASE_URL,
            token=token,
            timeout=5.0,
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def repo() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def ticker() -> ManualTicker:
    return ManualTicker()


@pytest.fixture
def engine(repo: FakeRepository, ticker: ManualTicker) -> TimedAssessmentEngine:
    eng = TimedAssessmentEngine(repo.client(), ticker=ticker, now_ms=lambda: 1_700_000_000_000)
    yield eng
    repo.release.set()
    eng.close()
