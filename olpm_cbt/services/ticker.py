"""
services/ticker.py

카운트다운용 틱 소스.
엔진은 Ticker 인터페이스에만 의존한다. 운영 환경은 IntervalTicker(1초 스레드),
테스트는 수동으로 진행시키는 가짜 티커를 주입한다.

콜백 인자는 직전 틱 이후 경과한 '정수 초'.
평소에는 1이지만, 프로세스가 멈췄다 깨어나면 밀린 시간을 한 번에 전달한다.
"""

import logging
import threading
import time
from typing import Callable, Optional, Protocol

from config import TICK_INTERVAL_SECONDS

logger = logging.getLogger(__name__)

TickCallback = Callable[[int], None]


class Ticker(Protocol):
    @property
    def running(self) -> bool: ...

    def start(self, callback: TickCallback) -> None: ...

    def stop(self) -> None: ...


class IntervalTicker:
    """
    데몬 스레드에서 interval 마다 깨어나 경과 초를 콜백으로 전달한다.

    - 경과 시간은 time.monotonic() 기준. 소수점 이하 잔여분은 다음 틱으로 이월.
    - stop()은 콜백 내부(틱 스레드)에서 호출해도 안전하다.
    - stop() 후 start()로 재시작 가능 (일시정지/재개).
    """

    def __init__(self, interval: float = TICK_INTERVAL_SECONDS):
        if interval <= 0:
            raise ValueError("interval은 0보다 커야 합니다.")
        self._interval = interval
        self._lock = threading.Lock()
        self._stop_event: Optional[threading.Event] = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._stop_event is not None and not self._stop_event.is_set()

    def start(self, callback: TickCallback) -> None:
        with self._lock:
            if self._stop_event is not None and not self._stop_event.is_set():
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(callback, stop_event),
                name="cbt-ticker",
                daemon=True,
            )
            self._stop_event = stop_event
        thread.start()

    def stop(self) -> None:
        # join 하지 않는다: 틱 스레드가 엔진 락을 기다리는 중일 수 있음
        with self._lock:
            if self._stop_event is not None:
                self._stop_event.set()

    def _run(self, callback: TickCallback, stop_event: threading.Event) -> None:
        last = time.monotonic()
        carry = 0.0
        while not stop_event.wait(self._interval):
            now = time.monotonic()
            carry += now - last
            last = now
            elapsed = int(carry)
            if elapsed < 1:
                continue
            carry -= elapsed
            if stop_event.is_set():
                break
            try:
                callback(elapsed)
            except Exception:
                logger.exception("틱 콜백 처리 중 오류")
