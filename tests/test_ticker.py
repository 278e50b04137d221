import threading
import time

import pytest

from olpm_cbt.services.ticker import IntervalTicker


def test_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        IntervalTicker(interval=0)


def test_ticker_delivers_whole_seconds_and_stops() -> None:
    ticker = IntervalTicker(interval=0.05)
    received = []
    fired = threading.Event()

    def _on_tick(elapsed: int) -> None:
        received.append(elapsed)
        fired.set()

    ticker.start(_on_tick)
    assert ticker.running
    assert fired.wait(timeout=3)
    ticker.stop()
    assert not ticker.running

    count = len(received)
    time.sleep(1.2)
    assert len(received) == count
    assert all(elapsed >= 1 for elapsed in received)


def test_stop_from_inside_callback_and_restart() -> None:
    ticker = IntervalTicker(interval=0.05)
    calls = []
    done = threading.Event()

    def _once(elapsed: int) -> None:
        calls.append(elapsed)
        ticker.stop()
        done.set()

    ticker.start(_once)
    assert done.wait(timeout=3)
    assert not ticker.running

    done.clear()
    ticker.start(_once)
    assert done.wait(timeout=3)
    assert len(calls) == 2
