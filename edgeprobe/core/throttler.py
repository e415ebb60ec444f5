"""
Concurrency & pacing primitives shared by the probes.

All waiting goes through a ``threading.Event`` so a cancelled run wakes every
sleeper at once instead of letting pacing delays run out.
"""
import time
import threading
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional, Any

logger = logging.getLogger("edgeprobe.throttler")

EXPONENTIAL_GROWTH = 1.05
MAX_BURST_DELAY_MS = 2000


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def compute_burst_delay(index: int, interval_ms: int, pattern: str) -> int:
    """
    Delay (ms) before firing request ``index`` of a burst.

    ``exponential`` grows as interval * 1.05^index, capped at 2000 ms.
    Anything else is a constant interval.
    """
    if (pattern or "").lower() == "exponential":
        return min(int(interval_ms * (EXPONENTIAL_GROWTH ** index)), MAX_BURST_DELAY_MS)
    return int(interval_ms)


def now_ms() -> int:
    return int(time.monotonic() * 1000)


class PermitGate:
    """
    Bounded-permit gate (semaphore) whose size can be widened at runtime.

    ``acquire`` gives up when the optional cancel event fires so blocked
    workers do not outlive a cancelled run.
    """

    def __init__(self, permits: int):
        if permits < 1:
            raise ValueError("PermitGate needs at least one permit")
        self._permits = permits
        self._in_use = 0
        self._cond = threading.Condition()

    @property
    def permits(self) -> int:
        return self._permits

    @property
    def in_use(self) -> int:
        with self._cond:
            return self._in_use

    def acquire(self, cancel_event: Optional[threading.Event] = None, poll: float = 0.05) -> bool:
        with self._cond:
            while self._in_use >= self._permits:
                if cancel_event is not None and cancel_event.is_set():
                    return False
                self._cond.wait(poll if cancel_event is not None else None)
            self._in_use += 1
            return True

    def release(self):
        with self._cond:
            if self._in_use == 0:
                raise RuntimeError("PermitGate released more times than acquired")
            self._in_use -= 1
            self._cond.notify()

    def resize(self, permits: int) -> int:
        """Widens the gate. Never narrows; returns the effective size."""
        with self._cond:
            if permits > self._permits:
                self._permits = permits
                self._cond.notify_all()
            return self._permits

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


def fan_out(tasks: Iterable[Callable[[], Any]], max_workers: int, name: str = "probe") -> List[Any]:
    """
    Submits every task to a bounded worker pool in iteration order and blocks
    until all of them finish. Results come back in submission order; the first
    task exception is re-raised after the barrier.
    """
    with ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix=name) as pool:
        futures = [pool.submit(t) for t in tasks]
    return [f.result() for f in futures]


def sustained_loop(workers: int, window_sec: float, body: Callable[[int], None],
                   cancel_event: threading.Event, name: str = "sustained") -> int:
    """
    Runs ``body(worker_index)`` repeatedly on ``workers`` threads until the
    time window elapses or the run is cancelled. ``body`` does its own pacing.
    Returns the number of completed iterations.
    """
    deadline = time.monotonic() + window_sec
    counter = {"n": 0}
    lock = threading.Lock()

    def worker(index: int):
        while time.monotonic() < deadline and not cancel_event.is_set():
            body(index)
            with lock:
                counter["n"] += 1

    fan_out([lambda i=i: worker(i) for i in range(workers)], workers, name=name)
    logger.debug("Sustained loop finished: %d iterations across %d workers", counter["n"], workers)
    return counter["n"]
