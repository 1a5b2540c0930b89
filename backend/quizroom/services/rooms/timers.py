"""Cancellable one-shot timers for phase deadlines and room cleanup.

Two interchangeable implementations share the same small surface
(``now``, ``call_later``, handle ``cancel``):

- ThreadTimers runs callbacks on daemon threads against the wall clock.
- ManualTimers keeps a virtual clock that only moves when ``advance`` is
  called, so tests can step a room through its phases deterministically.
"""

import heapq
import itertools
import logging
import threading
import time
from typing import Callable, List, Tuple

logger = logging.getLogger(__name__)


class TimerHandle:
    def __init__(self, when: float):
        self.when = when
        self.cancelled = False
        self._timer = None

    def cancel(self) -> None:
        self.cancelled = True
        if self._timer is not None:
            self._timer.cancel()


class ThreadTimers:
    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callable, *args) -> TimerHandle:
        handle = TimerHandle(self.now() + delay)

        def _fire():
            if handle.cancelled:
                return
            try:
                callback(*args)
            except Exception:
                logger.exception(f"[timer-error] callback={getattr(callback, '__name__', callback)}")

        timer = threading.Timer(max(0.0, delay), _fire)
        timer.daemon = True
        handle._timer = timer
        timer.start()
        return handle


class ManualTimers:
    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._queue: List[Tuple[float, int, TimerHandle, Callable, tuple]] = []
        self._seq = itertools.count()
        self._lock = threading.RLock()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable, *args) -> TimerHandle:
        with self._lock:
            handle = TimerHandle(self._now + max(0.0, delay))
            heapq.heappush(self._queue, (handle.when, next(self._seq), handle, callback, args))
            return handle

    def pending(self) -> int:
        with self._lock:
            return sum(1 for entry in self._queue if not entry[2].cancelled)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due callbacks in deadline order."""
        target = self._now + seconds
        while True:
            with self._lock:
                if not self._queue or self._queue[0][0] > target:
                    break
                when, _, handle, callback, args = heapq.heappop(self._queue)
                self._now = max(self._now, when)
            if not handle.cancelled:
                callback(*args)
        self._now = target
