import logging
import threading
import time
from typing import Callable, Dict, Optional


def _start_thread(target, *args):
    thread = threading.Thread(target=target, args=args, daemon=True)
    thread.start()
    return thread


class _Countdown:
    __slots__ = ('remaining', 'duration', 'paused', 'on_tick', 'on_end')

    def __init__(self, duration: int, on_tick: Callable[[int], None], on_end: Callable[[], None]):
        self.duration = duration
        self.remaining = duration
        self.paused = False
        self.on_tick = on_tick
        self.on_end = on_end


class CountdownTimer:
    """One-second countdowns keyed by session (competition) id.

    - ``start`` replaces any countdown already registered for the session
    - each tick decrements, then calls ``on_tick(remaining)``
    - reaching zero unregisters the countdown and calls ``on_end()`` once
    - a worker whose countdown was stopped or replaced exits at its next wake-up

    Workers are launched through ``start_background_task`` so the Socket.IO
    server can pick its own concurrency primitive. Passing a launcher that does
    nothing leaves the countdown to be driven by explicit :meth:`tick` calls.
    """

    def __init__(self, start_background_task: Optional[Callable] = None, sleep: Callable[[float], None] = time.sleep,
                 interval: float = 1.0, logger: Optional[logging.Logger] = None, heartbeat_sec: int = 0):
        self._start_task = start_background_task or _start_thread
        self._sleep = sleep
        self._interval = interval
        self._logger = logger or logging.getLogger(__name__)
        self._heartbeat_sec = heartbeat_sec
        self._timers: Dict[str, _Countdown] = {}
        self._lock = threading.Lock()

    def start(self, session_id: str, duration_seconds: int, on_tick: Callable[[int], None],
              on_end: Callable[[], None]) -> None:
        countdown = _Countdown(max(0, int(duration_seconds)), on_tick, on_end)
        with self._lock:
            replaced = self._timers.pop(session_id, None) is not None
            self._timers[session_id] = countdown
        if replaced:
            self._logger.info(f"[timer-replace] competition={session_id}")
        self._logger.info(f"[timer-set] competition={session_id} duration={countdown.duration}s")
        self._start_task(self._worker, session_id, countdown)

    def stop(self, session_id: str) -> None:
        with self._lock:
            countdown = self._timers.pop(session_id, None)
        if countdown is not None:
            self._logger.info(f"[timer-stop] competition={session_id} remaining={countdown.remaining}s")

    def pause(self, session_id: str) -> None:
        with self._lock:
            countdown = self._timers.get(session_id)
            if countdown is None:
                return
            countdown.paused = True

    def resume(self, session_id: str) -> None:
        with self._lock:
            countdown = self._timers.get(session_id)
            if countdown is None:
                return
            countdown.paused = False

    def is_running(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._timers

    def is_paused(self, session_id: str) -> bool:
        with self._lock:
            countdown = self._timers.get(session_id)
            return bool(countdown and countdown.paused)

    def remaining(self, session_id: str) -> Optional[int]:
        with self._lock:
            countdown = self._timers.get(session_id)
            return countdown.remaining if countdown else None

    def clear_all(self) -> None:
        with self._lock:
            session_ids = list(self._timers)
            self._timers.clear()
        if session_ids:
            self._logger.info(f"[timer-clear] stopped={len(session_ids)}")

    def tick(self, session_id: str, countdown: Optional[_Countdown] = None) -> bool:
        """Advance the session's countdown by one interval.

        Returns False once there is nothing left to drive: the countdown
        finished, was stopped, or (when ``countdown`` is given) was replaced.
        """
        with self._lock:
            current = self._timers.get(session_id)
            if current is None or (countdown is not None and current is not countdown):
                return False
            if current.paused:
                return True
            current.remaining = max(0, current.remaining - 1)
            remaining = current.remaining
            finished = remaining == 0
            if finished:
                del self._timers[session_id]

        if self._heartbeat_sec and remaining and remaining % self._heartbeat_sec == 0:
            self._logger.info(f"[timer-heartbeat] competition={session_id} remaining={remaining}s")
        try:
            current.on_tick(remaining)
        except Exception:
            self._logger.exception(f"[timer-tick-error] competition={session_id}")
        if finished:
            self._logger.info(f"[timer-fire] competition={session_id}")
            try:
                current.on_end()
            except Exception:
                self._logger.exception(f"[timer-end-error] competition={session_id}")
            return False
        return True

    def _worker(self, session_id: str, countdown: _Countdown) -> None:
        while True:
            self._sleep(self._interval)
            if not self.tick(session_id, countdown):
                return
