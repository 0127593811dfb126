"""Fixed-interval driver for scrape cycles."""
import enum
import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# Health check multiplier: poller is unhealthy if heartbeat is older than this
HEALTH_CHECK_MULTIPLIER = 3.0
# Minimum health check threshold (seconds)
MIN_HEALTH_CHECK_THRESHOLD = 30.0


class SchedulerState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class Scheduler:
    """
    Runs a cycle every `interval` seconds until stopped.

    Cycles never overlap: the next tick is armed only after the current
    cycle returns, and a cycle that outruns the interval simply delays
    the next one. stop() lets an in-flight cycle finish.

    `clock` measures cycle duration and `ticker(delay)` waits between
    cycles; both can be replaced in tests. The default ticker wakes up
    early when stop() is called.
    """

    def __init__(
        self,
        cycle: Callable[[], object],
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        ticker: Optional[Callable[[float], object]] = None,
    ):
        self._cycle = cycle
        self.interval = interval
        self._clock = clock
        self._stop_requested = threading.Event()
        self._stopped = threading.Event()
        self._ticker = ticker if ticker is not None else self._stop_requested.wait
        self._state = SchedulerState.IDLE
        self._state_lock = threading.Lock()
        self.last_heartbeat = 0.0
        self.cycles_completed = 0

    @property
    def state(self) -> SchedulerState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: SchedulerState) -> None:
        with self._state_lock:
            self._state = state

    def run(self) -> None:
        """Run cycles on the calling thread until stop() is called."""
        with self._state_lock:
            if self._state is not SchedulerState.IDLE:
                raise RuntimeError(f"Scheduler cannot start from state {self._state.value}")
            self._state = SchedulerState.RUNNING
        logger.info(f"Poller loop started, interval {self.interval}s")

        try:
            while not self._stop_requested.is_set():
                self.last_heartbeat = time.time()
                started = self._clock()
                try:
                    self._cycle()
                except Exception:
                    logger.exception("Scrape cycle failed")
                self.cycles_completed += 1

                elapsed = self._clock() - started
                if elapsed > self.interval:
                    logger.warning(
                        f"Scrape cycle took {elapsed:.3f}s, longer than the {self.interval}s interval"
                    )
                if self._stop_requested.is_set():
                    break
                self._ticker(max(0.0, self.interval - elapsed))
        finally:
            self._set_state(SchedulerState.STOPPED)
            self._stopped.set()
            logger.info("Poller loop stopped")

    def start(self) -> threading.Thread:
        """Run the loop on a background (non-daemon) thread."""
        thread = threading.Thread(target=self.run, name="poller")
        thread.start()
        return thread

    def stop(self) -> None:
        """Request a stop. Safe to call from signal handlers and other threads."""
        with self._state_lock:
            if self._state is SchedulerState.IDLE:
                self._state = SchedulerState.STOPPED
                self._stopped.set()
            elif self._state is SchedulerState.RUNNING:
                self._state = SchedulerState.STOPPING
        self._stop_requested.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the scheduler has stopped. Returns False on timeout."""
        return self._stopped.wait(timeout)

    def heartbeat_age(self, now: Optional[float] = None) -> Optional[float]:
        if self.last_heartbeat == 0.0:
            return None
        now = now if now is not None else time.time()
        return now - self.last_heartbeat

    def is_healthy(self, now: Optional[float] = None) -> bool:
        """
        Poller health means the loop is still ticking.
        NOT "all sensors are up".
        """
        age = self.heartbeat_age(now)
        if age is None:
            return False
        return age <= max(MIN_HEALTH_CHECK_THRESHOLD, self.interval * HEALTH_CHECK_MULTIPLIER)
