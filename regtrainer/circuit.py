import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CircuitSnapshot:
    open: bool
    consecutive_failures: int


class CircuitBreaker:
    """Guards the provider with a deterministic half-open policy.

    While closed every call is admitted. A server-class failure opens the
    circuit; while open, exactly one probe call is admitted per ``cooldown``
    window. Any provider success closes it again.

    ``open`` and ``consecutive_failures`` only change together under the
    lock, so concurrent callers (threads or tasks) never observe one updated
    without the other.
    """

    def __init__(self, cooldown: float = 30.0, clock: Callable[[], float] = time.monotonic):
        self.cooldown = cooldown
        self._clock = clock
        self._lock = threading.Lock()
        self._open = False
        self._consecutive_failures = 0
        self._window_start: Optional[float] = None

    def snapshot(self) -> CircuitSnapshot:
        with self._lock:
            return CircuitSnapshot(self._open, self._consecutive_failures)

    def allow_request(self) -> bool:
        with self._lock:
            if not self._open:
                return True
            now = self._clock()
            if self._window_start is None or now - self._window_start >= self.cooldown:
                self._window_start = now
                logger.info("Circuit open, admitting probe call")
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            if self._open:
                logger.info(
                    "Circuit closed after %d consecutive failures",
                    self._consecutive_failures,
                )
            self._open = False
            self._consecutive_failures = 0
            self._window_start = None

    def record_failure(self, opens: bool = False) -> None:
        with self._lock:
            self._consecutive_failures += 1
            if opens:
                if not self._open:
                    logger.warning(
                        "Circuit opened after %d consecutive failures",
                        self._consecutive_failures,
                    )
                self._open = True
                self._window_start = self._clock()
