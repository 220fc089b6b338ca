"""
In-process circuit breaker for flaky upstreams.

CLOSED: calls pass through; consecutive failures are counted.
OPEN: calls are refused until `reset_timeout_s` has passed since the circuit
opened, after which the breaker closes again and the counter restarts.

One instance per protected upstream, owned by whoever builds the client.
Not shared across processes.
"""
import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_RESET_TIMEOUT_S = 60


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"


class CircuitOpenError(Exception):
    """Raised instead of calling the upstream while the circuit is open."""


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        reset_timeout_s: float = DEFAULT_RESET_TIMEOUT_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout_s = reset_timeout_s
        self._clock = clock
        self._lock = threading.Lock()
        self._failures = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_close()
            return CircuitState.OPEN if self._opened_at is not None else CircuitState.CLOSED

    @property
    def failure_count(self) -> int:
        return self._failures

    def _maybe_close(self) -> None:
        if self._opened_at is not None and self._clock() - self._opened_at >= self.reset_timeout_s:
            logger.info(f"Circuit {self.name} reset after {self.reset_timeout_s}s")
            self._opened_at = None
            self._failures = 0

    def allow_request(self) -> bool:
        return self.state == CircuitState.CLOSED

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._opened_at = None

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._opened_at is None and self._failures >= self.failure_threshold:
                self._opened_at = self._clock()
                logger.warning(
                    f"Circuit {self.name} OPEN after {self._failures} consecutive failures"
                )

    def reset(self) -> None:
        self.record_success()

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """Run fn through the breaker, recording the outcome."""
        if not self.allow_request():
            raise CircuitOpenError(f"Circuit {self.name} is open")
        try:
            result = fn(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result
