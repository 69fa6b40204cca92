"""
Circuit breaker for the places and directions lookups.

A failing upstream (rate limited Overpass, unreachable OSRM) trips the
breaker, after which lookups answer "no result" immediately instead of
sending more requests. There is no retry: a failed request is dropped for
the current generation cycle and the batch delay is the only rate limit.
"""
import functools
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"            # rejecting calls until the cool-down ends
    HALF_OPEN = "half_open"  # letting probe calls through


class CircuitOpenError(Exception):
    """The breaker rejected a call without running it."""
    pass


@dataclass
class CircuitBreaker:
    """
    Failure-counting breaker around one upstream service.

    CLOSED: failures accumulate (a success cancels one); reaching
    ``failure_threshold`` opens the circuit.
    OPEN: calls raise ``CircuitOpenError`` for ``recovery_timeout`` seconds.
    HALF_OPEN: ``half_open_max_calls`` consecutive successes close it, a
    single failure opens it again.

    Usage:
        breaker = CircuitBreaker(name="osrm_api")
        fetch = breaker.call_async(fetch_route)
    """
    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0  # seconds
    half_open_max_calls: int = 3
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failures: int = field(default=0, init=False)
    _successes: int = field(default=0, init=False)
    _probe_successes: int = field(default=0, init=False)
    _opened_at: Optional[float] = field(default=None, init=False)
    _last_failure_at: Optional[float] = field(default=None, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    @property
    def state(self) -> CircuitState:
        with self._lock:
            if self._state is CircuitState.OPEN and self.clock() - self._opened_at >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                self._probe_successes = 0
                logger.info(f"Circuit '{self.name}' half-open, probing upstream")
            return self._state

    @property
    def is_open(self) -> bool:
        return self.state is CircuitState.OPEN

    def allow_request(self) -> bool:
        return self.state is not CircuitState.OPEN

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self.clock()
        logger.warning(f"Circuit '{self.name}' opened after {self._failures} failure(s)")

    def record_success(self) -> None:
        with self._lock:
            self._successes += 1
            if self._state is CircuitState.HALF_OPEN:
                self._probe_successes += 1
                if self._probe_successes >= self.half_open_max_calls:
                    self._state = CircuitState.CLOSED
                    self._failures = 0
                    logger.info(f"Circuit '{self.name}' closed, upstream recovered")
            elif self._failures:
                self._failures -= 1

    def record_failure(self, error: Exception) -> None:
        with self._lock:
            self._failures += 1
            self._last_failure_at = self.clock()
            logger.warning(f"Circuit '{self.name}' failure: {error}")
            if self._state is CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
                self._open()

    def call_async(self, func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        """Wrap a coroutine function so its outcome feeds the breaker."""
        @functools.wraps(func)
        async def guarded(*args, **kwargs) -> T:
            if not self.allow_request():
                raise CircuitOpenError(
                    f"Circuit '{self.name}' is open, skipping call for up to {self.recovery_timeout:.0f}s"
                )
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                self.record_failure(e)
                raise
            self.record_success()
            return result

        return guarded

    def get_status(self) -> Dict[str, Any]:
        state = self.state
        with self._lock:
            since_failure = None
            if self._last_failure_at is not None:
                since_failure = round(self.clock() - self._last_failure_at, 1)
            return {
                'name': self.name,
                'state': state.value,
                'failure_count': self._failures,
                'success_count': self._successes,
                'seconds_since_failure': since_failure,
                'failure_threshold': self.failure_threshold,
                'recovery_timeout_seconds': self.recovery_timeout,
            }
