"""
Simulation metrics.

In-process counters, gauges and durations for route generation and the
agent fleet, summarised by the health endpoint.

Names in use:
- counters: generation_cycles, generations_suppressed, route_requests,
  routes_built, candidates_skipped
- gauges: active_routes, active_agents
- durations: generation_cycle

Usage:
    from transitsim.metrics import metrics

    metrics.increment("route_requests")
    with metrics.timer("generation_cycle"):
        routes = await build()
"""

import inspect
import logging
import time
from collections import Counter, deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import wraps
from threading import Lock
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

RECENT_WINDOW = 50


@dataclass
class DurationStats:
    """Running summary of one timed block."""
    name: str
    count: int = 0
    total_ms: float = 0.0
    fastest_ms: Optional[float] = None
    slowest_ms: float = 0.0
    recent: deque = field(default_factory=lambda: deque(maxlen=RECENT_WINDOW))

    def add(self, elapsed_ms: float) -> None:
        self.count += 1
        self.total_ms += elapsed_ms
        if self.fastest_ms is None or elapsed_ms < self.fastest_ms:
            self.fastest_ms = elapsed_ms
        self.slowest_ms = max(self.slowest_ms, elapsed_ms)
        self.recent.append(elapsed_ms)

    @property
    def mean_ms(self) -> float:
        if not self.count:
            return 0.0
        return self.total_ms / self.count

    @property
    def last_ms(self) -> Optional[float]:
        return self.recent[-1] if self.recent else None

    def as_dict(self) -> dict:
        return {
            "count": self.count,
            "mean_ms": round(self.mean_ms, 3),
            "fastest_ms": round(self.fastest_ms or 0.0, 3),
            "slowest_ms": round(self.slowest_ms, 3),
            "last_ms": None if self.last_ms is None else round(self.last_ms, 3),
        }


class SimulationMetrics:
    """
    Thread-safe metric store.

    The event loop writes, HTTP handlers read; every access takes the lock.
    """

    def __init__(self, slow_cycle_ms: float = 30000.0):
        # 100 agents in batches of 5 spend ~4s in inter-batch delays alone
        self.slow_cycle_ms = slow_cycle_ms
        self._lock = Lock()
        self._counters: Counter = Counter()
        self._gauges: Dict[str, float] = {}
        self._durations: Dict[str, DurationStats] = {}
        self._started = time.monotonic()

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[name] += amount

    def set_gauge(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[name] = float(value)

    def observe(self, name: str, elapsed_ms: float) -> None:
        """Add one duration sample, warning when it exceeds ``slow_cycle_ms``."""
        with self._lock:
            stats = self._durations.setdefault(name, DurationStats(name=name))
            stats.add(elapsed_ms)
        if elapsed_ms > self.slow_cycle_ms:
            logger.warning(f"{name} took {elapsed_ms:.0f}ms (slow threshold {self.slow_cycle_ms:.0f}ms)")

    @contextmanager
    def timer(self, name: str):
        """Time the enclosed block, including blocks that raise."""
        began = time.perf_counter()
        try:
            yield
        finally:
            self.observe(name, (time.perf_counter() - began) * 1000.0)

    def get_counter(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def get_gauge(self, name: str) -> float:
        with self._lock:
            return self._gauges.get(name, 0.0)

    def get_timing(self, name: str) -> Optional[DurationStats]:
        with self._lock:
            return self._durations.get(name)

    def get_summary(self) -> dict:
        with self._lock:
            return {
                "uptime_seconds": round(time.monotonic() - self._started, 1),
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "timings": {name: s.as_dict() for name, s in self._durations.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._durations.clear()
            self._started = time.monotonic()


metrics = SimulationMetrics()


def timed(name: str):
    """Record every call of the decorated function (sync or async) under ``name``."""
    def decorator(func: Callable) -> Callable:
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def run_async(*args, **kwargs):
                with metrics.timer(name):
                    return await func(*args, **kwargs)
            return run_async

        @wraps(func)
        def run(*args, **kwargs):
            with metrics.timer(name):
                return func(*args, **kwargs)
        return run
    return decorator

