"""In-process counters and timings for image operations.

Every facade operation bumps ``"<backend>.<operation>"`` and records how long
the backend call took under the same key; the command-line helpers use
``"tools.<helper>"``. Nothing is exported anywhere: callers take a
``snapshot()`` when they want numbers.

Usage:
    from image_processor.metrics import metrics
    with metrics.track("pillow.resize"):
        ...
    metrics.snapshot()["counters"]["pillow.resize"]
"""

from __future__ import annotations

import time
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from threading import RLock
from typing import Any


class OperationMetrics:
    def __init__(self) -> None:
        self._counters: dict[str, int] = defaultdict(int)
        self._timings: dict[str, list[float]] = defaultdict(list)
        self._failures: dict[str, int] = defaultdict(int)
        self._lock = RLock()

    def inc(self, key: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[key] += int(amount)

    @contextmanager
    def track(self, key: str) -> Iterator[None]:
        """Count one call of ``key``, time it, and count it as failed if it raises."""
        self.inc(key)
        start = time.perf_counter()
        try:
            yield
        except BaseException:
            with self._lock:
                self._failures[key] += 1
            raise
        finally:
            elapsed = time.perf_counter() - start
            with self._lock:
                self._timings[key].append(elapsed)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "failures": dict(self._failures),
                "timings": {k: list(v) for k, v in self._timings.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._failures.clear()
            self._timings.clear()


metrics = OperationMetrics()
