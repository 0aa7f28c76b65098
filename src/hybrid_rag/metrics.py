"""
Counters and timings emitted by the retrieval core.

The core only records values; formatting and export belong to an external
metrics pipeline that reads from a MetricsSink implementation.
"""

from collections import defaultdict
from threading import Lock
from typing import Dict, List, Protocol


class MetricsSink(Protocol):
    """Destination for core counters and timings."""

    def increment(self, name: str, value: float = 1.0) -> None: ...

    def observe(self, name: str, value: float) -> None: ...


class NullMetrics:
    """Sink that drops everything."""

    def increment(self, name: str, value: float = 1.0) -> None:
        pass

    def observe(self, name: str, value: float) -> None:
        pass


class InMemoryMetrics:
    """
    Thread-safe in-process sink.

    Keeps running counters and the raw samples of every observation so an
    exporter (or a test) can read them back.
    """

    def __init__(self, max_samples: int = 10_000):
        self.max_samples = max_samples
        self._counters: Dict[str, float] = defaultdict(float)
        self._samples: Dict[str, List[float]] = defaultdict(list)
        self._lock = Lock()

    def increment(self, name: str, value: float = 1.0) -> None:
        with self._lock:
            self._counters[name] += value

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            samples = self._samples[name]
            samples.append(value)
            if len(samples) > self.max_samples:
                del samples[0]

    def counter(self, name: str) -> float:
        with self._lock:
            return self._counters.get(name, 0.0)

    def samples(self, name: str) -> List[float]:
        with self._lock:
            return list(self._samples.get(name, ()))

    def snapshot(self) -> Dict:
        """
        Get all recorded metrics.

        Returns:
            Dict with counters and per-timing count/avg/max
        """
        with self._lock:
            timings = {
                name: {
                    "count": len(values),
                    "avg": sum(values) / len(values) if values else 0.0,
                    "max": max(values) if values else 0.0,
                }
                for name, values in self._samples.items()
            }
            return {"counters": dict(self._counters), "timings": timings}

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._samples.clear()
