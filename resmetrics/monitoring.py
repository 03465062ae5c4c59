"""In-process metric instruments and the API freshness histogram."""

from __future__ import annotations

import math
import threading
from bisect import bisect_left
from collections.abc import Callable, Iterable, Sequence
from typing import Any

DEF_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


def exponential_buckets(start: float, factor: float, count: int) -> list[float]:
    """Return ``count`` bucket bounds, the first ``start``, each ``factor`` times the last."""
    if count < 1:
        raise ValueError("exponential_buckets needs a positive count")
    if start <= 0:
        raise ValueError("exponential_buckets needs a positive start value")
    if factor <= 1:
        raise ValueError("exponential_buckets needs a factor greater than 1")
    buckets = []
    bound = float(start)
    for _ in range(count):
        buckets.append(bound)
        bound *= factor
    return buckets


class Histogram:
    """Counts observations into buckets with inclusive upper bounds."""

    def __init__(self, buckets: Iterable[float]) -> None:
        bounds = tuple(float(b) for b in buckets)
        if any(a >= b for a, b in zip(bounds, bounds[1:])):
            raise ValueError("histogram buckets must be strictly increasing")
        self._bounds = bounds
        self._counts = [0] * len(bounds)
        self._sum = 0.0
        self._count = 0
        self._lock = threading.Lock()

    @property
    def sum(self) -> float:
        return self._sum

    @property
    def count(self) -> int:
        return self._count

    def observe(self, value: float) -> None:
        index = bisect_left(self._bounds, value)
        with self._lock:
            if index < len(self._counts):
                self._counts[index] += 1
            self._sum += value
            self._count += 1

    def cumulative_counts(self) -> list[tuple[float, int]]:
        """Return ``(upper bound, observations at or below it)``, ending with infinity."""
        with self._lock:
            result = []
            running = 0
            for bound, count in zip(self._bounds, self._counts):
                running += count
                result.append((bound, running))
            result.append((math.inf, self._count))
        return result


class Counter:
    """A monotonically increasing value."""

    def __init__(self) -> None:
        self._value = 0.0
        self._lock = threading.Lock()

    @property
    def value(self) -> float:
        return self._value

    def inc(self, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError("counter cannot decrease")
        with self._lock:
            self._value += amount


class Gauge:
    """A value that can go up and down."""

    def __init__(self) -> None:
        self._value = 0.0
        self._lock = threading.Lock()

    @property
    def value(self) -> float:
        return self._value

    def set(self, value: float) -> None:
        with self._lock:
            self._value = float(value)

    def inc(self, amount: float = 1.0) -> None:
        with self._lock:
            self._value += amount


class _MetricVec:
    """A family of instruments distinguished by label values."""

    def __init__(
        self,
        factory: Callable[[], Any],
        name: str,
        help_text: str = "",
        label_names: Sequence[str] = (),
        namespace: str = "",
        subsystem: str = "",
    ) -> None:
        self._factory = factory
        self.name = name
        self.help_text = help_text
        self.label_names = tuple(label_names)
        self.namespace = namespace
        self.subsystem = subsystem
        self._children: dict[tuple[str, ...], Any] = {}
        self._lock = threading.Lock()

    @property
    def full_name(self) -> str:
        return "_".join(part for part in (self.namespace, self.subsystem, self.name) if part)

    @property
    def children(self) -> dict[tuple[str, ...], Any]:
        with self._lock:
            return dict(self._children)

    def _child(self, args: tuple[Any, ...]) -> Any:
        if len(args) != len(self.label_names):
            raise ValueError(
                f"{self.full_name} expects {len(self.label_names)} label values, got {len(args)}"
            )
        key = tuple(str(value) for value in args)
        with self._lock:
            child = self._children.get(key)
            if child is None:
                child = self._children[key] = self._factory()
            return child

    def _clear(self) -> None:
        with self._lock:
            self._children.clear()


class HistogramVec(_MetricVec):
    """A family of histograms sharing one set of buckets."""

    def __init__(
        self,
        name: str,
        buckets: Iterable[float] = DEF_BUCKETS,
        help_text: str = "",
        label_names: Sequence[str] = (),
        namespace: str = "",
        subsystem: str = "",
    ) -> None:
        self.buckets = tuple(buckets)
        Histogram(self.buckets)
        super().__init__(
            lambda: Histogram(self.buckets), name, help_text, label_names, namespace, subsystem
        )

    def labels(self, *args: str) -> Histogram:
        """Return the histogram for the given label values, creating it if needed."""
        return self._child(args)

    def reset(self) -> None:
        """Drop every histogram in the family."""
        self._clear()


class CounterVec(_MetricVec):
    """A family of counters."""

    def __init__(
        self,
        name: str,
        help_text: str = "",
        label_names: Sequence[str] = (),
        namespace: str = "",
        subsystem: str = "",
    ) -> None:
        super().__init__(Counter, name, help_text, label_names, namespace, subsystem)

    def labels(self, *args: str) -> Counter:
        """Return the counter for the given label values, creating it if needed."""
        return self._child(args)

    def reset(self) -> None:
        """Drop every counter in the family."""
        self._clear()


class GaugeVec(_MetricVec):
    """A family of gauges."""

    def __init__(
        self,
        name: str,
        help_text: str = "",
        label_names: Sequence[str] = (),
        namespace: str = "",
        subsystem: str = "",
    ) -> None:
        super().__init__(Gauge, name, help_text, label_names, namespace, subsystem)

    def labels(self, *args: str) -> Gauge:
        """Return the gauge for the given label values, creating it if needed."""
        return self._child(args)

    def reset(self) -> None:
        """Drop every gauge in the family."""
        self._clear()


METRIC_FRESHNESS = HistogramVec(
    namespace="metrics_server",
    subsystem="api",
    name="metric_freshness_seconds",
    help_text="Freshness of metrics exported",
    buckets=exponential_buckets(1, 1.364, 20),
)


def register_api_metrics(register: Callable[[_MetricVec], Any]) -> Any:
    """Register the freshness histogram of exported metrics."""
    return register(METRIC_FRESHNESS)