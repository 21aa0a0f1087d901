"""
Performance Recorder: named timing spans and duration statistics.

Spans are keyed by label only.  Opening a label that is already open
restarts it; closing a label that was never opened raises
``NoPendingSpanError``.  A span that exceeds its expected ceiling is logged
as a warning and flagged on the metric, never raised.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager

from wallet_harness.exceptions import NoPendingSpanError
from wallet_harness.models import DurationStats, PerformanceMetric

logger = logging.getLogger(__name__)


def calculate_stats(durations: list[float]) -> DurationStats | None:
    """Aggregate a list of durations; ``None`` for an empty list.

    ``median`` is the upper-middle element of the sorted values.
    """
    if not durations:
        return None
    ordered = sorted(durations)
    return DurationStats(
        total=len(ordered),
        avg=sum(ordered) / len(ordered),
        min=ordered[0],
        max=ordered[-1],
        median=ordered[len(ordered) // 2],
    )


class PerformanceRecorder:
    """Monotonic start/end bookkeeping for labelled spans."""

    def __init__(self):
        self._pending: dict[str, float] = {}
        self._metrics: list[PerformanceMetric] = []

    def start(self, label: str) -> None:
        if label in self._pending:
            logger.debug("Performance span '%s' restarted before it was closed", label)
        self._pending[label] = time.monotonic()

    def end(self, label: str, expected_max_ms: float | None = None) -> PerformanceMetric:
        started = self._pending.pop(label, None)
        if started is None:
            raise NoPendingSpanError(label)

        return self.record(label, (time.monotonic() - started) * 1000, expected_max_ms)

    def record(self, label: str, duration_ms: float, expected_max_ms: float | None = None) -> PerformanceMetric:
        """Store an already-measured duration, e.g. one timed by the transport."""
        passed = None
        if expected_max_ms is not None:
            passed = duration_ms <= expected_max_ms
            if not passed:
                logger.warning(
                    "Performance warning: %s took %.1fms, expected at most %.1fms",
                    label, duration_ms, expected_max_ms,
                )

        metric = PerformanceMetric(
            label=label,
            duration_ms=round(duration_ms, 3),
            expected_max_ms=expected_max_ms,
            passed=passed,
        )
        self._metrics.append(metric)
        return metric

    @contextmanager
    def span(self, label: str, expected_max_ms: float | None = None) -> Iterator[None]:
        """Time the enclosed block; the metric lands in ``metrics``."""
        self.start(label)
        try:
            yield
        finally:
            self.end(label, expected_max_ms)

    @property
    def pending(self) -> list[str]:
        return list(self._pending)

    @property
    def metrics(self) -> list[PerformanceMetric]:
        return list(self._metrics)

    def durations(self, label: str | None = None) -> list[float]:
        return [m.duration_ms for m in self._metrics if label is None or m.label == label]

    def summary(self, label: str | None = None) -> DurationStats | None:
        return calculate_stats(self.durations(label))
