"""Connection and messaging performance of a live session."""

import logging
import time
from collections import deque
from typing import Callable, Deque, List, Optional

from ..models.analytics import PerformanceMetrics, PerformanceReport

logger = logging.getLogger(__name__)

LATENCY_WINDOW = 50


class SessionPerformanceTracker:
    """Tracks connection time, first response, latency and reliability.

    Latency is measured from a sent message to the next received one and
    averaged over the trailing 50 samples.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.monotonic
        self.metrics = PerformanceMetrics()
        self._session_start: Optional[float] = None
        self._connection_start: Optional[float] = None
        self._last_sent: Optional[float] = None
        self._first_response_recorded = False
        self._latencies: Deque[float] = deque(maxlen=LATENCY_WINDOW)

    def _elapsed_ms(self, since: float) -> float:
        return (self._clock() - since) * 1000.0

    def start_session(self) -> None:
        self._session_start = self._clock()
        self.metrics = PerformanceMetrics()
        self._latencies.clear()
        self._last_sent = None
        self._first_response_recorded = False
        logger.debug("Performance monitoring started")

    def record_connection_start(self) -> None:
        self._connection_start = self._clock()

    def record_connection_success(self) -> None:
        if self._connection_start is not None:
            self.metrics.connection_time_ms = self._elapsed_ms(self._connection_start)
            logger.debug(f"Connection established in {self.metrics.connection_time_ms:.0f}ms")

    def record_first_response(self) -> None:
        if self._first_response_recorded or self._session_start is None:
            return
        self._first_response_recorded = True
        self.metrics.first_response_time_ms = self._elapsed_ms(self._session_start)
        logger.debug(f"First response after {self.metrics.first_response_time_ms:.0f}ms")

    def record_message_sent(self) -> None:
        self.metrics.messages_sent += 1
        self._last_sent = self._clock()

    def record_message_received(self) -> None:
        self.metrics.messages_received += 1
        if self._last_sent is not None:
            self._latencies.append(self._elapsed_ms(self._last_sent))
            self._last_sent = None
            self.metrics.average_latency_ms = sum(self._latencies) / len(self._latencies)

    def record_reconnection(self) -> None:
        self.metrics.reconnections += 1
        logger.warning(f"Reconnection recorded, total: {self.metrics.reconnections}")

    def record_error(self) -> None:
        self.metrics.errors += 1

    def report(self) -> PerformanceReport:
        """Snapshot the metrics with uptime and derived analysis."""
        metrics = PerformanceMetrics(**vars(self.metrics))
        metrics.uptime_ms = self._elapsed_ms(self._session_start) if self._session_start is not None else 0.0
        return PerformanceReport(
            metrics=metrics,
            analysis=self._analyze(metrics),
            recommendations=self._recommend(metrics),
        )

    @staticmethod
    def _analyze(metrics: PerformanceMetrics) -> List[str]:
        analysis = []

        if metrics.connection_time_ms > 5000:
            analysis.append("Slow connection detected (>5s)")
        elif metrics.connection_time_ms < 1000:
            analysis.append("Excellent connection speed (<1s)")

        if metrics.average_latency_ms > 2000:
            analysis.append("High latency detected (>2s average)")
        elif metrics.average_latency_ms < 500:
            analysis.append("Low latency performance (<500ms average)")

        error_rate = metrics.errors / max(metrics.messages_sent, 1)
        if error_rate > 0.1:
            analysis.append("High error rate detected (>10%)")
        elif error_rate < 0.01:
            analysis.append("Excellent reliability (<1% error rate)")

        if metrics.reconnections > 2:
            analysis.append("Frequent reconnections detected")
        elif metrics.reconnections == 0:
            analysis.append("Stable connection maintained")

        return analysis

    @staticmethod
    def _recommend(metrics: PerformanceMetrics) -> List[str]:
        recommendations = []

        if metrics.connection_time_ms > 3000:
            recommendations.append("Check network conditions")
        if metrics.average_latency_ms > 1500:
            recommendations.append("Reduce audio chunk size or move closer to the agent region")
        if metrics.errors > 0:
            recommendations.append("Review error handling and retry logic")
        if metrics.messages_received == 0 and metrics.messages_sent > 0:
            recommendations.append("Check for message delivery issues")

        return recommendations
