"""Analytics and performance report models."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Tuple


@dataclass(frozen=True)
class InterviewMetrics:
    """Quantitative metrics computed from a finished transcript."""
    total_duration_ms: float
    message_count: int
    candidate_responses: int
    average_response_time_ms: float
    interaction_rate: float  # Messages per minute
    silence_periods_ms: Tuple[float, ...]
    topic_coverage: Tuple[str, ...]
    confidence_score: float
    fluency_score: float
    engagement_score: float
    response_depth_score: float


@dataclass(frozen=True)
class AnalyticsReport:
    """Immutable analytics report for one finished session."""
    session_id: str
    metrics: InterviewMetrics
    insights: Tuple[str, ...]
    recommendations: Tuple[str, ...]
    skills_assessed: Tuple[str, ...]
    behavioral_indicators: Tuple[str, ...]
    interview_quality: str  # excellent | good | fair | poor

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        # Tuples become lists so the JSON form is stable.
        data["metrics"]["silence_periods_ms"] = list(self.metrics.silence_periods_ms)
        data["metrics"]["topic_coverage"] = list(self.metrics.topic_coverage)
        for key in ("insights", "recommendations", "skills_assessed", "behavioral_indicators"):
            data[key] = list(data[key])
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalyticsReport":
        metrics = dict(data["metrics"])
        metrics["silence_periods_ms"] = tuple(metrics["silence_periods_ms"])
        metrics["topic_coverage"] = tuple(metrics["topic_coverage"])
        return cls(
            session_id=data["session_id"],
            metrics=InterviewMetrics(**metrics),
            insights=tuple(data["insights"]),
            recommendations=tuple(data["recommendations"]),
            skills_assessed=tuple(data["skills_assessed"]),
            behavioral_indicators=tuple(data["behavioral_indicators"]),
            interview_quality=data["interview_quality"],
        )


@dataclass
class PerformanceMetrics:
    """Connection and messaging performance of a live session."""
    connection_time_ms: float = 0.0
    first_response_time_ms: float = 0.0
    average_latency_ms: float = 0.0
    messages_sent: int = 0
    messages_received: int = 0
    reconnections: int = 0
    errors: int = 0
    uptime_ms: float = 0.0


@dataclass
class PerformanceReport:
    """Performance metrics plus derived analysis."""
    metrics: PerformanceMetrics
    analysis: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
