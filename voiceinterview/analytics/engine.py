"""Transcript analytics: behavioral metrics, insights and recommendations."""

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence

from ..models.analytics import AnalyticsReport, InterviewMetrics
from ..models.errors import ErrorRecord
from ..models.session import Message, MessageRole, Session
from . import keywords

logger = logging.getLogger(__name__)

SILENCE_THRESHOLD_MS = 5000.0

_WORD_PATTERNS: Dict[str, "re.Pattern"] = {}


def _word_pattern(word: str) -> "re.Pattern":
    pattern = _WORD_PATTERNS.get(word)
    if pattern is None:
        pattern = _WORD_PATTERNS[word] = re.compile(rf"\b{re.escape(word)}\b")
    return pattern


def _count_words(text: str, words: Iterable[str]) -> int:
    return sum(len(_word_pattern(word).findall(text)) for word in words)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _gap_ms(earlier: Message, later: Message) -> float:
    return (later.timestamp - earlier.timestamp).total_seconds() * 1000.0


def _match_tags(text: str, dictionary: Dict[str, List[str]]) -> List[str]:
    return [tag for tag, words in dictionary.items() if any(word in text for word in words)]


class TranscriptAnalyticsEngine:
    """Computes an AnalyticsReport from a finished session's message log.

    ``generate_report`` is a pure function of its inputs: it never mutates
    the messages, session or errors, keeps no state between calls and
    returns identical reports for identical inputs. Message order matters;
    response times and silence periods are computed over consecutive
    messages in log order.
    """

    def generate_report(self,
                        messages: Sequence[Message],
                        session: Session,
                        errors: Optional[Sequence[ErrorRecord]] = None) -> AnalyticsReport:
        """Analyze a transcript.

        Args:
            messages: Message log in arrival order
            session: Session the transcript belongs to
            errors: Error records of the session

        Returns:
            Immutable AnalyticsReport
        """
        messages = tuple(messages)
        errors = tuple(errors or ())

        metrics = self.analyze_messages(messages)
        all_text = " ".join(m.content.lower() for m in messages)

        overall = (metrics.confidence_score + metrics.fluency_score
                   + metrics.engagement_score + metrics.response_depth_score) / 4.0

        report = AnalyticsReport(
            session_id=session.id,
            metrics=metrics,
            insights=tuple(self.generate_insights(metrics)),
            recommendations=tuple(self.generate_recommendations(metrics, errors)),
            skills_assessed=tuple(self.extract_skills(all_text)),
            behavioral_indicators=tuple(self.extract_behavioral_indicators(all_text)),
            interview_quality=self.quality_band(overall),
        )
        logger.info(f"Analytics for session {session.id}: quality={report.interview_quality}, "
                    f"{metrics.message_count} messages, {len(metrics.topic_coverage)} topics")
        return report

    def analyze_messages(self, messages: Sequence[Message]) -> InterviewMetrics:
        candidate = [m for m in messages if m.role == MessageRole.USER]
        total_duration = _gap_ms(messages[0], messages[-1]) if len(messages) >= 2 else 0.0

        return InterviewMetrics(
            total_duration_ms=total_duration,
            message_count=len(messages),
            candidate_responses=len(candidate),
            average_response_time_ms=self.average_response_time(candidate),
            interaction_rate=(len(messages) / total_duration) * 60000.0 if total_duration > 0 else 0.0,
            silence_periods_ms=tuple(self.silence_periods(messages)),
            topic_coverage=tuple(self.topic_coverage(messages)),
            confidence_score=self.confidence_score(candidate),
            fluency_score=self.fluency_score(candidate),
            engagement_score=self.engagement_score(candidate),
            response_depth_score=self.response_depth_score(candidate),
        )

    @staticmethod
    def average_response_time(candidate: Sequence[Message]) -> float:
        gaps = [_gap_ms(a, b) for a, b in zip(candidate, candidate[1:])]
        return sum(gaps) / len(gaps) if gaps else 0.0

    @staticmethod
    def silence_periods(messages: Sequence[Message]) -> List[float]:
        gaps = (_gap_ms(a, b) for a, b in zip(messages, messages[1:]))
        return [gap for gap in gaps if gap > SILENCE_THRESHOLD_MS]

    @staticmethod
    def topic_coverage(messages: Sequence[Message]) -> List[str]:
        text = " ".join(m.content.lower() for m in messages)
        return _match_tags(text, keywords.TOPIC_KEYWORDS)

    @staticmethod
    def confidence_score(candidate: Sequence[Message]) -> float:
        text = " ".join(m.content.lower() for m in candidate)
        score = 50.0
        score += 3 * _count_words(text, keywords.CONFIDENCE_INDICATORS)
        score -= 2 * _count_words(text, keywords.UNCERTAINTY_INDICATORS)
        return _clamp(score)

    @staticmethod
    def fluency_score(candidate: Sequence[Message]) -> float:
        # 25% length, 50% complex-message ratio, 25% vocabulary diversity
        if not candidate:
            return 0.0
        average_length = sum(len(m.content) for m in candidate) / len(candidate)
        complex_count = sum(
            1 for m in candidate if any(marker in m.content for marker in keywords.COMPLEXITY_MARKERS))
        words = " ".join(m.content for m in candidate).lower().split()
        unique_long = {w for w in words if len(w) > 3}
        diversity = len(unique_long) / max(len(words), 1)

        score = (25 * min(average_length / 50.0, 1.0)
                 + 50 * (complex_count / len(candidate))
                 + 25 * min(diversity, 1.0))
        return _clamp(score)

    @staticmethod
    def engagement_score(candidate: Sequence[Message]) -> float:
        text = " ".join(m.content.lower() for m in candidate)
        score = 30.0
        score += 5 * _count_words(text, keywords.ENGAGEMENT_INDICATORS)
        score += 10 * sum(m.content.count("?") for m in candidate)
        return _clamp(score)

    @staticmethod
    def response_depth_score(candidate: Sequence[Message]) -> float:
        # 50% length, 30% detailed-message ratio, 20% example ratio
        if not candidate:
            return 0.0
        average_length = sum(len(m.content) for m in candidate) / len(candidate)
        detailed = sum(1 for m in candidate if len(m.content) > 100)
        examples = sum(
            1 for m in candidate if any(marker in m.content.lower() for marker in keywords.EXAMPLE_MARKERS))

        score = (50 * min(average_length / 150.0, 1.0)
                 + 30 * (detailed / len(candidate))
                 + 20 * (examples / len(candidate)))
        return _clamp(score)

    @staticmethod
    def extract_skills(text: str) -> List[str]:
        found: List[str] = []
        for dictionary in (keywords.UNIVERSAL_SKILLS, keywords.TECHNICAL_SKILLS, keywords.INDUSTRY_SKILLS):
            for skill in _match_tags(text, dictionary):
                if skill not in found:
                    found.append(skill)
        return found

    @staticmethod
    def extract_behavioral_indicators(text: str) -> List[str]:
        return [name for name, pattern in keywords.BEHAVIORAL_PATTERNS if pattern.search(text)]

    @staticmethod
    def quality_band(overall_score: float) -> str:
        if overall_score >= 80:
            return "excellent"
        if overall_score >= 65:
            return "good"
        if overall_score >= 45:
            return "fair"
        return "poor"

    @staticmethod
    def generate_insights(metrics: InterviewMetrics) -> List[str]:
        insights = []

        if metrics.total_duration_ms < 5 * 60 * 1000:
            insights.append("Interview was quite short. Consider longer sessions for comprehensive assessment.")
        elif metrics.total_duration_ms > 30 * 60 * 1000:
            insights.append("Comprehensive interview duration - good opportunity for thorough evaluation.")

        if metrics.interaction_rate < 0.5:
            insights.append("Limited interaction detected. Candidate may benefit from more engaging questions.")
        elif metrics.interaction_rate > 2:
            insights.append("High interaction rate - shows good conversational flow.")

        if metrics.confidence_score < 30:
            insights.append("Candidate showed some uncertainty. Consider supportive questioning to build confidence.")
        elif metrics.confidence_score > 80:
            insights.append("Candidate demonstrated strong confidence in responses.")

        if metrics.engagement_score > 70:
            insights.append("High engagement level - candidate shows genuine interest.")
        elif metrics.engagement_score < 40:
            insights.append("Limited engagement signals detected. Consider more interactive questions.")

        if metrics.response_depth_score > 70:
            insights.append("Candidate provided detailed, thoughtful responses with good examples.")
        elif metrics.response_depth_score < 40:
            insights.append("Responses could be more detailed. Encourage elaboration with follow-up questions.")

        if len(metrics.topic_coverage) >= 5:
            insights.append("Excellent topic coverage - well-rounded discussion across multiple areas.")
        elif len(metrics.topic_coverage) < 3:
            insights.append("Limited topic coverage. Consider diversifying question types for broader assessment.")

        return insights

    @staticmethod
    def generate_recommendations(metrics: InterviewMetrics, errors: Sequence[ErrorRecord]) -> List[str]:
        recommendations = []

        if errors:
            recommendations.append("Consider testing audio setup before starting future interviews.")
        if metrics.fluency_score < 50:
            recommendations.append("Practice expressing ideas clearly and organizing thoughts before speaking.")
        if metrics.candidate_responses < 5:
            recommendations.append(
                "Try to provide more detailed responses to showcase your knowledge and experience.")
        if metrics.confidence_score < 50:
            recommendations.append("Practice common interview questions to build confidence in your responses.")
        if metrics.response_depth_score < 50:
            recommendations.append("Use specific examples and stories to illustrate your points more effectively.")
        if len(metrics.topic_coverage) < 4:
            recommendations.append("Try to cover diverse topics to demonstrate your well-rounded capabilities.")

        return recommendations
