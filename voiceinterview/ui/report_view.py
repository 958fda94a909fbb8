"""Rich console rendering of analytics and performance reports."""

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..models.analytics import AnalyticsReport, PerformanceReport

QUALITY_STYLES = {
    "excellent": "bold green",
    "good": "green",
    "fair": "yellow",
    "poor": "red",
}


class ReportView:
    """Prints session reports to the console."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def show_analytics(self, report: AnalyticsReport) -> None:
        metrics = report.metrics
        header = Text.assemble(
            ("Session: ", "bold"), report.session_id, "  |  ",
            ("Quality: ", "bold"), (report.interview_quality.upper(),
                                   QUALITY_STYLES.get(report.interview_quality, "white")),
        )
        self.console.print(Panel(header, style="bright_blue"))

        table = Table(title="Interview Metrics", show_header=True, header_style="bold magenta")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("Duration", f"{metrics.total_duration_ms / 1000:.1f}s")
        table.add_row("Messages", str(metrics.message_count))
        table.add_row("Candidate Responses", str(metrics.candidate_responses))
        table.add_row("Avg Response Time", f"{metrics.average_response_time_ms / 1000:.1f}s")
        table.add_row("Interaction Rate", f"{metrics.interaction_rate:.2f}/min")
        table.add_row("Silence Periods", str(len(metrics.silence_periods_ms)))
        table.add_row("Confidence", f"{metrics.confidence_score:.0f}")
        table.add_row("Fluency", f"{metrics.fluency_score:.0f}")
        table.add_row("Engagement", f"{metrics.engagement_score:.0f}")
        table.add_row("Response Depth", f"{metrics.response_depth_score:.0f}")
        table.add_row("Topics", ", ".join(metrics.topic_coverage) or "-")
        self.console.print(table)

        self._show_list("Skills Assessed", report.skills_assessed, "green")
        self._show_list("Behavioral Indicators", report.behavioral_indicators, "green")
        self._show_list("Insights", report.insights, "blue")
        self._show_list("Recommendations", report.recommendations, "yellow")

    def show_performance(self, report: PerformanceReport) -> None:
        metrics = report.metrics
        table = Table(title="Connection Performance", show_header=True, header_style="bold magenta")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("Connection Time", f"{metrics.connection_time_ms:.0f}ms")
        table.add_row("First Response", f"{metrics.first_response_time_ms:.0f}ms")
        table.add_row("Average Latency", f"{metrics.average_latency_ms:.0f}ms")
        table.add_row("Sent / Received", f"{metrics.messages_sent} / {metrics.messages_received}")
        table.add_row("Reconnections", str(metrics.reconnections))
        table.add_row("Errors", str(metrics.errors))
        table.add_row("Uptime", f"{metrics.uptime_ms / 1000:.1f}s")
        self.console.print(table)
        self._show_list("Analysis", report.analysis, "blue")
        self._show_list("Recommendations", report.recommendations, "yellow")

    def show_error(self, message: str) -> None:
        self.console.print(Panel(Text(message, style="bold red"), title="Interview Error", border_style="red"))

    def _show_list(self, title: str, items, border_style: str) -> None:
        if not items:
            return
        body = Text("\n".join(f"- {item}" for item in items))
        self.console.print(Panel(body, title=title, border_style=border_style))
