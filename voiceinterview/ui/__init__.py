"""Console output."""

from .report_view import ReportView

__all__ = [
    'ReportView'
]
