"""Reporting module."""

from .value_report import ReportBuilder, ValueReport, ValueReportRecord

__all__ = [
    "ReportBuilder",
    "ValueReport",
    "ValueReportRecord",
]
