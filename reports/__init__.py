"""
Reports Package

Aggregations over the roster, attendance and coin ledger, plus the
optional AI-written executive summary.
"""

from .stats import (
    SectionStats,
    AttendanceReportRow,
    StudentProfile,
    section_stats,
    attendance_report,
    student_profile,
)
from .summary import SummaryGenerator, build_summary_stats

__all__ = [
    "SectionStats",
    "AttendanceReportRow",
    "StudentProfile",
    "section_stats",
    "attendance_report",
    "student_profile",
    "SummaryGenerator",
    "build_summary_stats",
]
