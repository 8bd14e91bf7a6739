from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from edutrack.models import AttendanceRecord, CoinTransaction, Student


@dataclass
class SectionStats:
    section: str
    students: int = 0
    attendance: int = 0
    coins: int = 0


@dataclass
class AttendanceReportRow:
    student_id: str
    name: str
    roll_no: str
    section: str
    present_days: int
    total_days: int
    percentage: int


@dataclass
class StudentProfile:
    student: Student
    attendance: list[AttendanceRecord] = field(default_factory=list)
    transactions: list[CoinTransaction] = field(default_factory=list)

    @property
    def present_days(self) -> int:
        return len(self.attendance)

    @property
    def coins_earned(self) -> int:
        return sum(t.amount for t in self.transactions if t.amount > 0)

    @property
    def coins_spent(self) -> int:
        return -sum(t.amount for t in self.transactions if t.amount < 0)


def section_stats(students: Iterable[Student], attendance: Iterable[AttendanceRecord]) -> list[SectionStats]:
    stats: dict[str, SectionStats] = {}
    section_of: dict = {}
    for student in students:
        entry = stats.setdefault(student.section, SectionStats(section=student.section))
        entry.students += 1
        entry.coins += student.coins
        section_of[student.id] = student.section

    for record in attendance:
        section = section_of.get(record.user_id)
        if section is not None:
            stats[section].attendance += 1

    return [stats[s] for s in sorted(stats)]


def attendance_report(
    students: Iterable[Student],
    attendance: Iterable[AttendanceRecord],
    start: date,
    end: date,
    section: Optional[str] = None,
) -> list[AttendanceReportRow]:
    """Present days per student in ``[start, end]``, every calendar day counted as a school day."""
    if end < start:
        raise ValueError("end date must not be before start date")

    total_days = max(1, (end - start).days + 1)
    present: dict = {}
    for record in attendance:
        if start <= record.date <= end:
            present[record.user_id] = present.get(record.user_id, 0) + 1

    rows = []
    for student in students:
        if section not in (None, "", "All") and student.section != section:
            continue
        count = present.get(student.id, 0)
        rows.append(AttendanceReportRow(
            student_id=str(student.id),
            name=student.name,
            roll_no=student.roll_no,
            section=student.section,
            present_days=count,
            total_days=total_days,
            percentage=round(count / total_days * 100),
        ))
    return rows


def student_profile(
    student: Student,
    attendance: Iterable[AttendanceRecord],
    transactions: Iterable[CoinTransaction],
) -> StudentProfile:
    return StudentProfile(
        student=student,
        attendance=sorted(
            (a for a in attendance if a.user_id == student.id),
            key=lambda a: a.timestamp, reverse=True,
        ),
        transactions=sorted(
            (t for t in transactions if t.student_id == student.id),
            key=lambda t: t.timestamp, reverse=True,
        ),
    )
