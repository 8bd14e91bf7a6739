"""
Unit Tests for report aggregation and the AI summary generator
"""

from datetime import date, datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

from edutrack.models import AttendanceRecord, CoinTransaction, Student, UserRole
from reports import SummaryGenerator, attendance_report, build_summary_stats, section_stats, student_profile
from reports.summary import EMPTY_MESSAGE, FAILED_MESSAGE, MISSING_KEY_MESSAGE

NOW = datetime(2025, 9, 2, 9, 0, tzinfo=timezone.utc)


def make_student(name, roll_no, section, coins=0):
    return Student(id=uuid4(), name=name, roll_no=roll_no, section=section, coins=coins)


def present(student, day):
    return AttendanceRecord(
        id=uuid4(), user_id=student.id, role=UserRole.STUDENT,
        date=day, timestamp=NOW, marked_by="TEACHER",
    )


def tx(student, amount, minute=0):
    return CoinTransaction(
        id=uuid4(), student_id=student.id, amount=amount,
        timestamp=NOW.replace(minute=minute), awarded_by="TEACHER", reason="Teacher Award",
    )


@pytest.fixture
def roster():
    return [
        make_student("Asha Rao", "101", "B", coins=300),
        make_student("Bilal Khan", "102", "A", coins=100),
        make_student("Chitra Nair", "103", "A", coins=50),
    ]


class TestSectionStats:

    def test_grouped_and_sorted(self, roster):
        asha, bilal, chitra = roster
        attendance = [present(asha, date(2025, 9, 1)), present(bilal, date(2025, 9, 1)),
                      present(bilal, date(2025, 9, 2))]

        stats = section_stats(roster, attendance)

        assert [s.section for s in stats] == ["A", "B"]
        assert (stats[0].students, stats[0].coins, stats[0].attendance) == (2, 150, 2)
        assert (stats[1].students, stats[1].coins, stats[1].attendance) == (1, 300, 1)

    def test_teacher_records_ignored(self, roster):
        stray = AttendanceRecord(id=uuid4(), user_id=uuid4(), role=UserRole.TEACHER,
                                 date=date(2025, 9, 1), timestamp=NOW, marked_by="ADMIN")
        assert sum(s.attendance for s in section_stats(roster, [stray])) == 0


class TestAttendanceReport:

    def test_percentage_over_inclusive_range(self, roster):
        asha = roster[0]
        attendance = [present(asha, date(2025, 9, d)) for d in (1, 2, 3, 10)]

        rows = attendance_report(roster, attendance, date(2025, 9, 1), date(2025, 9, 4))

        by_roll = {r.roll_no: r for r in rows}
        assert by_roll["101"].present_days == 3
        assert by_roll["101"].total_days == 4
        assert by_roll["101"].percentage == 75
        assert by_roll["102"].percentage == 0

    def test_section_filter(self, roster):
        rows = attendance_report(roster, [], date(2025, 9, 1), date(2025, 9, 1), section="A")
        assert sorted(r.roll_no for r in rows) == ["102", "103"]
        assert len(attendance_report(roster, [], date(2025, 9, 1), date(2025, 9, 1), section="All")) == 3

    def test_reversed_range_rejected(self, roster):
        with pytest.raises(ValueError):
            attendance_report(roster, [], date(2025, 9, 2), date(2025, 9, 1))


class TestStudentProfile:

    def test_profile_splits_earned_and_spent(self, roster):
        asha, bilal, _ = roster
        transactions = [tx(asha, 400, 1), tx(asha, -100, 2), tx(bilal, 100, 3)]

        profile = student_profile(asha, [present(asha, date(2025, 9, 1))], transactions)

        assert profile.coins_earned == 400
        assert profile.coins_spent == 100
        assert profile.present_days == 1
        assert [t.amount for t in profile.transactions] == [-100, 400]


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def generator_with(completions):
    generator = SummaryGenerator(api_key=None)
    generator.client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return generator


class TestSummaryGenerator:

    def test_missing_key_returns_placeholder(self, monkeypatch, roster):
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        generator = SummaryGenerator()
        assert not generator.is_available
        assert generator.generate(roster, [], []) == MISSING_KEY_MESSAGE

    def test_prompt_carries_aggregates(self, roster):
        completions = FakeCompletions(content="## Summary\nAll good.")
        generator = generator_with(completions)

        report = generator.generate(roster, [present(roster[0], date(2025, 9, 1))], [tx(roster[0], 300)])

        assert report == "## Summary\nAll good."
        user_prompt = completions.calls[0]["messages"][1]["content"]
        assert '"totalStudents": 3' in user_prompt
        assert '"totalCoins": 300' in user_prompt

    def test_provider_error_is_not_fatal(self, roster):
        generator = generator_with(FakeCompletions(error=RuntimeError("rate limited")))
        assert generator.generate(roster, [], []) == FAILED_MESSAGE

    def test_empty_completion(self, roster):
        generator = generator_with(FakeCompletions(content=""))
        assert generator.generate(roster, [], []) == EMPTY_MESSAGE

    def test_summary_stats(self, roster):
        stats = build_summary_stats(roster, [], [tx(roster[1], 100), tx(roster[1], -40)])
        assert stats["totalCoins"] == 60
        assert stats["sectionStats"]["A"] == {"coins": 150, "attendance": 0}
