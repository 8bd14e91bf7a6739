from datetime import date
from uuid import UUID

import pytest

from edutrack.models import CreateRegistrationRequest, UserRole
from edutrack.service import InvalidScanPayloadError, NotFoundError
from edutrack.scanner import qr_payload


@pytest.fixture
def teacher(service):
    request = service.submit_registration(CreateRegistrationRequest(
        name="Meera Iyer", email="meera@school.example", role=UserRole.TEACHER,
    ))
    return service.approve_registration(request.id).teacher


class TestMarkAttendance:

    def test_marking_twice_same_day_keeps_one_record(self, service, student):
        day = date(2025, 9, 2)

        first = service.mark_attendance(student.id, UserRole.STUDENT, day, marked_by="TEACHER")
        second = service.mark_attendance(student.id, UserRole.STUDENT, day, marked_by="ADMIN")

        assert first.created is True
        assert second.created is False
        assert second.record.id == first.record.id
        assert len(service.get_attendance(user_id=student.id)) == 1

    def test_different_days_are_separate_records(self, service, student):
        service.mark_attendance(student.id, UserRole.STUDENT, date(2025, 9, 2))
        service.mark_attendance(student.id, UserRole.STUDENT, date(2025, 9, 3))

        assert len(service.get_attendance(user_id=student.id)) == 2
        assert len(service.get_attendance(start=date(2025, 9, 3), end=date(2025, 9, 3))) == 1

    def test_date_defaults_to_today(self, service, clock, student):
        response = service.mark_attendance(student.id, UserRole.STUDENT)
        assert response.record.date == clock.current.date()

    def test_teacher_attendance(self, service, teacher):
        response = service.mark_attendance(teacher.id, UserRole.TEACHER, date(2025, 9, 2))
        assert response.record.role == UserRole.TEACHER

    def test_unknown_user(self, service, student):
        with pytest.raises(NotFoundError):
            service.mark_attendance(UUID(int=7), UserRole.STUDENT)
        # a student id is not a teacher
        with pytest.raises(NotFoundError):
            service.mark_attendance(student.id, UserRole.TEACHER)
        with pytest.raises(NotFoundError):
            service.mark_attendance(student.id, UserRole.ADMIN)
        assert service.get_attendance() == []


class TestScanLookup:

    def test_student_card_resolves_by_id(self, service, student):
        result = service.resolve_scan(qr_payload(student))
        assert result.role == UserRole.STUDENT
        assert result.student == student

    def test_student_card_resolves_by_roll_number(self, service, student):
        result = service.resolve_scan('{"roll": "101"}')
        assert result.student.id == student.id

    def test_teacher_card(self, service, teacher):
        result = service.resolve_scan(qr_payload(teacher))
        assert result.role == UserRole.TEACHER
        assert result.teacher.id == teacher.id
        assert result.user_id == teacher.id

    @pytest.mark.parametrize("payload", ["not json", "[1, 2]", "{}", '{"id": "x", "type": "JANITOR"}'])
    def test_invalid_payload(self, service, payload):
        with pytest.raises(InvalidScanPayloadError):
            service.resolve_scan(payload)

    def test_unknown_user(self, service, student):
        with pytest.raises(NotFoundError):
            service.resolve_scan('{"id": "%s", "roll": "999"}' % UUID(int=5))

    def test_manual_lookup(self, service, student, teacher):
        assert service.find_user("101").student.id == student.id
        assert service.find_user("asha").student.id == student.id
        assert service.find_user("meera").teacher.id == teacher.id
        with pytest.raises(NotFoundError):
            service.find_user("nobody")
