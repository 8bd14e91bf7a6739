from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest

from edutrack.models import ImportRow
from edutrack.service import EduTrackService
from edutrack.storage import InMemoryStorage


NOTEBOOK_ID = UUID("10000000-0000-0000-0000-000000000001")
GEL_PENS_ID = UUID("10000000-0000-0000-0000-000000000002")
WATER_BOTTLE_ID = UUID("10000000-0000-0000-0000-000000000003")
SPORTS_GEAR_ID = UUID("10000000-0000-0000-0000-000000000005")


class TickingClock:
    """Returns a strictly increasing UTC time on every call."""

    def __init__(self, start: datetime = datetime(2025, 9, 1, 8, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def service(clock):
    return EduTrackService(InMemoryStorage(), clock=clock)


@pytest.fixture
def student(service):
    result = service.import_students([ImportRow(name="Asha Rao", roll_no="101", section="A")])
    return result.students[0]


@pytest.fixture
def funded_student(service, student):
    """Student S1 from the worked example: 250 coins."""
    service.award_coins(student.id, 200)
    service.award_coins(student.id, 50)
    return service.get_student(student.id)
