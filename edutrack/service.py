import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Callable, Iterable, Optional
from uuid import UUID, uuid4

from .importer import normalize_rows
from .models import (
    DEFAULT_SECTION,
    GIFT_REDEMPTION_REASON,
    TEACHER_AWARD_REASON,
    AttendanceRecord,
    AttendanceResponse,
    CoinAwardResponse,
    CoinTransaction,
    CreateGiftRequest,
    CreateRegistrationRequest,
    Gift,
    ImportResult,
    RedemptionRequest,
    RedemptionResponse,
    RegistrationRequest,
    RegistrationResponse,
    RequestStatus,
    ScanResult,
    Student,
    StudentBalance,
    Teacher,
    TransactionHistoryResponse,
    UserRole,
)
from .scanner import InvalidPayload, decode_payload, payload_role
from .storage import InMemoryStorage

logger = logging.getLogger(__name__)


class EduTrackError(Exception):
    pass


class NotFoundError(EduTrackError):
    pass


class InsufficientBalanceError(EduTrackError):
    pass


class DuplicateKeyError(EduTrackError):
    pass


class InvalidStateError(EduTrackError):
    pass


class InvalidAmountError(EduTrackError):
    pass


class InvalidScanPayloadError(EduTrackError):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EduTrackService:
    """
    Coin ledger, redemption store, registrations and attendance for one school.

    The service keeps no entity state of its own: every call reads the
    collections from ``storage``, validates, then writes the result back in
    one storage transaction. Balance changes for one student are serialised
    on a per-student lock; roster changes share a single roster lock.
    """

    def __init__(
        self,
        storage: Optional[InMemoryStorage] = None,
        id_factory: Callable[[], UUID] = uuid4,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.storage = storage if storage is not None else InMemoryStorage()
        self._new_id = id_factory
        self._now = clock
        self._locks_guard = threading.Lock()
        self._student_locks: dict[UUID, threading.Lock] = {}
        self._roster_lock = threading.Lock()
        self._attendance_lock = threading.Lock()
        self._catalog_lock = threading.Lock()

    # Coins

    def award_coins(self, student_id: UUID, amount: int, awarded_by: str = UserRole.TEACHER.value) -> CoinAwardResponse:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError(f"Award amount must be a positive integer, got {amount!r}")

        with self._student_lock(student_id):
            student = self.get_student(student_id)
            transaction = CoinTransaction(
                id=self._new_id(),
                student_id=student.id,
                amount=amount,
                timestamp=self._now(),
                awarded_by=awarded_by,
                reason=TEACHER_AWARD_REASON,
            )
            updated = student.model_copy(update={"coins": student.coins + amount})

            with self.storage.transaction():
                self.storage.put("transactions", transaction.id, transaction.model_dump())
                self.storage.put("students", student.id, updated.model_dump())

        logger.info("Awarded %d coins to %s (%s), balance %d", amount, updated.name, updated.roll_no, updated.coins)
        return CoinAwardResponse(student=updated, transaction=transaction)

    def get_balance(self, student_id: UUID) -> StudentBalance:
        student = self.get_student(student_id)
        entries = [t for t in self.storage.rows("transactions") if t["student_id"] == student.id]
        last_entry = max(entries, key=lambda t: t["timestamp"]) if entries else None
        return StudentBalance(
            student_id=student.id,
            coins=student.coins,
            ledger_total=sum(t["amount"] for t in entries),
            total_transactions=len(entries),
            last_transaction_at=last_entry["timestamp"] if last_entry else None,
        )

    def get_transaction_history(self, student_id: UUID, limit: int = 50, offset: int = 0) -> TransactionHistoryResponse:
        student = self.get_student(student_id)
        entries = [
            CoinTransaction(**t) for t in self.storage.rows("transactions")
            if t["student_id"] == student.id
        ]
        entries.sort(key=lambda t: t.timestamp, reverse=True)
        return TransactionHistoryResponse(
            student_id=student.id,
            transactions=entries[offset:offset + limit],
            total_count=len(entries),
            current_balance=student.coins,
        )

    def list_transactions(self) -> list[CoinTransaction]:
        return sorted(
            (CoinTransaction(**t) for t in self.storage.rows("transactions")),
            key=lambda t: t.timestamp,
        )

    # Gift store

    def list_gifts(self) -> list[Gift]:
        return sorted((Gift(**g) for g in self.storage.rows("gifts")), key=lambda g: (g.cost, g.name))

    def get_gift(self, gift_id: UUID) -> Gift:
        data = self.storage.gifts.get(gift_id)
        if not data:
            raise NotFoundError(f"Gift {gift_id} not found")
        return Gift(**data)

    def add_gift(self, request: CreateGiftRequest) -> Gift:
        gift = Gift(id=self._new_id(), **request.model_dump())
        with self._catalog_lock, self.storage.transaction():
            self.storage.put("gifts", gift.id, gift.model_dump())
        logger.info("Added gift %s costing %d coins", gift.name, gift.cost)
        return gift

    def request_redemption(self, student_id: UUID, gift_id: UUID) -> RedemptionResponse:
        gift = self.get_gift(gift_id)

        with self._student_lock(student_id):
            student = self.get_student(student_id)
            if student.coins < gift.cost:
                logger.warning(
                    "Redemption of %s refused for %s: %d coins, needs %d",
                    gift.name, student.roll_no, student.coins, gift.cost,
                )
                raise InsufficientBalanceError(
                    f"{student.name} has {student.coins} coins, {gift.name} costs {gift.cost}"
                )

            request = RedemptionRequest(
                id=self._new_id(),
                student_id=student.id,
                gift_id=gift.id,
                cost=gift.cost,
                timestamp=self._now(),
                status=RequestStatus.PENDING,
            )
            with self.storage.transaction():
                self.storage.put("redemption_requests", request.id, request.model_dump())

        logger.info("Redemption request %s: %s asked for %s", request.id, student.roll_no, gift.name)
        return RedemptionResponse(request=request, student=student, message="Redemption request sent")

    def approve_redemption(self, request_id: UUID, performed_by: str = UserRole.ADMIN.value) -> RedemptionResponse:
        owner_id = self.get_redemption(request_id).student_id

        with self._student_lock(owner_id):
            request = self.get_redemption(request_id)
            if not request.is_pending():
                raise InvalidStateError(f"Cannot approve redemption request in {request.status.value} state")

            student = self.get_student(request.student_id)
            if student.coins < request.cost:
                logger.warning(
                    "Approval of redemption %s refused: %s has %d coins, needs %d",
                    request.id, student.roll_no, student.coins, request.cost,
                )
                raise InsufficientBalanceError(
                    f"Cannot approve. {student.name} has insufficient coins ({student.coins} < {request.cost})"
                )

            now = self._now()
            transaction = CoinTransaction(
                id=self._new_id(),
                student_id=student.id,
                amount=-request.cost,
                timestamp=now,
                awarded_by=performed_by,
                reason=GIFT_REDEMPTION_REASON,
            )
            updated_student = student.model_copy(update={"coins": student.coins - request.cost})
            updated_request = request.model_copy(update={
                "status": RequestStatus.APPROVED,
                "resolved_at": now,
                "resolved_by": performed_by,
            })

            with self.storage.transaction():
                self.storage.put("transactions", transaction.id, transaction.model_dump())
                self.storage.put("students", student.id, updated_student.model_dump())
                self.storage.put("redemption_requests", request.id, updated_request.model_dump())

        logger.info("Approved redemption %s, %s balance now %d", request.id, student.roll_no, updated_student.coins)
        return RedemptionResponse(
            request=updated_request,
            student=updated_student,
            transaction=transaction,
            message="Request approved & coins deducted",
        )

    def reject_redemption(self, request_id: UUID, performed_by: str = UserRole.ADMIN.value) -> RedemptionResponse:
        owner_id = self.get_redemption(request_id).student_id

        with self._student_lock(owner_id):
            request = self.get_redemption(request_id)
            if not request.is_pending():
                raise InvalidStateError(f"Cannot reject redemption request in {request.status.value} state")

            updated_request = request.model_copy(update={
                "status": RequestStatus.REJECTED,
                "resolved_at": self._now(),
                "resolved_by": performed_by,
            })
            with self.storage.transaction():
                self.storage.put("redemption_requests", request.id, updated_request.model_dump())

        logger.info("Rejected redemption %s", request.id)
        student_data = self.storage.students.get(request.student_id)
        return RedemptionResponse(
            request=updated_request,
            student=Student(**student_data) if student_data else None,
            message="Redemption request rejected",
        )

    def get_redemption(self, request_id: UUID) -> RedemptionRequest:
        data = self.storage.redemption_requests.get(request_id)
        if not data:
            raise NotFoundError(f"Redemption request {request_id} not found")
        return RedemptionRequest(**data)

    def list_redemptions(
        self,
        status: Optional[RequestStatus] = None,
        student_id: Optional[UUID] = None,
    ) -> list[RedemptionRequest]:
        requests = [
            RedemptionRequest(**r) for r in self.storage.rows("redemption_requests")
            if (status is None or r["status"] == status)
            and (student_id is None or r["student_id"] == student_id)
        ]
        requests.sort(key=lambda r: r.timestamp, reverse=True)
        return requests

    # Registration

    def submit_registration(self, request: CreateRegistrationRequest) -> RegistrationRequest:
        registration = RegistrationRequest(
            id=self._new_id(),
            name=request.name.strip(),
            email=request.email.strip(),
            role=request.role,
            roll_no=request.roll_no.strip() if request.roll_no else None,
            section=request.section.strip() if request.section else None,
            subject=request.subject,
            status=RequestStatus.PENDING,
            timestamp=self._now(),
        )
        with self._roster_lock, self.storage.transaction():
            self.storage.put("registration_requests", registration.id, registration.model_dump())
        logger.info("Registration submitted for %s as %s", registration.name, registration.role.value)
        return registration

    def approve_registration(self, request_id: UUID, performed_by: str = UserRole.ADMIN.value) -> RegistrationResponse:
        with self._roster_lock:
            request = self.get_registration(request_id)
            if not request.is_pending():
                raise InvalidStateError(f"Cannot approve registration request in {request.status.value} state")

            student = teacher = None
            now = self._now()
            if request.role == UserRole.STUDENT:
                if self._roll_no_taken(request.roll_no):
                    logger.warning("Registration %s refused: roll number %s already exists", request.id, request.roll_no)
                    raise DuplicateKeyError(f"Roll number {request.roll_no} already exists")
                student = Student(
                    id=self._new_id(),
                    name=request.name,
                    email=request.email,
                    roll_no=request.roll_no,
                    section=request.section or DEFAULT_SECTION,
                    coins=0,
                )
            elif request.role == UserRole.TEACHER:
                teacher = Teacher(
                    id=self._new_id(),
                    name=request.name,
                    email=request.email,
                    subject=request.subject,
                    join_date=now,
                )
            else:
                raise InvalidStateError(f"Registrations for role {request.role.value} cannot be approved")

            updated_request = request.model_copy(update={
                "status": RequestStatus.APPROVED,
                "resolved_at": now,
                "resolved_by": performed_by,
            })
            with self.storage.transaction():
                if student:
                    self.storage.put("students", student.id, student.model_dump())
                if teacher:
                    self.storage.put("teachers", teacher.id, teacher.model_dump())
                self.storage.put("registration_requests", request.id, updated_request.model_dump())

        logger.info("Approved registration of %s as %s", request.name, request.role.value)
        return RegistrationResponse(
            request=updated_request,
            student=student,
            teacher=teacher,
            message=f"{request.name} has been approved",
        )

    def reject_registration(self, request_id: UUID, performed_by: str = UserRole.ADMIN.value) -> RegistrationResponse:
        with self._roster_lock:
            request = self.get_registration(request_id)
            if not request.is_pending():
                raise InvalidStateError(f"Cannot reject registration request in {request.status.value} state")

            updated_request = request.model_copy(update={
                "status": RequestStatus.REJECTED,
                "resolved_at": self._now(),
                "resolved_by": performed_by,
            })
            with self.storage.transaction():
                self.storage.put("registration_requests", request.id, updated_request.model_dump())

        logger.info("Rejected registration of %s", request.name)
        return RegistrationResponse(request=updated_request, message="Request rejected")

    def get_registration(self, request_id: UUID) -> RegistrationRequest:
        data = self.storage.registration_requests.get(request_id)
        if not data:
            raise NotFoundError(f"Registration request {request_id} not found")
        return RegistrationRequest(**data)

    def list_registrations(self, status: Optional[RequestStatus] = None) -> list[RegistrationRequest]:
        requests = [
            RegistrationRequest(**r) for r in self.storage.rows("registration_requests")
            if status is None or r["status"] == status
        ]
        requests.sort(key=lambda r: r.timestamp, reverse=True)
        return requests

    def import_students(self, rows: Iterable) -> ImportResult:
        """
        Bulk-add students from ``(name, roll_no, section)`` rows.

        Rows without a name or roll number, and rows whose roll number is
        already on the roster (or earlier in the same batch), are skipped.
        """
        rows = normalize_rows(rows)
        created: list[Student] = []

        with self._roster_lock:
            seen = {s["roll_no"] for s in self.storage.rows("students")}
            for row in rows:
                name = (row.name or "").strip()
                roll_no = (row.roll_no or "").strip()
                if not name or not roll_no or roll_no in seen:
                    continue
                seen.add(roll_no)
                created.append(Student(
                    id=self._new_id(),
                    name=name,
                    roll_no=roll_no,
                    section=(row.section or "").strip() or DEFAULT_SECTION,
                    coins=0,
                ))

            if created:
                with self.storage.transaction():
                    for student in created:
                        self.storage.put("students", student.id, student.model_dump())

        logger.info("Imported %d students, skipped %d rows", len(created), len(rows) - len(created))
        return ImportResult(imported=len(created), skipped=len(rows) - len(created), students=created)

    # Roster

    def get_student(self, student_id: UUID) -> Student:
        data = self.storage.students.get(student_id)
        if not data:
            raise NotFoundError(f"Student {student_id} not found")
        return Student(**data)

    def get_teacher(self, teacher_id: UUID) -> Teacher:
        data = self.storage.teachers.get(teacher_id)
        if not data:
            raise NotFoundError(f"Teacher {teacher_id} not found")
        return Teacher(**data)

    def list_students(self, search: Optional[str] = None) -> list[Student]:
        students = [Student(**s) for s in self.storage.rows("students")]
        if search:
            needle = search.strip().lower()
            students = [s for s in students if needle in s.name.lower() or needle in s.roll_no.lower()]
        return sorted(students, key=lambda s: (s.section, s.roll_no))

    def list_teachers(self, search: Optional[str] = None) -> list[Teacher]:
        teachers = [Teacher(**t) for t in self.storage.rows("teachers")]
        if search:
            needle = search.strip().lower()
            teachers = [
                t for t in teachers
                if needle in t.name.lower() or needle in t.email.lower()
                or (t.subject and needle in t.subject.lower())
            ]
        return sorted(teachers, key=lambda t: t.name)

    def resolve_scan(self, payload: str) -> ScanResult:
        try:
            data = decode_payload(payload)
            role = payload_role(data)
        except InvalidPayload as e:
            raise InvalidScanPayloadError(str(e)) from e

        user_id = self._as_uuid(data.get("id"))
        roll_no = data.get("roll")

        if role in (None, UserRole.STUDENT):
            for s in self.storage.rows("students"):
                if (user_id and s["id"] == user_id) or (roll_no and s["roll_no"] == str(roll_no)):
                    return ScanResult(role=UserRole.STUDENT, student=Student(**s))
        if user_id and role in (None, UserRole.TEACHER):
            teacher = self.storage.teachers.get(user_id)
            if teacher:
                return ScanResult(role=UserRole.TEACHER, teacher=Teacher(**teacher))

        raise NotFoundError("User not found in database")

    def find_user(self, query: str) -> ScanResult:
        needle = query.strip()
        if not needle:
            raise NotFoundError("User not found")
        lowered = needle.lower()

        students = self.storage.rows("students")
        match = next((s for s in students if s["roll_no"] == needle), None) or \
            next((s for s in students if lowered in s["name"].lower()), None)
        if match:
            return ScanResult(role=UserRole.STUDENT, student=Student(**match))

        teacher = next((t for t in self.storage.rows("teachers") if lowered in t["name"].lower()), None)
        if teacher:
            return ScanResult(role=UserRole.TEACHER, teacher=Teacher(**teacher))

        raise NotFoundError("User not found")

    # Attendance

    def mark_attendance(
        self,
        user_id: UUID,
        role: UserRole,
        on: Optional[date] = None,
        marked_by: str = UserRole.TEACHER.value,
    ) -> AttendanceResponse:
        if role == UserRole.STUDENT:
            name = self.get_student(user_id).name
        elif role == UserRole.TEACHER:
            name = self.get_teacher(user_id).name
        else:
            raise NotFoundError(f"No attendance roster for role {role.value}")

        now = self._now()
        day = on or now.date()

        with self._attendance_lock:
            existing = next(
                (a for a in self.storage.rows("attendance") if a["user_id"] == user_id and a["date"] == day),
                None,
            )
            if existing:
                return AttendanceResponse(
                    record=AttendanceRecord(**existing),
                    created=False,
                    message=f"Attendance already marked for {name} on {day.isoformat()}",
                )

            record = AttendanceRecord(
                id=self._new_id(),
                user_id=user_id,
                role=role,
                date=day,
                timestamp=now,
                marked_by=marked_by,
            )
            with self.storage.transaction():
                self.storage.put("attendance", record.id, record.model_dump())

        logger.info("Attendance marked for %s (%s) on %s", name, role.value, day.isoformat())
        return AttendanceResponse(
            record=record,
            created=True,
            message=f"Attendance marked for {name} ({role.value})",
        )

    def get_attendance(
        self,
        user_id: Optional[UUID] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[AttendanceRecord]:
        records = [
            AttendanceRecord(**a) for a in self.storage.rows("attendance")
            if (user_id is None or a["user_id"] == user_id)
            and (start is None or a["date"] >= start)
            and (end is None or a["date"] <= end)
        ]
        records.sort(key=lambda a: a.timestamp, reverse=True)
        return records

    # Internals

    @contextmanager
    def _student_lock(self, student_id: UUID):
        with self._locks_guard:
            lock = self._student_locks.get(student_id)
            if lock is None:
                if student_id not in self.storage.students:
                    raise NotFoundError(f"Student {student_id} not found")
                lock = self._student_locks[student_id] = threading.Lock()
        with lock:
            yield

    def _roll_no_taken(self, roll_no: Optional[str]) -> bool:
        return any(s["roll_no"] == roll_no for s in self.storage.rows("students"))

    @staticmethod
    def _as_uuid(value) -> Optional[UUID]:
        if not value:
            return None
        try:
            return UUID(str(value))
        except ValueError:
            return None
