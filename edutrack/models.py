from datetime import date as Day, datetime
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict, computed_field, model_validator


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


TEACHER_AWARD_REASON = "Teacher Award"
GIFT_REDEMPTION_REASON = "GIFT_REDEMPTION"
DEFAULT_SECTION = "A"
COIN_VALUES = (100, 200, 300, 500)


class Student(BaseModel):
    id: UUID
    name: str
    roll_no: str
    section: str = DEFAULT_SECTION
    coins: int = 0
    email: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class Teacher(BaseModel):
    id: UUID
    name: str
    email: str
    subject: Optional[str] = None
    join_date: datetime

    model_config = ConfigDict(from_attributes=True)


class Gift(BaseModel):
    id: UUID
    name: str
    cost: int = Field(..., gt=0)
    description: str = ""
    icon: str = ""
    image: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CoinTransaction(BaseModel):
    id: UUID
    student_id: UUID
    amount: int
    timestamp: datetime
    awarded_by: str
    reason: str

    model_config = ConfigDict(from_attributes=True, frozen=True)


class RedemptionRequest(BaseModel):
    id: UUID
    student_id: UUID
    gift_id: UUID
    cost: int
    timestamp: datetime
    status: RequestStatus = RequestStatus.PENDING
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING


class RegistrationRequest(BaseModel):
    id: UUID
    name: str
    email: str
    role: UserRole
    roll_no: Optional[str] = None
    section: Optional[str] = None
    subject: Optional[str] = None
    status: RequestStatus = RequestStatus.PENDING
    timestamp: datetime
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING


class AttendanceRecord(BaseModel):
    id: UUID
    user_id: UUID
    role: UserRole
    date: Day
    timestamp: datetime
    marked_by: str

    model_config = ConfigDict(from_attributes=True)


# Request payloads

class AwardCoinsRequest(BaseModel):
    amount: int = Field(..., gt=0, description="Coins to credit")
    awarded_by: str = Field(default=UserRole.TEACHER.value)

    model_config = ConfigDict(json_schema_extra={
        "example": {"amount": 100, "awarded_by": "TEACHER"}
    })


class CreateRedemptionRequest(BaseModel):
    student_id: UUID
    gift_id: UUID


class ResolveRequest(BaseModel):
    performed_by: str = Field(default=UserRole.ADMIN.value)


class CreateRegistrationRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    role: UserRole
    roll_no: Optional[str] = None
    section: Optional[str] = None
    subject: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "name": "Jane Smith",
            "email": "jane@school.example",
            "role": "STUDENT",
            "roll_no": "102",
            "section": "B"
        }
    })

    @model_validator(mode="after")
    def _check_role_fields(self):
        if self.role == UserRole.ADMIN:
            raise ValueError("Admin accounts cannot be requested through registration")
        if self.role == UserRole.STUDENT and not (self.roll_no and self.roll_no.strip()):
            raise ValueError("roll_no is required for student registrations")
        return self


class MarkAttendanceRequest(BaseModel):
    user_id: UUID
    role: UserRole
    date: Optional[Day] = None
    marked_by: str = Field(default=UserRole.TEACHER.value)


class CreateGiftRequest(BaseModel):
    name: str = Field(..., min_length=1)
    cost: int = Field(..., gt=0)
    description: str = ""
    icon: str = ""
    image: Optional[str] = None


class ImportRow(BaseModel):
    name: Optional[str] = None
    roll_no: Optional[str] = None
    section: Optional[str] = None


class ImportStudentsRequest(BaseModel):
    rows: list[ImportRow] = Field(default_factory=list)
    csv: Optional[str] = Field(default=None, description="Raw Name,RollNo,Section CSV text")


class ScanRequest(BaseModel):
    payload: str


# Responses

class CoinAwardResponse(BaseModel):
    student: Student
    transaction: CoinTransaction


class RedemptionResponse(BaseModel):
    request: RedemptionRequest
    student: Optional[Student] = None
    transaction: Optional[CoinTransaction] = None
    message: str


class RegistrationResponse(BaseModel):
    request: RegistrationRequest
    student: Optional[Student] = None
    teacher: Optional[Teacher] = None
    message: str


class ImportResult(BaseModel):
    imported: int
    skipped: int
    students: list[Student] = Field(default_factory=list)


class StudentBalance(BaseModel):
    student_id: UUID
    coins: int
    ledger_total: int
    total_transactions: int
    last_transaction_at: Optional[datetime] = None

    @computed_field
    @property
    def in_sync(self) -> bool:
        return self.coins == self.ledger_total


class TransactionHistoryResponse(BaseModel):
    student_id: UUID
    transactions: list[CoinTransaction]
    total_count: int
    current_balance: int


class ScanResult(BaseModel):
    role: UserRole
    student: Optional[Student] = None
    teacher: Optional[Teacher] = None

    @property
    def user_id(self) -> UUID:
        return self.student.id if self.student else self.teacher.id


class AttendanceResponse(BaseModel):
    record: AttendanceRecord
    created: bool
    message: str
