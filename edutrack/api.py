from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from reports import SummaryGenerator, attendance_report, section_stats, student_profile
from reports.stats import AttendanceReportRow, SectionStats

from .config import configure_logging, settings
from .importer import CSV_TEMPLATE, parse_roster_csv
from .models import (
    COIN_VALUES, AttendanceRecord, AttendanceResponse, AwardCoinsRequest, CoinAwardResponse,
    CreateGiftRequest, CreateRedemptionRequest, CreateRegistrationRequest, Gift,
    ImportResult, ImportStudentsRequest, MarkAttendanceRequest, RedemptionRequest,
    RedemptionResponse, RegistrationRequest, RegistrationResponse, RequestStatus,
    ResolveRequest, ScanRequest, ScanResult, Student, StudentBalance, Teacher,
    TransactionHistoryResponse,
)
from .scanner import qr_payload
from .service import (
    EduTrackService, EduTrackError, NotFoundError, InsufficientBalanceError,
    DuplicateKeyError, InvalidStateError, InvalidAmountError, InvalidScanPayloadError,
)
from .storage import InMemoryStorage, JsonFileStorage

configure_logging(settings.log_level)

app = FastAPI(
    title="EduTrack API",
    description="School roster, attendance, coin rewards and gift redemption",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

service = EduTrackService(
    JsonFileStorage(settings.data_file) if settings.data_file else InMemoryStorage()
)
summary_generator = SummaryGenerator(api_key=settings.groq_api_key, model=settings.report_model)

ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InsufficientBalanceError: status.HTTP_409_CONFLICT,
    DuplicateKeyError: status.HTTP_409_CONFLICT,
    InvalidStateError: status.HTTP_409_CONFLICT,
    InvalidAmountError: status.HTTP_400_BAD_REQUEST,
    InvalidScanPayloadError: status.HTTP_400_BAD_REQUEST,
}


@app.exception_handler(EduTrackError)
async def handle_edutrack_error(request: Request, exc: EduTrackError) -> JSONResponse:
    code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return JSONResponse(
        status_code=code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "edutrack"}


# Students

@app.get("/students", response_model=list[Student], tags=["Students"])
def list_students(search: Optional[str] = None) -> list[Student]:
    return service.list_students(search)


@app.get("/students/import/template", response_class=PlainTextResponse, tags=["Students"])
def import_template() -> str:
    return CSV_TEMPLATE


@app.post("/students/import", response_model=ImportResult, tags=["Students"])
def import_students(request: ImportStudentsRequest) -> ImportResult:
    rows = list(request.rows)
    if request.csv:
        rows.extend(parse_roster_csv(request.csv))
    return service.import_students(rows)


@app.get("/students/{student_id}", response_model=Student, tags=["Students"])
def get_student(student_id: UUID) -> Student:
    return service.get_student(student_id)


@app.get("/students/{student_id}/qr", tags=["Students"])
def get_student_qr(student_id: UUID):
    return {"payload": qr_payload(service.get_student(student_id))}


@app.get("/students/{student_id}/profile", tags=["Students"])
def get_student_profile(student_id: UUID):
    profile = student_profile(
        service.get_student(student_id),
        service.get_attendance(user_id=student_id),
        service.list_transactions(),
    )
    return {
        "student": profile.student,
        "present_days": profile.present_days,
        "coins_earned": profile.coins_earned,
        "coins_spent": profile.coins_spent,
        "attendance": profile.attendance,
        "transactions": profile.transactions,
    }


# Coins

@app.post("/students/{student_id}/coins", response_model=CoinAwardResponse,
          status_code=status.HTTP_201_CREATED, tags=["Coins"])
def award_coins(student_id: UUID, request: AwardCoinsRequest) -> CoinAwardResponse:
    return service.award_coins(student_id, request.amount, request.awarded_by)


@app.get("/coins/values", tags=["Coins"])
def get_coin_values():
    return {"values": list(COIN_VALUES)}


@app.get("/students/{student_id}/balance", response_model=StudentBalance, tags=["Coins"])
def get_balance(student_id: UUID) -> StudentBalance:
    return service.get_balance(student_id)


@app.get("/students/{student_id}/transactions", response_model=TransactionHistoryResponse, tags=["Coins"])
def get_transactions(student_id: UUID, limit: int = 50, offset: int = 0) -> TransactionHistoryResponse:
    return service.get_transaction_history(student_id, limit, offset)


# Teachers

@app.get("/teachers", response_model=list[Teacher], tags=["Teachers"])
def list_teachers(search: Optional[str] = None) -> list[Teacher]:
    return service.list_teachers(search)


@app.get("/teachers/{teacher_id}/qr", tags=["Teachers"])
def get_teacher_qr(teacher_id: UUID):
    return {"payload": qr_payload(service.get_teacher(teacher_id))}


# Gift store

@app.get("/gifts", response_model=list[Gift], tags=["Store"])
def list_gifts() -> list[Gift]:
    return service.list_gifts()


@app.post("/gifts", response_model=Gift, status_code=status.HTTP_201_CREATED, tags=["Store"])
def add_gift(request: CreateGiftRequest) -> Gift:
    return service.add_gift(request)


@app.post("/redemptions", response_model=RedemptionResponse,
          status_code=status.HTTP_201_CREATED, tags=["Store"])
def request_redemption(request: CreateRedemptionRequest) -> RedemptionResponse:
    return service.request_redemption(request.student_id, request.gift_id)


@app.get("/redemptions", response_model=list[RedemptionRequest], tags=["Store"])
def list_redemptions(
    status: Optional[RequestStatus] = None,
    student_id: Optional[UUID] = None,
) -> list[RedemptionRequest]:
    return service.list_redemptions(status, student_id)


@app.post("/redemptions/{request_id}/approve", response_model=RedemptionResponse, tags=["Store"])
def approve_redemption(request_id: UUID, request: ResolveRequest) -> RedemptionResponse:
    return service.approve_redemption(request_id, request.performed_by)


@app.post("/redemptions/{request_id}/reject", response_model=RedemptionResponse, tags=["Store"])
def reject_redemption(request_id: UUID, request: ResolveRequest) -> RedemptionResponse:
    return service.reject_redemption(request_id, request.performed_by)


# Registration

@app.post("/registrations", response_model=RegistrationRequest,
          status_code=status.HTTP_201_CREATED, tags=["Registration"])
def submit_registration(request: CreateRegistrationRequest) -> RegistrationRequest:
    return service.submit_registration(request)


@app.get("/registrations", response_model=list[RegistrationRequest], tags=["Registration"])
def list_registrations(status: Optional[RequestStatus] = None) -> list[RegistrationRequest]:
    return service.list_registrations(status)


@app.post("/registrations/{request_id}/approve", response_model=RegistrationResponse, tags=["Registration"])
def approve_registration(request_id: UUID, request: ResolveRequest) -> RegistrationResponse:
    return service.approve_registration(request_id, request.performed_by)


@app.post("/registrations/{request_id}/reject", response_model=RegistrationResponse, tags=["Registration"])
def reject_registration(request_id: UUID, request: ResolveRequest) -> RegistrationResponse:
    return service.reject_registration(request_id, request.performed_by)


# Attendance

@app.post("/attendance", response_model=AttendanceResponse, tags=["Attendance"])
def mark_attendance(request: MarkAttendanceRequest) -> AttendanceResponse:
    return service.mark_attendance(request.user_id, request.role, request.date, request.marked_by)


@app.get("/attendance", response_model=list[AttendanceRecord], tags=["Attendance"])
def list_attendance(
    user_id: Optional[UUID] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> list[AttendanceRecord]:
    return service.get_attendance(user_id, start, end)


@app.post("/scan", response_model=ScanResult, tags=["Attendance"])
def resolve_scan(request: ScanRequest) -> ScanResult:
    return service.resolve_scan(request.payload)


@app.get("/lookup", response_model=ScanResult, tags=["Attendance"])
def lookup_user(q: str) -> ScanResult:
    return service.find_user(q)


# Reports

@app.get("/reports/sections", response_model=list[SectionStats], tags=["Reports"])
def get_section_stats() -> list[SectionStats]:
    return section_stats(service.list_students(), service.get_attendance())


@app.get("/reports/attendance", response_model=list[AttendanceReportRow], tags=["Reports"])
def get_attendance_report(start: date, end: date, section: Optional[str] = None) -> list[AttendanceReportRow]:
    try:
        return attendance_report(service.list_students(), service.get_attendance(), start, end, section)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.post("/reports/summary", tags=["Reports"])
def generate_summary():
    report = summary_generator.generate(
        service.list_students(),
        service.get_attendance(),
        service.list_transactions(),
    )
    return {"report": report, "ai_available": summary_generator.is_available}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
