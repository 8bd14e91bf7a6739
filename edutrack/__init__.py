"""
EduTrack school ledger

This package provides:
- Student coin balances with an append-only transaction log
- Gift redemption requests: pending → approved / rejected
- Registration approval with roll-number uniqueness
- Once-per-day attendance marking and bulk roster import
"""

from .models import (
    UserRole,
    RequestStatus,
    Student,
    Teacher,
    Gift,
    CoinTransaction,
    RedemptionRequest,
    RegistrationRequest,
    AttendanceRecord,
)
from .service import (
    EduTrackService,
    EduTrackError,
    NotFoundError,
    InsufficientBalanceError,
    DuplicateKeyError,
    InvalidStateError,
    InvalidAmountError,
    InvalidScanPayloadError,
)
from .storage import InMemoryStorage, JsonFileStorage

__all__ = [
    "UserRole",
    "RequestStatus",
    "Student",
    "Teacher",
    "Gift",
    "CoinTransaction",
    "RedemptionRequest",
    "RegistrationRequest",
    "AttendanceRecord",
    "EduTrackService",
    "EduTrackError",
    "NotFoundError",
    "InsufficientBalanceError",
    "DuplicateKeyError",
    "InvalidStateError",
    "InvalidAmountError",
    "InvalidScanPayloadError",
    "InMemoryStorage",
    "JsonFileStorage",
]
