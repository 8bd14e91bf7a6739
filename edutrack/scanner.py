"""
Payloads encoded on EduTrack ID cards.

Student cards carry ``{"id": ..., "roll": ...}`` and teacher cards carry
``{"id": ..., "type": "TEACHER"}``. Decoding the image is left to the
scanning device; this module only deals with the decoded text.
"""

import json
from typing import Optional, Union

from .models import Student, Teacher, UserRole


class InvalidPayload(ValueError):
    pass


def qr_payload(user: Union[Student, Teacher]) -> str:
    if isinstance(user, Student):
        data = {"id": str(user.id), "roll": user.roll_no}
    else:
        data = {"id": str(user.id), "type": UserRole.TEACHER.value}
    return json.dumps(data, separators=(",", ":"))


def decode_payload(text: str) -> dict:
    try:
        data = json.loads(text)
    except (TypeError, json.JSONDecodeError) as e:
        raise InvalidPayload(f"Invalid QR code format: {e}") from e
    if not isinstance(data, dict) or not (data.get("id") or data.get("roll")):
        raise InvalidPayload("QR code does not identify a student or teacher")
    return data


def payload_role(data: dict) -> Optional[UserRole]:
    kind = data.get("type")
    if kind is None:
        return None
    try:
        return UserRole(str(kind).upper())
    except ValueError:
        raise InvalidPayload(f"Unknown user type in QR code: {kind}")
