from __future__ import annotations
from typing import Annotated, Literal
from pydantic import BaseModel, Field, StringConstraints

from .core.codec import MAX_EVENT_ID, MAX_TIMESTAMP

Str255 = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
Identity = Annotated[str, StringConstraints(strip_whitespace=True, pattern=r"^(0x)?[0-9a-fA-F]{66}$")]

# -------- Events --------
class EventCreate(BaseModel):
    name: Str255
    code: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)]
    max_attendees: int = Field(30, gt=0)
    metadata_uri: str = ""
    duration_minutes: int = Field(90, gt=0)
    course: str = ""

class EventCreated(BaseModel):
    event_id: int

class EventRead(BaseModel):
    event_id: int
    professor: str
    name: str
    code: str
    start_time: int
    ends_at: int
    attendee_count: int
    max_attendees: int

class StudentEvents(BaseModel):
    student: str
    event_ids: list[int]

# -------- Attendance --------
class AttendanceCreate(BaseModel):
    event_id: int = Field(..., ge=0, le=MAX_EVENT_ID, alias="eventId")
    timestamp: int = Field(..., gt=0, le=MAX_TIMESTAMP)
    signature: str = Field(..., min_length=1)

    model_config = {"populate_by_name": True}

class AttendanceRead(BaseModel):
    event_id: int
    student: str
    timestamp: int

class ScanRequest(BaseModel):
    payload: str  # raw QR text, as scanned or pasted

# -------- Rotation --------
class RotationRead(BaseModel):
    state: Literal["idle", "active"]
    event_id: int | None = None
    payload: str = ""
    timestamp: int | None = None
    remaining: int

# -------- Professors --------
class ProfessorAdd(BaseModel):
    identity: Identity

class ProfessorRead(BaseModel):
    identity: str
    is_professor: bool
    status: Literal["pending", "approved", "rejected"]

class ProfessorRegister(BaseModel):
    fullName: Str255
    specialty: Str255
    courses: list[Str255] = Field(..., min_length=1)

class StudentRegister(BaseModel):
    fullName: Str255
    idCard: Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=32)]
    specialty: Str255
    courses: list[Str255] = Field(default_factory=list)
