"""
Profile storage on a key-value collaborator (redis in production).

Keys:
    professor_{address}          JSON ProfessorProfile (v1 or v2 on disk, v2 after load)
    professor_status_{address}   "pending" | "approved" | "rejected"
    student_{address}            JSON StudentProfile
    course_professor_{course}    address of the professor teaching `course`
    course_students_{course}     JSON list of CourseStudent enrolled in `course`
    professor_events_{address}   JSON list of ProfessorEvent created by the professor
"""
from __future__ import annotations
import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Protocol, Union

from pydantic import BaseModel, Field

from ..core.catalog import is_valid_combination
from ..core.signing import normalize_identity

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...
    async def set(self, key: str, value: str) -> Any: ...


class Role(str, Enum):
    STUDENT = "student"
    PROFESSOR = "professor"
    ADMIN = "admin"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ProfessorProfileV1(BaseModel):
    address: str
    fullName: str
    specialty: str
    course: str
    registeredAt: str = Field(default_factory=_now_iso)


class ProfessorProfileV2(BaseModel):
    address: str
    fullName: str
    specialty: str
    courses: list[str]
    registeredAt: str = Field(default_factory=_now_iso)


ProfessorProfile = ProfessorProfileV2


class StudentProfile(BaseModel):
    address: str
    fullName: str
    idCard: str
    specialty: str
    courses: list[str]
    registeredAt: str = Field(default_factory=_now_iso)


class ProfessorEvent(BaseModel):
    eventId: int
    eventName: str
    eventCode: str
    professorName: str = ""
    specialty: str = ""
    course: str = ""
    createdAt: str = Field(default_factory=_now_iso)


class CourseStudent(BaseModel):
    address: str
    fullName: str
    idCard: str
    enrolledAt: str = Field(default_factory=_now_iso)


class CourseStudents(BaseModel):
    course: str
    students: list[CourseStudent]


class CourseProfessor(BaseModel):
    course: str
    professorAddress: str
    professorName: str = "No registrado"
    professorSpecialty: str = "-"


def professor_key(address: str) -> str:
    return f"professor_{normalize_identity(address)}"

def professor_status_key(address: str) -> str:
    return f"professor_status_{normalize_identity(address)}"

def student_key(address: str) -> str:
    return f"student_{normalize_identity(address)}"

def course_index_key(course: str) -> str:
    return f"course_professor_{course}"

def course_students_key(course: str) -> str:
    return f"course_students_{course}"

def professor_events_key(address: str) -> str:
    return f"professor_events_{normalize_identity(address)}"


def resolve_role(claims: Mapping[str, Any], *, admin_identity: Optional[str] = None) -> Role:
    """The only place a caller's role is decided."""
    sub = claims.get("sub")
    if admin_identity and sub and normalize_identity(sub) == normalize_identity(admin_identity):
        return Role.ADMIN
    # admin comes only from the configured identity, never from a token claim
    if claims.get("role") == Role.PROFESSOR.value:
        return Role.PROFESSOR
    return Role.STUDENT


def parse_professor_profile(data: Mapping[str, Any]) -> Union[ProfessorProfileV1, ProfessorProfileV2]:
    if "courses" in data:
        return ProfessorProfileV2.model_validate(data)
    if "course" in data:
        return ProfessorProfileV1.model_validate(data)
    raise ValueError("professor profile has neither `course` nor `courses`")


def migrate_professor_profile(p: ProfessorProfileV1) -> ProfessorProfileV2:
    return ProfessorProfileV2(
        address=p.address, fullName=p.fullName, specialty=p.specialty,
        courses=[p.course], registeredAt=p.registeredAt,
    )


class ProfileStore:
    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    # --- professors ---
    async def register_professor(self, profile: ProfessorProfileV2) -> ProfessorProfileV2:
        profile = profile.model_copy(update={"address": normalize_identity(profile.address)})
        for course in profile.courses:
            if not is_valid_combination(profile.specialty, course):
                raise ValueError(f"{course!r} is not a course of {profile.specialty!r}")
        await self._kv.set(professor_key(profile.address), profile.model_dump_json())
        for course in profile.courses:
            await self._kv.set(course_index_key(course), profile.address)
        return profile

    async def load_professor_profile(self, address: str) -> Optional[ProfessorProfileV2]:
        raw = await self._kv.get(professor_key(address))
        if raw is None:
            return None
        profile = parse_professor_profile(json.loads(raw))
        if isinstance(profile, ProfessorProfileV2):
            return profile
        # v1 -> v2, written back once so the next load takes the fast path
        migrated = migrate_professor_profile(profile)
        await self._kv.set(professor_key(address), migrated.model_dump_json())
        await self._kv.set(course_index_key(migrated.courses[0]), normalize_identity(address))
        logger.info("migrated professor profile %s to courses list", normalize_identity(address))
        return migrated

    async def professor_for_course(self, course: str) -> Optional[str]:
        return await self._kv.get(course_index_key(course))

    async def get_professor_status(self, address: str) -> ApprovalStatus:
        raw = await self._kv.get(professor_status_key(address))
        return ApprovalStatus(raw) if raw else ApprovalStatus.PENDING

    async def set_professor_status(self, address: str, status: ApprovalStatus) -> None:
        await self._kv.set(professor_status_key(address), ApprovalStatus(status).value)

    async def record_professor_event(
        self, address: str, event_id: int, name: str, code: str, course: str = ""
    ) -> ProfessorEvent:
        profile = await self.load_professor_profile(address)
        entry = ProfessorEvent(
            eventId=event_id, eventName=name, eventCode=code,
            professorName=profile.fullName if profile else "",
            specialty=profile.specialty if profile else "",
            course=course,
        )
        events = await self.list_professor_events(address)
        events.append(entry)
        await self._kv.set(professor_events_key(address), _dump_list(events))
        return entry

    async def list_professor_events(self, address: str) -> list[ProfessorEvent]:
        raw = await self._kv.get(professor_events_key(address))
        return [ProfessorEvent.model_validate(e) for e in json.loads(raw)] if raw else []

    async def students_by_course(self, professor: str) -> list[CourseStudents]:
        """One entry per course the professor teaches, in profile order."""
        profile = await self.load_professor_profile(professor)
        if profile is None:
            return []
        return [
            CourseStudents(course=course, students=await self._course_students(course))
            for course in profile.courses
        ]

    # --- students ---
    async def register_student(self, profile: StudentProfile) -> StudentProfile:
        profile = profile.model_copy(update={"address": normalize_identity(profile.address)})
        previous = await self.load_student_profile(profile.address)
        await self._kv.set(student_key(profile.address), profile.model_dump_json())

        dropped = set(previous.courses) - set(profile.courses) if previous else set()
        for course in dropped:
            roster = [s for s in await self._course_students(course) if s.address != profile.address]
            await self._kv.set(course_students_key(course), _dump_list(roster))
        for course in profile.courses:
            roster = await self._course_students(course)
            enrolled_at = next((s.enrolledAt for s in roster if s.address == profile.address), None)
            roster = [s for s in roster if s.address != profile.address]
            roster.append(CourseStudent(
                address=profile.address, fullName=profile.fullName, idCard=profile.idCard,
                enrolledAt=enrolled_at or profile.registeredAt,
            ))
            await self._kv.set(course_students_key(course), _dump_list(roster))
        return profile

    async def load_student_profile(self, address: str) -> Optional[StudentProfile]:
        raw = await self._kv.get(student_key(address))
        if raw is None:
            return None
        return StudentProfile.model_validate_json(raw)

    async def professors_for_student(self, student: str) -> list[CourseProfessor]:
        """Courses with no indexed professor are left out."""
        profile = await self.load_student_profile(student)
        if profile is None:
            return []
        out = []
        for course in profile.courses:
            address = await self.professor_for_course(course)
            if not address:
                continue
            professor = await self.load_professor_profile(address)
            if professor is None:
                out.append(CourseProfessor(course=course, professorAddress=address))
            else:
                out.append(CourseProfessor(
                    course=course, professorAddress=address,
                    professorName=professor.fullName, professorSpecialty=professor.specialty,
                ))
        return out

    async def _course_students(self, course: str) -> list[CourseStudent]:
        raw = await self._kv.get(course_students_key(course))
        return [CourseStudent.model_validate(s) for s in json.loads(raw)] if raw else []


def _dump_list(items: list[BaseModel]) -> str:
    return json.dumps([i.model_dump() for i in items])
