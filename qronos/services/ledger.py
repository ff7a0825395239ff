from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, NamedTuple, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.codec import MAX_EVENT_ID
from ..core.signing import normalize_identity, recover_valid
from ..errors import (
    DuplicateAttendance,
    Expired,
    Full,
    InvalidSignature,
    NotAuthorized,
    NotStarted,
    UnknownEvent,
)
from ..models import AttendanceRecord, ClassEvent, Professor

logger = logging.getLogger(__name__)

Publisher = Callable[[dict], Awaitable[None]]


class EventDetails(NamedTuple):
    name: str
    code: str
    start_time: int
    attendee_count: int
    max_attendees: int


@dataclass(frozen=True)
class Recorded:
    event_id: int
    student: str
    timestamp: int


def _now(now: Optional[int]) -> int:
    return int(time.time()) if now is None else int(now)


def _event_key(event_id: int) -> int:
    # ids past the INTEGER column range cannot name an event
    key = int(event_id)
    if not 0 <= key <= MAX_EVENT_ID:
        raise UnknownEvent()
    return key


class Ledger:
    """
    Reference implementation of the attendance ledger.

    Every state-changing call runs under one lock, so check-then-record in
    `mark_attendance` is atomic the same way a ledger transaction is.
    """

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        *,
        publisher: Optional[Publisher] = None,
        max_token_age_seconds: int = 0,
    ):
        self._sessions = sessions
        self._publisher = publisher
        self._lock = asyncio.Lock()
        self.max_token_age_seconds = max_token_age_seconds

    # --- access control ---
    async def add_professor(self, identity: str, *, added_by: str | None = None) -> bool:
        ident = normalize_identity(identity)
        async with self._lock, self._sessions() as db:
            if await db.get(Professor, ident) is not None:
                return False
            db.add(Professor(identity=ident, added_by=normalize_identity(added_by) if added_by else None))
            await db.commit()
        logger.info("professor added: %s", ident)
        return True

    async def is_professor(self, identity: str) -> bool:
        async with self._sessions() as db:
            return await db.get(Professor, normalize_identity(identity)) is not None

    # --- events ---
    async def create_class_event(
        self,
        professor: str,
        name: str,
        code: str,
        max_attendees: int,
        metadata_uri: str,
        duration_minutes: int,
        *,
        now: Optional[int] = None,
    ) -> int:
        if max_attendees <= 0:
            raise ValueError("max_attendees must be positive")
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        ident = normalize_identity(professor)
        async with self._lock, self._sessions() as db:
            if await db.get(Professor, ident) is None:
                raise NotAuthorized("solo profesores pueden crear eventos")
            last = (await db.execute(select(func.max(ClassEvent.event_id)))).scalar_one_or_none()
            event_id = 0 if last is None else last + 1
            db.add(ClassEvent(
                event_id=event_id,
                professor=ident,
                name=name,
                code=code,
                max_attendees=max_attendees,
                metadata_uri=metadata_uri or "",
                duration_minutes=duration_minutes,
                created_at=_now(now),
                attendee_count=0,
            ))
            await db.commit()
        logger.info("class event %s created by %s", event_id, ident)
        return event_id

    async def get_event(self, event_id: int) -> ClassEvent:
        async with self._sessions() as db:
            ev = await db.get(ClassEvent, _event_key(event_id))
        if ev is None:
            raise UnknownEvent()
        return ev

    async def get_event_details(self, event_id: int) -> EventDetails:
        ev = await self.get_event(event_id)
        return EventDetails(ev.name, ev.code, ev.created_at, ev.attendee_count, ev.max_attendees)

    async def get_student_events(self, identity: str) -> list[int]:
        async with self._sessions() as db:
            rows = (await db.execute(
                select(AttendanceRecord.event_id)
                .where(AttendanceRecord.student == normalize_identity(identity))
                .order_by(AttendanceRecord.id.asc())
            )).scalars().all()
        return list(rows)

    async def list_attendance(self, event_id: int) -> list[AttendanceRecord]:
        try:
            key = _event_key(event_id)
        except UnknownEvent:
            return []
        async with self._sessions() as db:
            rows = (await db.execute(
                select(AttendanceRecord)
                .where(AttendanceRecord.event_id == key)
                .order_by(AttendanceRecord.id.asc())
            )).scalars().all()
        return list(rows)

    # --- verification ---
    async def mark_attendance(
        self,
        event_id: int,
        timestamp: int,
        signature: str,
        claimant: str,
        *,
        now: Optional[int] = None,
    ) -> Recorded:
        student = normalize_identity(claimant)
        key = _event_key(event_id)
        async with self._lock, self._sessions() as db:
            ev = await db.get(ClassEvent, key)
            if ev is None:
                raise UnknownEvent()

            t = _now(now)
            if t < ev.created_at:
                raise NotStarted()
            if t > ev.ends_at:
                raise Expired()
            # off by default: a token stays presentable for the whole event window
            if self.max_token_age_seconds and t - int(timestamp) > self.max_token_age_seconds:
                raise Expired("el QR ya expiró, escanea el código actual")

            if not recover_valid(ev.professor, ev.event_id, timestamp, signature):
                raise InvalidSignature()

            existing = (await db.execute(
                select(AttendanceRecord.id).where(
                    AttendanceRecord.event_id == ev.event_id, AttendanceRecord.student == student
                )
            )).scalar_one_or_none()
            if existing is not None:
                raise DuplicateAttendance()

            if ev.attendee_count >= ev.max_attendees:
                raise Full()

            db.add(AttendanceRecord(
                event_id=ev.event_id, student=student, timestamp=t, token_timestamp=int(timestamp)
            ))
            ev.attendee_count += 1
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise DuplicateAttendance()

        logger.info("attendance marked: event=%s student=%s", event_id, student)
        rec = Recorded(event_id=int(event_id), student=student, timestamp=t)
        await self._emit(rec)
        return rec

    async def _emit(self, rec: Recorded) -> None:
        if self._publisher is None:
            return
        try:
            await self._publisher({
                "event_id": rec.event_id,
                "student": rec.student,
                "timestamp": rec.timestamp,
                "idempotency_key": f"{rec.event_id}:{rec.student}",
            })
        except Exception:
            # audit stream is best-effort; the record is already durable
            logger.warning("AttendanceMarked publish failed for event %s", rec.event_id, exc_info=True)
