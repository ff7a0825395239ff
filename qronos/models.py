from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy.orm import declarative_base, Mapped, mapped_column
from sqlalchemy import BigInteger, Integer, UniqueConstraint, Index
from sqlalchemy.types import DateTime, String

Base = declarative_base()

def utcnow():
    return datetime.now(timezone.utc)

class Professor(Base):
    __tablename__ = "professors"
    identity: Mapped[str] = mapped_column(String(80), primary_key=True)
    added_by: Mapped[str | None] = mapped_column(String(80), nullable=True)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

class ClassEvent(Base):
    __tablename__ = "class_events"
    # ids are handed out by the ledger starting at 0, not by the database
    event_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    professor: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    max_attendees: Mapped[int] = mapped_column(Integer, nullable=False)
    metadata_uri: Mapped[str] = mapped_column(String(512), default="", nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)  # unix seconds
    attendee_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    @property
    def ends_at(self) -> int:
        return self.created_at + self.duration_minutes * 60

class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    student: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)  # ledger time of the mark
    token_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    outcome: Mapped[str] = mapped_column(String(16), default="recorded", nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("event_id", "student", name="uq_attendance_per_student_per_event"),
        Index("ix_attendance_event_student", "event_id", "student"),
    )
