from __future__ import annotations
import logging
from fastapi import APIRouter, Depends, HTTPException, status

from ..core.signing import normalize_identity
from ..deps import get_claims, get_ledger, get_profiles, verifier_http_error
from ..errors import NotAuthorized, UnknownEvent
from ..schemas import AttendanceRead, EventCreate, EventCreated, EventRead, StudentEvents
from ..services.ledger import Ledger
from ..services.profiles import ProfileStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])

# --- 1) Professor creates a class event (createClassEvent)
@router.post("/events", response_model=EventCreated, status_code=201)
async def create_event(
    payload: EventCreate,
    claims: dict = Depends(get_claims),
    ledger: Ledger = Depends(get_ledger),
    profiles: ProfileStore = Depends(get_profiles),
):
    try:
        event_id = await ledger.create_class_event(
            claims["sub"], payload.name, payload.code, payload.max_attendees,
            payload.metadata_uri, payload.duration_minutes,
        )
    except NotAuthorized as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    # the ledger holds the event; the KV list is display metadata only
    try:
        await profiles.record_professor_event(claims["sub"], event_id, payload.name, payload.code, payload.course)
    except Exception as exc:
        logger.warning("event %s created but not listed for %s: %s", event_id, claims["sub"], exc)
    return EventCreated(event_id=event_id)

# --- 2) getEventDetails
@router.get("/events/{event_id}", response_model=EventRead)
async def event_details(event_id: int, ledger: Ledger = Depends(get_ledger)):
    try:
        ev = await ledger.get_event(event_id)
    except UnknownEvent as exc:
        raise verifier_http_error(exc)
    return EventRead(
        event_id=ev.event_id, professor=ev.professor, name=ev.name, code=ev.code,
        start_time=ev.created_at, ends_at=ev.ends_at,
        attendee_count=ev.attendee_count, max_attendees=ev.max_attendees,
    )

# --- 3) Professor roster, read back from the AttendanceMarked log
@router.get("/events/{event_id}/attendance", response_model=list[AttendanceRead])
async def roster(event_id: int, claims: dict = Depends(get_claims), ledger: Ledger = Depends(get_ledger)):
    try:
        ev = await ledger.get_event(event_id)
    except UnknownEvent as exc:
        raise verifier_http_error(exc)
    if normalize_identity(claims["sub"]) != ev.professor:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the event's professor can read its roster")
    rows = await ledger.list_attendance(event_id)
    return [AttendanceRead(event_id=r.event_id, student=r.student, timestamp=r.timestamp) for r in rows]

# --- 4) getStudentEvents
@router.get("/students/{identity}/events", response_model=StudentEvents)
async def student_events(identity: str, ledger: Ledger = Depends(get_ledger)):
    return StudentEvents(student=normalize_identity(identity), event_ids=await ledger.get_student_events(identity))
