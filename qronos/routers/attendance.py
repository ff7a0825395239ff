from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, status

from ..deps import get_claims, get_ledger, verifier_http_error
from ..errors import VerifierError
from ..schemas import AttendanceCreate, AttendanceRead, ScanRequest
from ..services.ledger import Ledger
from ..services.scan import ScanIngestor

router = APIRouter(prefix="/attendance", tags=["attendance"])

# --- markAttendanceWithQR: the claimant is always the authenticated caller
@router.post("", response_model=AttendanceRead, status_code=201)
async def mark_attendance(payload: AttendanceCreate, claims: dict = Depends(get_claims), ledger: Ledger = Depends(get_ledger)):
    try:
        rec = await ledger.mark_attendance(payload.event_id, payload.timestamp, payload.signature, claims["sub"])
    except VerifierError as exc:
        raise verifier_http_error(exc)
    return AttendanceRead(event_id=rec.event_id, student=rec.student, timestamp=rec.timestamp)

# --- raw QR text; posting it is the student's confirmation
@router.post("/scan", response_model=AttendanceRead, status_code=201)
async def scan_and_mark(payload: ScanRequest, claims: dict = Depends(get_claims), ledger: Ledger = Depends(get_ledger)):
    ingestor = ScanIngestor(ledger, claims["sub"])
    scanned = ingestor.scan(payload.payload)
    if not scanned.ok:
        raise HTTPException(
            status_code=422,
            detail={"kind": scanned.kind, "message": scanned.message},
        )
    outcome = await ingestor.confirm()
    if not outcome.ok:
        code = status.HTTP_409_CONFLICT if outcome.level == "warning" else status.HTTP_400_BAD_REQUEST
        raise HTTPException(status_code=code, detail={"kind": outcome.kind, "message": outcome.message})
    rec = outcome.record
    return AttendanceRead(event_id=rec.event_id, student=rec.student, timestamp=rec.timestamp)
